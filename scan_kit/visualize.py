from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .types import Detection

LIME_BGR = (0, 255, 0)


def _color_for_class_id(class_id: int) -> Tuple[int, int, int]:
    """Deterministic BGR color for a class id."""
    rng = np.random.default_rng(int(class_id))
    bgr = rng.integers(64, 256, size=3, dtype=np.uint8)
    return int(bgr[0]), int(bgr[1]), int(bgr[2])


def scale_for_display(
    detections: Iterable[Detection],
    display_size: Tuple[int, int],
    source_size: Tuple[int, int],
) -> List[Detection]:
    """
    Scale frame-space boxes to a display surface by display/source ratios.
    """

    disp_w, disp_h = display_size
    src_w, src_h = source_size
    if src_w <= 0 or src_h <= 0:
        raise ValueError(f"source_size must be positive, got {source_size}")
    sx = disp_w / src_w
    sy = disp_h / src_h
    return [
        Detection(
            x1=int(round(d.x1 * sx)),
            y1=int(round(d.y1 * sy)),
            x2=int(round(d.x2 * sx)),
            y2=int(round(d.y2 * sy)),
            score=d.score,
            class_id=d.class_id,
        )
        for d in detections
    ]


def format_label(det: Detection, class_names: Optional[Dict[int, str]] = None, show_score: bool = True) -> str:
    label = class_names.get(det.class_id, str(det.class_id)) if class_names else str(det.class_id)
    if show_score:
        label = f"{label}:{det.score:.2f}"
    return label


def draw_detections(
    image_bgr: np.ndarray,
    detections: Iterable[Detection],
    *,
    source_size: Optional[Tuple[int, int]] = None,
    class_names: Optional[Dict[int, str]] = None,
    show_score: bool = True,
    color: Optional[Tuple[int, int, int]] = LIME_BGR,
    box_thickness: int = 2,
    font_scale: float = 0.5,
    font_thickness: int = 1,
) -> np.ndarray:
    """
    Draw boxes + labels on a copy of an OpenCV BGR image.

    Args:
        image_bgr: display image (H, W, 3).
        detections: boxes in source-frame pixels.
        source_size: (width, height) of the frame the boxes belong to; defaults to the image size.
        color: one BGR color for every box, or None for a per-class color.
    """

    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for draw_detections(). Install with `pip install opencv-python`.") from e

    if image_bgr is None or not hasattr(image_bgr, "shape"):
        raise TypeError("image_bgr must be a NumPy array (BGR).")
    if image_bgr.ndim != 3 or image_bgr.shape[2] != 3:
        raise ValueError(f"Expected image shape (H, W, 3), got {getattr(image_bgr, 'shape', None)}")

    out = image_bgr.copy()
    h, w = out.shape[:2]
    dets: Sequence[Detection] = list(detections)
    if source_size is not None and tuple(source_size) != (w, h):
        dets = scale_for_display(dets, (w, h), source_size)

    for det in dets:
        x1, y1, x2, y2 = det.as_xyxy()
        box_color = color if color is not None else _color_for_class_id(det.class_id)
        cv2.rectangle(out, (x1, y1), (x2, y2), box_color, thickness=box_thickness)

        label = format_label(det, class_names, show_score)
        # Keep the label inside the image when the box touches the top edge.
        y_text = max(12, y1 + 14)
        cv2.putText(
            out,
            label,
            (x1 + 2, min(y_text, h - 1)),
            cv2.FONT_HERSHEY_SIMPLEX,
            font_scale,
            box_color,
            thickness=font_thickness,
            lineType=cv2.LINE_AA,
        )

    return out


class OpenCvOverlay:
    """
    Overlay renderer holding the latest detections for an OpenCV preview window.

    `render()` stores the boxes scaled for the display surface; `draw()` paints
    them on a display frame; `clear()` empties the overlay (scan stop).
    """

    def __init__(self, class_names: Optional[Dict[int, str]] = None) -> None:
        self.class_names = class_names
        self.detections: List[Detection] = []

    def render(
        self,
        detections: Sequence[Detection],
        display_size: Tuple[int, int],
        source_size: Tuple[int, int],
    ) -> None:
        self.detections = scale_for_display(detections, display_size, source_size)

    def clear(self) -> None:
        self.detections = []

    def draw(self, display_bgr: np.ndarray) -> np.ndarray:
        return draw_detections(display_bgr, self.detections, class_names=self.class_names)
