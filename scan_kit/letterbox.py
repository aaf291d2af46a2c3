from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from .types import LetterboxParams, PreprocessResult


@dataclass(frozen=True)
class LetterboxConfig:
    canvas_size: int = 640
    color: Tuple[int, int, int] = (114, 114, 114)
    # Frames from OpenCV are BGR; the model expects planar RGB.
    bgr_input: bool = True

    def __post_init__(self) -> None:
        if self.canvas_size <= 0:
            raise ValueError("canvas_size must be > 0")


def compute_letterbox_params(width: int, height: int, canvas_size: int = 640) -> LetterboxParams:
    """
    Letterbox parameters for a (width, height) frame drawn into a square canvas.

    The frame is scaled by min(S / w, S / h), rounded to whole pixels and
    centered; padding is floor((S - new) / 2) on the left/top.
    """

    if width <= 0 or height <= 0:
        raise ValueError(f"Frame size must be positive, got {(width, height)}")
    if canvas_size <= 0:
        raise ValueError("canvas_size must be > 0")

    scale = min(canvas_size / width, canvas_size / height)
    # At least one pixel per side, so extreme aspect ratios still resize.
    resized_w = max(1, int(round(width * scale)))
    resized_h = max(1, int(round(height * scale)))
    pad_x = (canvas_size - resized_w) // 2
    pad_y = (canvas_size - resized_h) // 2
    return LetterboxParams(
        scale=float(scale),
        pad_x=int(pad_x),
        pad_y=int(pad_y),
        canvas_size=int(canvas_size),
        src_width=int(width),
        src_height=int(height),
    )


def letterbox(
    image: np.ndarray,
    params: LetterboxParams,
    color: Tuple[int, int, int] = (114, 114, 114),
) -> np.ndarray:
    """
    Resize `image` into an S x S canvas filled with `color`, top-left at (pad_x, pad_y).
    """
    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for letterbox(). Install with `pip install opencv-python`.") from e

    h, w = image.shape[:2]
    if (w, h) != (params.src_width, params.src_height):
        raise ValueError(f"Params were computed for {(params.src_width, params.src_height)}, got frame {(w, h)}")

    resized_w, resized_h = params.resized_size
    if (w, h) != (resized_w, resized_h):
        image = cv2.resize(image, (resized_w, resized_h), interpolation=cv2.INTER_LINEAR)

    size = params.canvas_size
    canvas = np.empty((size, size, 3), dtype=np.uint8)
    canvas[:, :] = color
    canvas[params.pad_y : params.pad_y + resized_h, params.pad_x : params.pad_x + resized_w] = image
    return canvas


def to_planar_blob(image: np.ndarray, *, bgr: bool = True) -> np.ndarray:
    """
    HWC uint8 -> (1, 3, H, W) float32 in [0, 1], channels ordered R, G, B.
    """

    if bgr:
        image = image[:, :, ::-1]
    blob = image.astype(np.float32) / 255.0
    blob = np.transpose(blob, (2, 0, 1))[None, ...]
    return np.ascontiguousarray(blob)


def forward_point(x: float, y: float, params: LetterboxParams) -> Tuple[float, float]:
    """Map a source-frame point into canvas space."""
    return x * params.scale + params.pad_x, y * params.scale + params.pad_y


class Preprocessor:
    """
    Letterbox + planar normalization with params cached per frame size.

    The cache only avoids recomputation: params are recomputed whenever the
    incoming frame size differs from the last one, and a fresh computation
    always yields the same values.
    """

    def __init__(self, cfg: LetterboxConfig = LetterboxConfig()) -> None:
        self.cfg = cfg
        self._cached: Optional[LetterboxParams] = None

    @property
    def cached_params(self) -> Optional[LetterboxParams]:
        return self._cached

    def params_for(self, width: int, height: int) -> LetterboxParams:
        cached = self._cached
        if cached is not None and (cached.src_width, cached.src_height) == (width, height):
            return cached
        self._cached = compute_letterbox_params(width, height, self.cfg.canvas_size)
        return self._cached

    def reset(self) -> None:
        self._cached = None

    def __call__(self, frame: np.ndarray) -> PreprocessResult:
        if frame is None or not hasattr(frame, "shape"):
            raise TypeError("frame must be a NumPy array.")
        if frame.ndim != 3 or frame.shape[2] != 3:
            raise ValueError(f"Expected frame shape (H, W, 3), got {getattr(frame, 'shape', None)}")

        h, w = frame.shape[:2]
        params = self.params_for(w, h)
        padded = letterbox(frame, params, color=self.cfg.color)
        blob = to_planar_blob(padded, bgr=self.cfg.bgr_input)
        return PreprocessResult(blob=blob, params=params, frame_size=(w, h))
