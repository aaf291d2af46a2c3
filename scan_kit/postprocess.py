from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import UnsupportedBatchSize
from .mapping import map_boxes_to_frame
from .nms import NMSConfig, nms
from .tensor import reshape_candidates
from .types import Detection, LetterboxParams, RawTensor


@dataclass(frozen=True)
class PostConfig:
    """
    Post-processing settings for one detection model output.
    """
    conf_threshold: float = 0.5
    iou_threshold: float = 0.7
    max_detections: Optional[int] = 300
    # Optional list of class IDs to keep; None keeps all.
    class_ids: Optional[Sequence[int]] = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.conf_threshold <= 1.0:
            raise ValueError("conf_threshold must be in [0, 1]")
        if not 0.0 <= self.iou_threshold <= 1.0:
            raise ValueError("iou_threshold must be in [0, 1]")


def filter_candidates(
    rows: np.ndarray,
    conf_threshold: float,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Best-class score/id per candidate row, thresholded, boxes in corner form.

    Rows are [cx, cy, w, h, class_scores...] in canvas pixels. A row is kept
    when its best score is >= `conf_threshold`. Outputs keep the input row
    order: boxes (K, 4) xyxy, scores (K,), class_ids (K,).
    """

    rows = np.asarray(rows)
    if rows.ndim != 2 or rows.shape[1] < 5:
        raise UnsupportedBatchSize(f"Expected (N, 4 + num_classes) candidates, got shape {rows.shape}")

    class_scores = rows[:, 4:]
    class_ids = np.argmax(class_scores, axis=1)
    scores = class_scores[np.arange(class_scores.shape[0]), class_ids]

    # Compare in the scores' own precision so a float32 score equal to the threshold is kept.
    keep = scores >= np.asarray(conf_threshold, dtype=scores.dtype)
    if not np.any(keep):
        return np.empty((0, 4), dtype=np.float64), np.empty((0,), dtype=np.float32), np.empty((0,), dtype=np.int64)

    cx, cy, w_box, h_box = rows[keep, :4].astype(np.float64).T
    boxes_xyxy = np.stack([cx - w_box / 2, cy - h_box / 2, cx + w_box / 2, cy + h_box / 2], axis=1)
    return boxes_xyxy, scores[keep].astype(np.float32), class_ids[keep].astype(np.int64)


class DetectionPostprocessor:
    """
    Raw output -> detections in source-frame pixels:

    reshape (N, C) -> confidence filter -> optional class filter -> global NMS
    -> inverse letterbox + clip.

    Suppression is class-agnostic: a box can suppress a different-class box.
    """

    def __init__(self, cfg: PostConfig = PostConfig()):
        self.cfg = cfg
        self.nms_cfg = NMSConfig(iou_threshold=cfg.iou_threshold, max_detections=cfg.max_detections)

    def process(
        self,
        raw: Union[RawTensor, np.ndarray],
        params: LetterboxParams,
        frame_size: Tuple[int, int],
    ) -> List[Detection]:
        rows = reshape_candidates(raw)
        boxes_xyxy, scores, class_ids = filter_candidates(rows, self.cfg.conf_threshold)
        if boxes_xyxy.shape[0] == 0:
            return []

        if self.cfg.class_ids is not None:
            mask = np.isin(class_ids, np.array(self.cfg.class_ids))
            boxes_xyxy, scores, class_ids = boxes_xyxy[mask], scores[mask], class_ids[mask]
            if boxes_xyxy.shape[0] == 0:
                return []

        keep_idx = nms(boxes_xyxy, scores, self.nms_cfg)
        boxes_px = map_boxes_to_frame(boxes_xyxy[keep_idx], params, frame_size)

        return [
            Detection(
                x1=int(x1),
                y1=int(y1),
                x2=int(x2),
                y2=int(y2),
                score=float(score),
                class_id=int(cls_id),
            )
            for (x1, y1, x2, y2), score, cls_id in zip(boxes_px, scores[keep_idx], class_ids[keep_idx])
        ]
