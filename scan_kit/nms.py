from dataclasses import dataclass
from typing import Optional

import numpy as np


@dataclass(frozen=True)
class NMSConfig:
    iou_threshold: float = 0.7
    max_detections: Optional[int] = 300

    def __post_init__(self) -> None:
        if not 0.0 <= self.iou_threshold <= 1.0:
            raise ValueError("iou_threshold must be in [0, 1]")
        if self.max_detections is not None and self.max_detections <= 0:
            raise ValueError("max_detections must be > 0 or None")


def _areas(boxes: np.ndarray) -> np.ndarray:
    w = np.maximum(0.0, boxes[:, 2] - boxes[:, 0])
    h = np.maximum(0.0, boxes[:, 3] - boxes[:, 1])
    return w * h


def box_iou(box: np.ndarray, boxes: np.ndarray) -> np.ndarray:
    """
    IoU of one xyxy box against (M, 4) boxes. Zero-area boxes overlap nothing.
    """

    box = np.asarray(box, dtype=np.float64).reshape(1, 4)
    boxes = np.asarray(boxes, dtype=np.float64).reshape(-1, 4)

    xx1 = np.maximum(box[0, 0], boxes[:, 0])
    yy1 = np.maximum(box[0, 1], boxes[:, 1])
    xx2 = np.minimum(box[0, 2], boxes[:, 2])
    yy2 = np.minimum(box[0, 3], boxes[:, 3])

    inter = np.maximum(0.0, xx2 - xx1) * np.maximum(0.0, yy2 - yy1)
    union = _areas(box)[0] + _areas(boxes) - inter
    return inter / (union + 1e-9)


def nms(boxes: np.ndarray, scores: np.ndarray, cfg: NMSConfig = NMSConfig()) -> np.ndarray:
    """
    Greedy class-agnostic NumPy NMS. Expects boxes shape (N,4) in xyxy and scores shape (N,).
    Returns indices of boxes to keep, highest score first.

    Equal scores keep their original order, so the first-seen box wins a tie.
    """

    boxes = np.asarray(boxes, dtype=np.float64).reshape(-1, 4)
    scores = np.asarray(scores, dtype=np.float64).reshape(-1)
    if boxes.shape[0] != scores.shape[0]:
        raise ValueError(f"boxes/scores length mismatch: {boxes.shape[0]} vs {scores.shape[0]}")
    if boxes.size == 0:
        return np.empty((0,), dtype=np.int64)

    order = np.argsort(-scores, kind="stable")
    keep = []

    while order.size > 0:
        if cfg.max_detections is not None and len(keep) >= cfg.max_detections:
            break
        i = order[0]
        keep.append(i)

        iou = box_iou(boxes[i], boxes[order[1:]])
        inds = np.where(iou <= cfg.iou_threshold)[0]
        order = order[inds + 1]

    return np.array(keep, dtype=np.int64)
