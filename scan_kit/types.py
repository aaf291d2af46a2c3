from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List, Optional, Sequence, Tuple

import numpy as np


@dataclass
class Detection:
    """
    Detection in source-frame pixel space.

    Coordinates are integer pixels with 0 <= x1 <= x2 <= width - 1 and
    0 <= y1 <= y2 <= height - 1.
    """

    x1: int
    y1: int
    x2: int
    y2: int
    score: float
    class_id: int

    def as_xyxy(self) -> Tuple[int, int, int, int]:
        return self.x1, self.y1, self.x2, self.y2

    def center(self) -> Tuple[float, float]:
        return (self.x1 + self.x2) * 0.5, (self.y1 + self.y2) * 0.5


@dataclass(frozen=True)
class LetterboxParams:
    """
    Resize/offset parameters of one letterbox transform.

    `scale = min(canvas_size / src_width, canvas_size / src_height)` and the
    scaled image is centered in the canvas with (pad_x, pad_y) on the left/top.
    """

    scale: float
    pad_x: int
    pad_y: int
    canvas_size: int
    src_width: int
    src_height: int

    @property
    def resized_size(self) -> Tuple[int, int]:
        return (
            max(1, int(round(self.src_width * self.scale))),
            max(1, int(round(self.src_height * self.scale))),
        )


@dataclass(frozen=True)
class RawTensor:
    """Model output as reported by an inference engine: dims + flat float32 data."""

    dims: Tuple[int, ...]
    data: np.ndarray

    @classmethod
    def from_array(cls, arr: np.ndarray) -> "RawTensor":
        a = np.asarray(arr, dtype=np.float32)
        return cls(dims=tuple(int(d) for d in a.shape), data=a.reshape(-1))


@dataclass(frozen=True)
class PreprocessResult:
    blob: np.ndarray
    params: LetterboxParams
    frame_size: Tuple[int, int]


@dataclass(frozen=True)
class FrameResult:
    """
    Outcome of one pipeline run.

    `error` carries the caught per-frame failure (if any); `stage` names where
    it happened ("preprocess", "inference", "postprocess").
    """

    detections: List[Detection] = field(default_factory=list)
    error: Optional[BaseException] = None
    stage: Optional[str] = None
    frame_size: Optional[Tuple[int, int]] = None
    params: Optional[LetterboxParams] = None
    elapsed_s: float = 0.0
    stale: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


class DetectionHistory:
    """
    Rolling window of the most recent smoothed detection lists (oldest evicted first).
    """

    def __init__(self, capacity: int = 5) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        self.capacity = capacity
        self._frames: Deque[List[Detection]] = deque(maxlen=capacity)

    def push(self, detections: Sequence[Detection]) -> None:
        self._frames.append(list(detections))

    def latest(self) -> List[Detection]:
        if not self._frames:
            return []
        return list(self._frames[-1])

    def clear(self) -> None:
        self._frames.clear()

    def __len__(self) -> int:
        return len(self._frames)
