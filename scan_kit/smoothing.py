from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .types import Detection, DetectionHistory


@dataclass(frozen=True)
class SmoothingConfig:
    # Weight of the current frame in the blend.
    alpha: float = 0.6
    # Max center distance (pixels) for two detections to be the same object.
    association_radius: float = 80.0
    history_size: int = 5

    def __post_init__(self) -> None:
        if not 0.0 < self.alpha <= 1.0:
            raise ValueError("alpha must be in (0, 1]")
        if self.association_radius <= 0:
            raise ValueError("association_radius must be > 0")
        if self.history_size <= 0:
            raise ValueError("history_size must be > 0")


def _center_distance(a: Detection, b: Detection) -> float:
    ax, ay = a.center()
    bx, by = b.center()
    return math.hypot(ax - bx, ay - by)


class TemporalSmoother:
    """
    Frame-to-frame box smoothing.

    Each current detection is matched to the nearest-center previous detection
    of the same class; within `association_radius` the boxes are blended
    (alpha * current + (1 - alpha) * previous), otherwise the detection passes
    through unchanged.

    Only the immediately preceding smoothed frame is consulted. There is no
    track identity, so objects that cross or are occluded for a frame may be
    blended with the wrong neighbour or restart unsmoothed.
    """

    def __init__(self, cfg: SmoothingConfig = SmoothingConfig()) -> None:
        self.cfg = cfg

    def _match(self, det: Detection, previous: Sequence[Detection]) -> Optional[Detection]:
        best: Optional[Detection] = None
        best_dist = math.inf
        for prev in previous:
            if prev.class_id != det.class_id:
                continue
            dist = _center_distance(det, prev)
            if dist < best_dist:
                best, best_dist = prev, dist
        if best is None or best_dist >= self.cfg.association_radius:
            return None
        return best

    def _blend(self, cur: Detection, prev: Detection) -> Detection:
        a = self.cfg.alpha
        x1, y1, x2, y2 = (
            int(round(a * c + (1.0 - a) * p)) for c, p in zip(cur.as_xyxy(), prev.as_xyxy())
        )
        return Detection(x1=x1, y1=y1, x2=x2, y2=y2, score=cur.score, class_id=cur.class_id)

    def smooth(self, current: Sequence[Detection], previous: Sequence[Detection]) -> List[Detection]:
        out: List[Detection] = []
        for det in current:
            match = self._match(det, previous)
            out.append(det if match is None else self._blend(det, match))
        return out

    def update(self, current: Sequence[Detection], history: DetectionHistory) -> List[Detection]:
        smoothed = self.smooth(current, history.latest())
        history.push(smoothed)
        return smoothed
