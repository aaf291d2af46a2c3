from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Optional

import numpy as np

from .letterbox import LetterboxConfig, Preprocessor
from .types import DetectionHistory, FrameResult, LetterboxParams, PreprocessResult

logger = logging.getLogger(__name__)


@dataclass
class SessionStats:
    frames: int = 0
    failures: int = 0
    stale: int = 0
    failures_by_kind: Counter = field(default_factory=Counter)

    def as_dict(self) -> Dict[str, object]:
        return {
            "frames": self.frames,
            "failures": self.failures,
            "stale": self.stale,
            "failures_by_kind": dict(self.failures_by_kind),
        }


class ScanSession:
    """
    Per-capture-session pipeline state, owned by the caller.

    Holds the cached letterbox params, the smoothed detection history and
    per-session counters. `reset()` is called on scan start and `clear()` on
    scan stop; nothing else mutates this object outside the pipeline run that
    owns it.
    """

    def __init__(
        self,
        letterbox_cfg: LetterboxConfig = LetterboxConfig(),
        history_size: int = 5,
    ) -> None:
        self.preprocessor = Preprocessor(letterbox_cfg)
        self.history = DetectionHistory(history_size)
        self.stats = SessionStats()
        self.generation = 0

    @property
    def cached_params(self) -> Optional[LetterboxParams]:
        return self.preprocessor.cached_params

    def reset(self, generation: Optional[int] = None) -> None:
        self.preprocessor.reset()
        self.history.clear()
        self.stats = SessionStats()
        self.generation = self.generation + 1 if generation is None else generation

    def clear(self) -> None:
        """
        Drop history and cached params but keep the counters. The generation is
        bumped so a run still in flight reports a stale result.
        """
        self.preprocessor.reset()
        self.history.clear()
        self.generation += 1

    def preprocess(self, frame: np.ndarray) -> PreprocessResult:
        """
        Letterbox `frame`. History is dropped when the frame size changes,
        since its boxes are in the old frame's pixel space.
        """
        previous = self.preprocessor.cached_params
        prep = self.preprocessor(frame)
        if previous is not None and prep.params is not previous:
            logger.info(
                "Frame size changed %s -> %s; clearing detection history",
                (previous.src_width, previous.src_height),
                prep.frame_size,
            )
            self.history.clear()
        return prep

    def is_current(self, generation: Optional[int]) -> bool:
        return generation is None or generation == self.generation

    def record_result(self, result: FrameResult) -> None:
        if result.stale:
            # Finished after a stop/start; belongs to a previous session.
            self.stats.stale += 1
            return
        self.stats.frames += 1
        if result.error is not None:
            self.stats.failures += 1
            self.stats.failures_by_kind[type(result.error).__name__] += 1
