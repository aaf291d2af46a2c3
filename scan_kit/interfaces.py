from __future__ import annotations

from typing import Dict, Mapping, Optional, Protocol, Sequence, Tuple

import numpy as np

from .types import Detection, RawTensor


class InferenceEngine(Protocol):
    """
    Asynchronous model runner.

    Takes named input blobs (float32, (1, 3, S, S)) and returns every model
    output by name. May raise; callers treat any exception as a failed frame.
    """

    input_name: str

    async def run(self, feeds: Mapping[str, np.ndarray]) -> Dict[str, RawTensor]:
        ...


class FrameSource(Protocol):
    """Read-only view of a capture device; the pipeline never starts capture."""

    @property
    def width(self) -> int:
        ...

    @property
    def height(self) -> int:
        ...

    def is_ready(self) -> bool:
        ...

    def read(self) -> Optional[np.ndarray]:
        ...


class OverlayRenderer(Protocol):
    def render(
        self,
        detections: Sequence[Detection],
        display_size: Tuple[int, int],
        source_size: Tuple[int, int],
    ) -> None:
        ...

    def clear(self) -> None:
        ...
