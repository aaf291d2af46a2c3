from __future__ import annotations

from enum import Enum
from typing import Sequence, Tuple, Union

import numpy as np

from .errors import UnsupportedBatchSize
from .types import RawTensor


class TensorLayout(str, Enum):
    """
    Accepted single-image output layouts.

    - ROWS: (1, N, C), one candidate per row.
    - CHANNELS_FIRST: (1, C, N), e.g. 84 x 8400 for YOLOv8-style exports.
    """

    ROWS = "rows"
    CHANNELS_FIRST = "channels_first"


def resolve_layout(dims: Sequence[int]) -> Tuple[TensorLayout, int, int]:
    """
    Resolve the layout of a raw output once, returning (layout, num_candidates, C).

    A trailing dim smaller than the middle one means (1, N, C); anything else
    is treated as (1, C, N).
    """

    dims = tuple(int(d) for d in dims)
    if len(dims) != 3:
        raise UnsupportedBatchSize(f"Expected a rank-3 output tensor, got dims {dims}")
    if dims[0] != 1:
        raise UnsupportedBatchSize(f"Batch > 1 is not supported (got dims {dims}). Pass one image at a time.")

    if dims[2] < dims[1]:
        return TensorLayout.ROWS, dims[1], dims[2]
    return TensorLayout.CHANNELS_FIRST, dims[2], dims[1]


def reshape_candidates(raw: Union[RawTensor, np.ndarray]) -> np.ndarray:
    """
    Normalize a raw output into an (N, C) candidate table.

    The result is a view over the raw buffer (transposed for channels-first
    outputs); channel meaning and values are untouched.
    """

    if not isinstance(raw, RawTensor):
        raw = RawTensor.from_array(raw)

    layout, num, channels = resolve_layout(raw.dims)
    data = np.asarray(raw.data).reshape(-1)
    if data.size != num * channels:
        raise UnsupportedBatchSize(f"Output data has {data.size} values, dims {raw.dims} need {num * channels}")

    if layout is TensorLayout.ROWS:
        return data.reshape(num, channels)
    return data.reshape(channels, num).T
