from __future__ import annotations

from typing import Tuple

import numpy as np

from .types import LetterboxParams


def map_boxes_to_frame(
    boxes: np.ndarray,
    params: LetterboxParams,
    frame_size: Tuple[int, int],
) -> np.ndarray:
    """
    Map xyxy boxes from canvas space back to source-frame pixels.

    Undoes the letterbox offset and scale, clips to [0, w - 1] / [0, h - 1] and
    rounds to integer pixels. Returns a new (N, 4) int64 array.
    """

    out = np.array(boxes, dtype=np.float64).reshape(-1, 4)
    if out.size == 0:
        return out.astype(np.int64)

    out[:, [0, 2]] = (out[:, [0, 2]] - params.pad_x) / params.scale
    out[:, [1, 3]] = (out[:, [1, 3]] - params.pad_y) / params.scale

    # Negative w/h from the model would give inverted corners.
    out[:, [0, 2]] = np.sort(out[:, [0, 2]], axis=1)
    out[:, [1, 3]] = np.sort(out[:, [1, 3]], axis=1)

    frame_w, frame_h = frame_size
    out[:, [0, 2]] = np.clip(out[:, [0, 2]], 0, frame_w - 1)
    out[:, [1, 3]] = np.clip(out[:, [1, 3]], 0, frame_h - 1)
    return np.rint(out).astype(np.int64)


def map_point_to_frame(
    x: float,
    y: float,
    params: LetterboxParams,
    frame_size: Tuple[int, int],
) -> Tuple[int, int]:
    box = np.array([[x, y, x, y]], dtype=np.float64)
    mapped = map_boxes_to_frame(box, params, frame_size)[0]
    return int(mapped[0]), int(mapped[1])
