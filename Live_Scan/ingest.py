from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import cv2
import numpy as np


@dataclass(frozen=True)
class CaptureInfo:
    fps: Optional[float]
    width: Optional[int]
    height: Optional[int]


def open_capture(*, video: Optional[str] = None, webcam: Optional[int] = None, rtsp: Optional[str] = None) -> cv2.VideoCapture:
    sources = [video is not None, webcam is not None, rtsp is not None]
    if sum(bool(s) for s in sources) != 1:
        raise ValueError("Exactly one of video/webcam/rtsp must be provided.")

    if video is not None:
        cap = cv2.VideoCapture(video)
    elif rtsp is not None:
        cap = cv2.VideoCapture(rtsp)
    else:
        cap = cv2.VideoCapture(int(webcam))

    if not cap.isOpened():
        raise RuntimeError("Failed to open video source.")
    return cap


def get_capture_info(cap: cv2.VideoCapture) -> CaptureInfo:
    fps = cap.get(cv2.CAP_PROP_FPS)
    fps_val = float(fps) if fps and fps > 0 else None

    w = cap.get(cv2.CAP_PROP_FRAME_WIDTH)
    h = cap.get(cv2.CAP_PROP_FRAME_HEIGHT)
    w_val = int(w) if w and w > 0 else None
    h_val = int(h) if h and h > 0 else None

    return CaptureInfo(fps=fps_val, width=w_val, height=h_val)


class CameraFrameSource:
    """
    Latest-frame view over a `cv2.VideoCapture`.

    `poll()` grabs the next frame (called once per display tick); the pipeline
    only ever reads the most recent one through `read()`.
    """

    def __init__(self, cap: cv2.VideoCapture) -> None:
        self._cap = cap
        self._latest: Optional[np.ndarray] = None
        self.ended = False

    @property
    def width(self) -> int:
        return 0 if self._latest is None else int(self._latest.shape[1])

    @property
    def height(self) -> int:
        return 0 if self._latest is None else int(self._latest.shape[0])

    def is_ready(self) -> bool:
        return self._latest is not None and self.width > 0 and self.height > 0

    def poll(self) -> Optional[np.ndarray]:
        ok, frame = self._cap.read()
        if not ok or frame is None:
            self.ended = True
            return None
        self._latest = frame
        return frame

    def read(self) -> Optional[np.ndarray]:
        return self._latest

    def release(self) -> None:
        self._cap.release()
