from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from scan_kit.governor import GovernorConfig
from scan_kit.letterbox import LetterboxConfig
from scan_kit.postprocess import PostConfig
from scan_kit.smoothing import SmoothingConfig


@dataclass(frozen=True)
class ScanConfigs:
    letterbox: LetterboxConfig
    post: PostConfig
    smoothing: SmoothingConfig
    governor: GovernorConfig


@dataclass(frozen=True)
class ScanProfile:
    schema_version: int = 1
    model: Optional[str] = None
    canvas_size: int = 640
    conf_threshold: float = 0.5
    iou_threshold: float = 0.7
    max_detections: int = 300
    smoothing_alpha: float = 0.6
    association_radius: float = 80.0
    history_size: int = 5
    target_fps: float = 10.0
    notes: Optional[str] = None

    def __post_init__(self) -> None:
        if self.schema_version != 1:
            raise ValueError("scan profile schema_version must be 1")
        if self.canvas_size <= 0:
            raise ValueError("canvas_size must be > 0")
        if not 0.0 <= self.conf_threshold <= 1.0:
            raise ValueError("conf_threshold must be in [0, 1]")
        if not 0.0 <= self.iou_threshold <= 1.0:
            raise ValueError("iou_threshold must be in [0, 1]")
        if self.max_detections <= 0:
            raise ValueError("max_detections must be > 0")
        if not 0.0 < self.smoothing_alpha <= 1.0:
            raise ValueError("smoothing_alpha must be in (0, 1]")
        if self.association_radius <= 0:
            raise ValueError("association_radius must be > 0")
        if self.history_size <= 0:
            raise ValueError("history_size must be > 0")
        if self.target_fps <= 0:
            raise ValueError("target_fps must be > 0")

    @property
    def min_interval_s(self) -> float:
        return 1.0 / self.target_fps

    def to_configs(self) -> ScanConfigs:
        return ScanConfigs(
            letterbox=LetterboxConfig(canvas_size=self.canvas_size),
            post=PostConfig(
                conf_threshold=self.conf_threshold,
                iou_threshold=self.iou_threshold,
                max_detections=self.max_detections,
            ),
            smoothing=SmoothingConfig(
                alpha=self.smoothing_alpha,
                association_radius=self.association_radius,
                history_size=self.history_size,
            ),
            governor=GovernorConfig(min_interval_s=self.min_interval_s),
        )


def _optional_number(payload: Dict[str, Any], key: str, default: float) -> float:
    if key not in payload:
        return default
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    return float(value)


def _optional_int(payload: Dict[str, Any], key: str, default: int) -> int:
    if key not in payload:
        return default
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer")
    return int(value)


def _optional_str(payload: Dict[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    if value is not None and not isinstance(value, str):
        raise ValueError(f"{key} must be a string if provided")
    return value


def load_scan_profile(path: Path) -> ScanProfile:
    if not path.exists():
        raise FileNotFoundError(f"Scan profile not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid scan profile JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Scan profile must be a JSON object")

    allowed = {
        "schema_version",
        "model",
        "canvas_size",
        "conf_threshold",
        "iou_threshold",
        "max_detections",
        "smoothing_alpha",
        "association_radius",
        "history_size",
        "target_fps",
        "notes",
    }
    unknown = sorted(set(payload.keys()) - allowed)
    if unknown:
        raise ValueError(f"Unknown scan profile keys: {unknown}")
    if "schema_version" not in payload:
        raise ValueError("Missing required key: schema_version")

    defaults = ScanProfile()
    return ScanProfile(
        schema_version=_optional_int(payload, "schema_version", defaults.schema_version),
        model=_optional_str(payload, "model"),
        canvas_size=_optional_int(payload, "canvas_size", defaults.canvas_size),
        conf_threshold=_optional_number(payload, "conf_threshold", defaults.conf_threshold),
        iou_threshold=_optional_number(payload, "iou_threshold", defaults.iou_threshold),
        max_detections=_optional_int(payload, "max_detections", defaults.max_detections),
        smoothing_alpha=_optional_number(payload, "smoothing_alpha", defaults.smoothing_alpha),
        association_radius=_optional_number(payload, "association_radius", defaults.association_radius),
        history_size=_optional_int(payload, "history_size", defaults.history_size),
        target_fps=_optional_number(payload, "target_fps", defaults.target_fps),
        notes=_optional_str(payload, "notes"),
    )
