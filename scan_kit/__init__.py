"""
Per-frame object-detection pipeline for live camera scanning.

Framework-agnostic: works with NumPy arrays from any inference engine that
reports outputs as dims + flat data. OpenCV is used for letterboxing and
overlay drawing; inference runtimes live in `scan_kit.backends`.
"""

from .errors import InferenceFailure, ScanError, SessionUnavailable, UnsupportedBatchSize
from .types import Detection, DetectionHistory, FrameResult, LetterboxParams, RawTensor
from .letterbox import LetterboxConfig, Preprocessor, compute_letterbox_params, letterbox, to_planar_blob
from .tensor import TensorLayout, reshape_candidates, resolve_layout
from .nms import NMSConfig, nms
from .mapping import map_boxes_to_frame
from .postprocess import DetectionPostprocessor, PostConfig, filter_candidates
from .smoothing import SmoothingConfig, TemporalSmoother
from .governor import Admission, FrameGovernor, GovernorConfig, GovernorState
from .session import ScanSession
from .runtime import DetectionPipeline, LazyEngine, find_project_root, load_engine, resolve_path
from .metadata import load_class_names, parse_class_names
from .visualize import OpenCvOverlay, draw_detections, scale_for_display

__all__ = [
    "InferenceFailure",
    "ScanError",
    "SessionUnavailable",
    "UnsupportedBatchSize",
    "Detection",
    "DetectionHistory",
    "FrameResult",
    "LetterboxParams",
    "RawTensor",
    "LetterboxConfig",
    "Preprocessor",
    "compute_letterbox_params",
    "letterbox",
    "to_planar_blob",
    "TensorLayout",
    "reshape_candidates",
    "resolve_layout",
    "NMSConfig",
    "nms",
    "map_boxes_to_frame",
    "DetectionPostprocessor",
    "PostConfig",
    "filter_candidates",
    "SmoothingConfig",
    "TemporalSmoother",
    "Admission",
    "FrameGovernor",
    "GovernorConfig",
    "GovernorState",
    "ScanSession",
    "DetectionPipeline",
    "LazyEngine",
    "find_project_root",
    "load_engine",
    "resolve_path",
    "load_class_names",
    "parse_class_names",
    "OpenCvOverlay",
    "draw_detections",
    "scale_for_display",
]
