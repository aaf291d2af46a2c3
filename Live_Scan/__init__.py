"""
Live camera scan application built on top of `scan_kit`.

This package keeps the detection runtime inside `scan_kit/` and focuses on
the capture session around it:
- scan profile configuration
- camera/video ingestion (OpenCV, imported from `Live_Scan.ingest`)
- the live runner loop (start/stop, preview window, overlay)
"""

from __future__ import annotations

from .config import ScanConfigs, ScanProfile, load_scan_profile
from .runner import LiveScanner, build_parser, main, run_live

__all__ = [
    "ScanConfigs",
    "ScanProfile",
    "load_scan_profile",
    "LiveScanner",
    "build_parser",
    "main",
    "run_live",
]
