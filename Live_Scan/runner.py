from __future__ import annotations

import argparse
import asyncio
import logging
import time
from dataclasses import replace
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from Live_Scan.config import ScanProfile, load_scan_profile
from scan_kit.governor import Admission, FrameGovernor, GovernorConfig
from scan_kit.interfaces import FrameSource, OverlayRenderer
from scan_kit.runtime import DetectionPipeline, LazyEngine
from scan_kit.session import ScanSession
from scan_kit.types import FrameResult

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "Models/best.onnx"


class LiveScanner:
    """
    Wires a frame source, the frame governor, the detection pipeline and an
    overlay renderer into one scan session.

    Starting a scan resets the session (history, cached letterbox params,
    counters); stopping cancels the ticker, drops history and cached params
    and clears the overlay. A run that finishes after a stop only reports its
    result, it never renders or touches the session history.
    """

    def __init__(
        self,
        source: FrameSource,
        pipeline: DetectionPipeline,
        renderer: OverlayRenderer,
        governor_cfg: GovernorConfig = GovernorConfig(),
        *,
        display_size: Optional[Tuple[int, int]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.source = source
        self.pipeline = pipeline
        self.renderer = renderer
        self.display_size = display_size
        self.last_result: Optional[FrameResult] = None
        self.governor = FrameGovernor(
            self._run_once,
            governor_cfg,
            clock=clock,
            on_start=self._on_start,
            on_stop=self._on_stop,
        )

    @property
    def session(self) -> ScanSession:
        return self.pipeline.session

    @property
    def scanning(self) -> bool:
        return self.governor.scanning

    def start(self) -> None:
        self.governor.start()

    def stop(self) -> None:
        self.governor.stop()

    def toggle(self) -> None:
        if self.scanning:
            self.stop()
        else:
            self.start()

    def tick(self, now: Optional[float] = None) -> Admission:
        return self.governor.tick(now)

    async def close(self) -> None:
        await self.governor.close()

    def _on_start(self, generation: int) -> None:
        self.session.reset(generation)

    def _on_stop(self) -> None:
        self.session.clear()
        self.renderer.clear()

    async def _run_once(self, generation: int) -> None:
        if not self.source.is_ready():
            logger.debug("Frame source not ready; skipping tick")
            return
        frame = self.source.read()
        if frame is None:
            return

        result = await self.pipeline.run_frame(frame, generation)
        self.last_result = result
        if not result.ok or result.stale or not self.governor.is_current(generation):
            return

        source_size = result.frame_size or (self.source.width, self.source.height)
        self.renderer.render(result.detections, self.display_size or source_size, source_size)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Live camera scan: detect objects and overlay boxes in near real time.")
    src = parser.add_mutually_exclusive_group()
    src.add_argument("--video", type=str, default=None, help="Video file path")
    src.add_argument("--webcam", type=int, default=None, help="Webcam index")
    src.add_argument("--rtsp", type=str, default=None, help="RTSP URL")
    parser.add_argument("--profile", type=str, default=None, help="Scan profile JSON")
    parser.add_argument("--model", type=str, default=None, help=f"Model path (default: {DEFAULT_MODEL})")
    parser.add_argument("--backend", type=str, default=None, help="onnxruntime | torchscript (default: from extension)")
    parser.add_argument("--onnx-providers", type=str, default=None, help="Comma-separated ORT providers")
    parser.add_argument("--metadata", type=str, default=None, help="Class names (metadata.yaml)")
    parser.add_argument("--conf", type=float, default=None, help="Confidence threshold")
    parser.add_argument("--iou", type=float, default=None, help="NMS IoU threshold")
    parser.add_argument("--fps", type=float, default=None, help="Target detection rate")
    parser.add_argument("--alpha", type=float, default=None, help="Smoothing weight of the current frame")
    parser.add_argument("--radius", type=float, default=None, help="Association radius in pixels")
    parser.add_argument("--max-frames", type=int, default=None, help="Stop after this many captured frames")
    parser.add_argument("--no-show", action="store_true", help="Do not open a preview window")
    parser.add_argument("--log-level", type=str, default="INFO", help="Logging level")
    return parser


def resolve_profile(args: argparse.Namespace) -> ScanProfile:
    """Scan profile from --profile (if any) with CLI flags taking precedence."""
    profile = load_scan_profile(Path(args.profile)) if args.profile else ScanProfile()
    overrides: Dict[str, object] = {}
    for dest, field_name in (
        ("model", "model"),
        ("conf", "conf_threshold"),
        ("iou", "iou_threshold"),
        ("fps", "target_fps"),
        ("alpha", "smoothing_alpha"),
        ("radius", "association_radius"),
    ):
        value = getattr(args, dest, None)
        if value is not None:
            overrides[field_name] = value
    return replace(profile, **overrides) if overrides else profile


def _parse_providers(raw: Optional[str]) -> Optional[List[str]]:
    if raw is None:
        return None
    parts = [p.strip().strip("'\"`") for p in str(raw).split(",")]
    return [p for p in parts if p] or None


async def run_live(args: argparse.Namespace) -> int:
    import cv2

    from Live_Scan.ingest import CameraFrameSource, get_capture_info, open_capture
    from scan_kit.metadata import class_names_from_model_metadata, load_class_names
    from scan_kit.visualize import OpenCvOverlay

    profile = resolve_profile(args)
    cfgs = profile.to_configs()

    webcam = args.webcam
    if args.video is None and args.rtsp is None and webcam is None:
        webcam = 0
    cap = open_capture(video=args.video, webcam=webcam, rtsp=args.rtsp)
    info = get_capture_info(cap)
    logger.info("Capture opened: %sx%s @ %s fps", info.width, info.height, info.fps)
    source = CameraFrameSource(cap)

    engine = LazyEngine.from_path(
        profile.model or DEFAULT_MODEL,
        backend=args.backend,
        onnx_providers=_parse_providers(args.onnx_providers),
    )
    session = ScanSession(cfgs.letterbox, cfgs.smoothing.history_size)
    pipeline = DetectionPipeline(engine, session, post_cfg=cfgs.post, smoothing_cfg=cfgs.smoothing)
    overlay = OpenCvOverlay(load_class_names(args.metadata) if args.metadata else None)
    scanner = LiveScanner(source, pipeline, overlay, cfgs.governor)

    load_task = asyncio.get_running_loop().create_task(engine.load())
    window = "scan"
    frames = 0
    exit_code = 0
    scanner.start()
    try:
        while True:
            if load_task.done() and engine.load_error is not None:
                exit_code = 1
                break
            if overlay.class_names is None and engine.loaded:
                meta_fn = getattr(engine.engine, "model_metadata", None)
                if callable(meta_fn):
                    overlay.class_names = class_names_from_model_metadata(meta_fn()) or {}

            frame = source.poll()
            if frame is None:
                break
            frames += 1
            scanner.tick()

            if not args.no_show:
                cv2.imshow(window, overlay.draw(frame))
                key = cv2.waitKey(1) & 0xFF
                if key in (ord("q"), 27):
                    break
                if key == ord(" "):
                    scanner.toggle()

            if args.max_frames is not None and frames >= args.max_frames:
                break
            await asyncio.sleep(0)
    finally:
        await scanner.close()
        if not load_task.done():
            load_task.cancel()
            await asyncio.gather(load_task, return_exceptions=True)
        source.release()
        if not args.no_show:
            cv2.destroyAllWindows()

    logger.info("Scan finished: governor=%s session=%s", scanner.governor.stats.as_dict(), session.stats.as_dict())
    return exit_code


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(name)s - %(levelname)s - %(message)s",
    )
    return asyncio.run(run_live(args))
