from __future__ import annotations

import asyncio
import functools
import logging
import time
from pathlib import Path
from typing import Callable, Dict, Mapping, Optional, Sequence, Union

import numpy as np

from .errors import InferenceFailure, ScanError, SessionUnavailable, UnsupportedBatchSize
from .interfaces import InferenceEngine
from .letterbox import LetterboxConfig
from .postprocess import DetectionPostprocessor, PostConfig
from .session import ScanSession
from .smoothing import SmoothingConfig, TemporalSmoother
from .types import FrameResult, PreprocessResult, RawTensor

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def find_project_root(
    start: Optional[PathLike] = None,
    markers: Sequence[str] = ("pyproject.toml", ".git"),
) -> Path:
    """
    Best-effort project root discovery, so models can live in `<root>/Models`.
    """

    p = Path(start) if start is not None else Path.cwd()
    p = p.resolve()

    # If a file is provided, start from its directory.
    if p.is_file():
        p = p.parent

    for parent in (p, *p.parents):
        for m in markers:
            if (parent / m).exists():
                return parent
    return p


def resolve_path(path: PathLike, root: Optional[PathLike] = "auto") -> Path:
    """
    Resolve `path` to an absolute Path; relative paths resolve against `root`
    (or the auto-detected project root).
    """

    p = Path(path)
    if p.is_absolute():
        return p

    if root == "auto" or root is None:
        base = find_project_root()
    else:
        base = Path(root).resolve()

    return (base / p).resolve()


def load_engine(
    model_path: PathLike,
    *,
    backend: Optional[str] = None,
    root: Optional[PathLike] = "auto",
    onnx_providers: Optional[Sequence[str]] = None,
    onnx_input_name: Optional[str] = None,
    torch_device: str = "cpu",
    torch_half: bool = False,
) -> InferenceEngine:
    """
    Create an inference engine for a model on disk.

    Args:
        model_path: path to the model file; relative paths resolve against project root by default
        backend: "onnxruntime" / "torchscript", or None to infer from the extension
    """

    resolved = resolve_path(model_path, root=root)
    chosen = backend
    if chosen is None:
        suffix = resolved.suffix.lower()
        if suffix == ".onnx":
            chosen = "onnxruntime"
        elif suffix in {".torchscript", ".ts", ".pt"}:
            chosen = "torchscript"
        else:
            raise ValueError(
                f"Could not infer backend from extension '{suffix}'. Pass backend=... explicitly."
            )

    chosen = chosen.lower()
    if chosen == "onnxruntime":
        from .backends.onnxruntime_backend import OnnxRuntimeBackend, OnnxRuntimeBackendConfig

        return OnnxRuntimeBackend(
            resolved,
            OnnxRuntimeBackendConfig(providers=onnx_providers, input_name=onnx_input_name),
        )

    if chosen == "torchscript":
        from .backends.torchscript_backend import TorchScriptBackend, TorchScriptBackendConfig

        return TorchScriptBackend(resolved, TorchScriptBackendConfig(device=torch_device, half=torch_half))

    raise ValueError(f"Unsupported backend: {backend!r}")


class LazyEngine:
    """
    Engine that loads once, in the background, on first `load()`.

    Until the model is loaded every `run()` raises `SessionUnavailable`, so
    frames are skipped rather than failing the session. A load failure is
    logged once and remembered in `load_error`; later `load()` calls do not retry.
    """

    def __init__(self, factory: Callable[[], InferenceEngine], input_name: str = "images") -> None:
        self._factory = factory
        self._default_input_name = input_name
        self._engine: Optional[InferenceEngine] = None
        self.load_error: Optional[BaseException] = None

    @classmethod
    def from_path(cls, model_path: PathLike, **kwargs: object) -> "LazyEngine":
        return cls(functools.partial(load_engine, model_path, **kwargs))

    @property
    def loaded(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> Optional[InferenceEngine]:
        return self._engine

    @property
    def input_name(self) -> str:
        if self._engine is not None:
            return self._engine.input_name
        return self._default_input_name

    async def load(self) -> Optional[InferenceEngine]:
        if self._engine is not None:
            return self._engine
        if self.load_error is not None:
            return None
        loop = asyncio.get_running_loop()
        try:
            self._engine = await loop.run_in_executor(None, self._factory)
        except Exception as exc:
            self.load_error = exc
            logger.error("Failed to load inference engine: %s", exc)
            return None
        return self._engine

    async def run(self, feeds: Mapping[str, np.ndarray]) -> Dict[str, RawTensor]:
        if self._engine is None:
            raise SessionUnavailable("Inference engine is not loaded.")
        return await self._engine.run(feeds)


class DetectionPipeline:
    """
    Per-frame pipeline: letterbox -> inference -> reshape/filter/NMS/map -> smoothing.

    The pipeline expects BGR frames (OpenCV-style) as `np.ndarray`. Every run
    returns a `FrameResult`; per-frame failures are logged and reported in
    `FrameResult.error` instead of being raised, so a scan loop never dies on
    one bad frame.
    """

    def __init__(
        self,
        engine: InferenceEngine,
        session: Optional[ScanSession] = None,
        *,
        letterbox_cfg: LetterboxConfig = LetterboxConfig(),
        post_cfg: PostConfig = PostConfig(),
        smoothing_cfg: SmoothingConfig = SmoothingConfig(),
        output_name: Optional[str] = None,
    ):
        self.engine = engine
        self.session = session if session is not None else ScanSession(letterbox_cfg, smoothing_cfg.history_size)
        self.post = DetectionPostprocessor(post_cfg)
        self.smoother = TemporalSmoother(smoothing_cfg)
        self.output_name = output_name

    def preprocess(self, frame: np.ndarray) -> PreprocessResult:
        return self.session.preprocess(frame)

    def _select_output(self, outputs: Mapping[str, RawTensor]) -> RawTensor:
        if not outputs:
            raise UnsupportedBatchSize("Engine returned no outputs.")
        if self.output_name is None:
            return next(iter(outputs.values()))
        if self.output_name not in outputs:
            raise UnsupportedBatchSize(f"Output {self.output_name!r} not found. Available: {sorted(outputs)}")
        return outputs[self.output_name]

    async def _infer(self, prep: PreprocessResult) -> Dict[str, RawTensor]:
        feeds = {self.engine.input_name: prep.blob}
        try:
            return await self.engine.run(feeds)
        except ScanError:
            raise
        except Exception as exc:
            raise InferenceFailure(f"{type(exc).__name__}: {exc}") from exc

    async def run_frame(self, frame: np.ndarray, generation: Optional[int] = None) -> FrameResult:
        """
        Run one frame. Letterbox params are captured here and used for this
        frame's mapping only. History is updated only if `generation` still
        matches the session (no stop/start happened while inferring).
        """
        t0 = time.perf_counter()
        stage = "preprocess"
        prep: Optional[PreprocessResult] = None
        try:
            prep = self.preprocess(frame)
            stage = "inference"
            outputs = await self._infer(prep)
            stage = "postprocess"
            detections = self.post.process(self._select_output(outputs), prep.params, prep.frame_size)
        except Exception as exc:
            result = FrameResult(
                error=exc,
                stage=stage,
                frame_size=prep.frame_size if prep is not None else None,
                params=prep.params if prep is not None else None,
                elapsed_s=time.perf_counter() - t0,
                stale=not self.session.is_current(generation),
            )
            # Expected while the model is still loading; the load itself is reported once.
            level = logging.DEBUG if isinstance(exc, SessionUnavailable) else logging.WARNING
            logger.log(level, "Skipping frame (%s): %s: %s", stage, type(exc).__name__, exc)
            self.session.record_result(result)
            return result

        stale = not self.session.is_current(generation)
        if not stale:
            detections = self.smoother.update(detections, self.session.history)
        else:
            logger.debug("Discarding stale frame result from generation %s", generation)

        result = FrameResult(
            detections=detections,
            frame_size=prep.frame_size,
            params=prep.params,
            elapsed_s=time.perf_counter() - t0,
            stale=stale,
        )
        self.session.record_result(result)
        return result
