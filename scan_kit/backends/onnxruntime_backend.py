from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional, Sequence, Union

import numpy as np

from ..types import RawTensor

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass(frozen=True)
class OnnxRuntimeBackendConfig:
    """
    Configuration for ONNX Runtime inference.

    - providers: ORT execution providers (e.g., ["CUDAExecutionProvider", "CPUExecutionProvider"])
    - input_name: override the auto-selected input name if needed
    - log_severity_level: ORT log level (3 = errors only, hides CPU-vendor warnings at load)
    """

    providers: Optional[Sequence[str]] = None
    input_name: Optional[str] = None
    log_severity_level: int = 3


class OnnxRuntimeBackend:
    """
    ONNX Runtime engine.

    Expects an NCHW float32 blob shaped (1, 3, S, S) and returns all outputs by
    name. The blocking `session.run` is executed in the loop's default executor.
    """

    def __init__(self, model_path: PathLike, cfg: OnnxRuntimeBackendConfig = OnnxRuntimeBackendConfig()):
        try:
            import onnxruntime as ort  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError(
                "onnxruntime is required for the ONNX backend. Install it with `pip install onnxruntime` "
                "(or `onnxruntime-gpu`)."
            ) from e

        self._ort = ort
        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise FileNotFoundError(str(self.model_path))

        sess_opts = ort.SessionOptions()
        sess_opts.log_severity_level = cfg.log_severity_level
        providers = list(cfg.providers) if cfg.providers is not None else None
        self.session = ort.InferenceSession(str(self.model_path), sess_options=sess_opts, providers=providers)

        inputs = self.session.get_inputs()
        self.input_name = cfg.input_name or (inputs[0].name if inputs else "images")
        self.output_names = [o.name for o in self.session.get_outputs()]
        logger.info(
            "Loaded ONNX model %s (input=%s, outputs=%s, providers=%s)",
            self.model_path,
            self.input_name,
            self.output_names,
            self.providers_in_use,
        )

    @property
    def providers_in_use(self) -> Sequence[str]:
        # ORT returns providers in priority order for this session.
        return tuple(self.session.get_providers())

    def model_metadata(self) -> Dict[str, str]:
        meta = self.session.get_modelmeta()
        return dict(getattr(meta, "custom_metadata_map", {}) or {})

    def run_sync(self, feeds: Mapping[str, np.ndarray]) -> Dict[str, RawTensor]:
        outputs = self.session.run(self.output_names, dict(feeds))
        return {name: RawTensor.from_array(arr) for name, arr in zip(self.output_names, outputs)}

    async def run(self, feeds: Mapping[str, np.ndarray]) -> Dict[str, RawTensor]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.run_sync, feeds)
