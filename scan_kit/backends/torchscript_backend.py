from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Union

import numpy as np

from ..types import RawTensor


PathLike = Union[str, Path]


@dataclass(frozen=True)
class TorchScriptBackendConfig:
    """
    Configuration for TorchScript inference.

    - device: "cpu" or "cuda" (if available)
    - half: cast input to float16 (only if the model expects it)
    - input_name: name reported for the single model input
    """

    device: str = "cpu"
    half: bool = False
    input_name: str = "images"


class TorchScriptBackend:
    """
    TorchScript engine using `torch.jit.load`.

    Tuple/list outputs are reported as "output0", "output1", ...; a single
    tensor output is "output0".
    """

    def __init__(self, model_path: PathLike, cfg: TorchScriptBackendConfig = TorchScriptBackendConfig()):
        try:
            import torch  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError("torch is required for the TorchScript backend. Install with `pip install torch`.") from e

        self._torch = torch
        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise FileNotFoundError(str(self.model_path))

        self.device = torch.device(cfg.device)
        self.half = cfg.half
        self.input_name = cfg.input_name

        model = torch.jit.load(str(self.model_path), map_location=self.device)
        model.eval()
        self.model = model

    def run_sync(self, feeds: Mapping[str, np.ndarray]) -> Dict[str, RawTensor]:
        torch = self._torch
        if self.input_name not in feeds:
            raise KeyError(f"Missing input {self.input_name!r}; got {sorted(feeds)}")

        x = torch.as_tensor(feeds[self.input_name], device=self.device)
        x = x.half() if self.half else x.float()
        x = x.contiguous()

        with torch.no_grad():
            y = self.model(x)

        outputs = y if isinstance(y, (tuple, list)) else (y,)
        result: Dict[str, RawTensor] = {}
        for i, out in enumerate(outputs):
            if hasattr(out, "detach"):
                out = out.detach()
            result[f"output{i}"] = RawTensor.from_array(out.float().to("cpu").numpy())
        return result

    async def run(self, feeds: Mapping[str, np.ndarray]) -> Dict[str, RawTensor]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.run_sync, feeds)
