"""MobileFaceNet-style ONNX backend for face embeddings.

ONNX model:
  - mobilefacenet.onnx: [1,112,112,3] (or [1,3,112,112]) -> [1,192]

The input layout is read from the model so NHWC and NCHW exports both work.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)


class OnnxInferenceBackend:
    """ONNX Runtime backend.

    Model loaded from ``get_models_dir() / model_name`` unless an explicit
    ``models_dir`` is given.
    """

    def __init__(
        self,
        model_name: str = "mobilefacenet.onnx",
        models_dir: Optional[Path] = None,
        embed_dim: int = 192,
    ):
        self._model_name = model_name
        self._models_dir = models_dir
        self._embed_dim = embed_dim
        self._session = None
        self._input_name: Optional[str] = None
        self._channels_first = False
        self._initialized = False

    @property
    def output_dim(self) -> int:
        return self._embed_dim

    def initialize(self, device: str = "cpu") -> None:
        if self._initialized:
            return

        import onnxruntime as ort

        if self._models_dir is None:
            from facepass.paths import get_models_dir
            self._models_dir = get_models_dir()

        model_path = Path(self._models_dir) / self._model_name
        if not model_path.exists():
            raise FileNotFoundError(
                f"Face embedding ONNX model not found at {model_path}. "
                "Place the exported model in the models directory "
                "(see FACEPASS_MODELS_DIR)."
            )

        providers = ["CUDAExecutionProvider", "CPUExecutionProvider"]
        if "cpu" in device.lower():
            providers = ["CPUExecutionProvider"]

        self._session = ort.InferenceSession(str(model_path), providers=providers)
        model_input = self._session.get_inputs()[0]
        self._input_name = model_input.name
        shape = list(model_input.shape)
        self._channels_first = len(shape) == 4 and shape[1] == 3
        self._initialized = True
        logger.info(
            "ONNX embedding backend initialized from %s (%s)",
            model_path, "NCHW" if self._channels_first else "NHWC",
        )

    def infer(self, tensor: np.ndarray) -> np.ndarray:
        if not self._initialized:
            raise RuntimeError("Backend not initialized. Call initialize() first.")

        if self._channels_first:
            tensor = np.transpose(tensor, (0, 3, 1, 2))
        output = self._session.run(
            None, {self._input_name: np.ascontiguousarray(tensor, dtype=np.float32)}
        )[0]
        # [1, D] -> [D]
        return np.asarray(output, dtype=np.float32).reshape(-1)

    def cleanup(self) -> None:
        self._session = None
        self._initialized = False
        logger.info("ONNX embedding backend cleaned up")


__all__ = ["OnnxInferenceBackend"]
