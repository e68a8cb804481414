"""Face embedding extraction.

Two interchangeable strategies share one contract
(``extract(detection, image) -> np.ndarray``):

- ``geometric``: landmark-distance ratios, no model needed.
- ``learned``: padded crop -> CNN backend -> 192-d vector.

Use :func:`create_extractor` to build the one selected in config.
"""

from __future__ import annotations

from typing import Optional

from facepass.config import EmbeddingConfig
from facepass.embedding.base import EmbeddingExtractor, InferenceBackend
from facepass.embedding.geometric import GeometricExtractor
from facepass.embedding.learned import LearnedExtractor
from facepass.errors import ConfigError


def create_extractor(
    config: Optional[EmbeddingConfig] = None,
    backend: Optional[InferenceBackend] = None,
) -> EmbeddingExtractor:
    """Build the extractor for ``config.strategy``.

    For the learned strategy an ONNX backend is created and initialized
    when ``backend`` is not given.
    """
    config = config or EmbeddingConfig()

    if config.strategy == "geometric":
        return GeometricExtractor(min_eye_distance_px=config.min_eye_distance_px)

    if config.strategy == "learned":
        if backend is None:
            from facepass.embedding.backends.onnx import OnnxInferenceBackend

            backend = OnnxInferenceBackend(
                model_name=config.model_name, embed_dim=config.embed_dim
            )
            backend.initialize(config.device)
        return LearnedExtractor(
            backend,
            input_size=config.input_size,
            padding_ratio=config.padding_ratio,
            embed_dim=config.embed_dim,
        )

    raise ConfigError(f"Unknown embedding strategy: {config.strategy!r}")


__all__ = [
    "EmbeddingExtractor",
    "InferenceBackend",
    "GeometricExtractor",
    "LearnedExtractor",
    "create_extractor",
]
