"""Protocols for embedding extraction strategies and inference backends."""

from __future__ import annotations

from typing import Optional, Protocol

import numpy as np

from facepass.types import FaceDetection


class EmbeddingExtractor(Protocol):
    """Turns one face detection into a fixed-length embedding.

    Implementations must be pure: the same detection (and image) always
    yields the same vector. The result is L2-normalized; an empty array
    signals extraction failure and a zero vector must be treated the same.
    """

    @property
    def name(self) -> str:
        """Strategy name stored with templates ("geometric", "learned")."""
        ...

    @property
    def dim(self) -> int:
        """Length of every successful embedding."""
        ...

    def extract(
        self, detection: FaceDetection, image: Optional[np.ndarray] = None
    ) -> np.ndarray:
        ...


class InferenceBackend(Protocol):
    """Pluggable CNN runtime used by the learned strategy.

    Backends should be swappable without changing extractor logic.
    """

    def initialize(self, device: str) -> None:
        """Load the model onto the device."""
        ...

    def infer(self, tensor: np.ndarray) -> np.ndarray:
        """Run the model on a [1, H, W, 3] float32 tensor in [-1, 1].

        Returns:
            Raw (unnormalized) embedding vector.
        """
        ...

    @property
    def output_dim(self) -> int:
        ...

    def cleanup(self) -> None:
        """Release resources and unload model."""
        ...


__all__ = ["EmbeddingExtractor", "InferenceBackend"]
