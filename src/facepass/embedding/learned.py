"""Learned (CNN) embedding strategy.

Crops the detector box out of the frame, resizes it to the model input and
hands a [-1, 1] normalized tensor to a pluggable :class:`InferenceBackend`.

Pipeline:
  1. Pad the box by ``padding_ratio`` on each side, clamp to image bounds.
  2. Resize to ``input_size`` x ``input_size``.
  3. Normalize pixels with ``(p - 127.5) / 127.5``.
  4. ``backend.infer`` -> raw vector -> L2 normalize.
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple

import cv2
import numpy as np

from facepass.embedding.base import InferenceBackend
from facepass.geometry import l2_normalize
from facepass.types import FaceDetection

logger = logging.getLogger(__name__)

PIXEL_MEAN = 127.5
PIXEL_SCALE = 127.5


def face_crop(
    image: np.ndarray,
    bbox: Tuple[float, float, float, float],
    padding_ratio: float = 0.10,
) -> Optional[np.ndarray]:
    """Extract a padded face crop, clamped to the image.

    Args:
        image: Full frame (H, W, 3).
        bbox: Face bounding box (x, y, w, h) in pixels.
        padding_ratio: Fraction of width / height added on each side.

    Returns:
        The crop, or None when the clamped region is empty.
    """
    h, w = image.shape[:2]
    bx, by, bw, bh = bbox
    pad_w = bw * padding_ratio
    pad_h = bh * padding_ratio

    x1 = max(0, int(bx - pad_w))
    y1 = max(0, int(by - pad_h))
    x2 = min(w, int(bx + bw + pad_w))
    y2 = min(h, int(by + bh + pad_h))

    if x2 <= x1 or y2 <= y1:
        return None
    crop = image[y1:y2, x1:x2]
    if crop.size == 0:
        return None
    return crop


def preprocess(crop: np.ndarray, input_size: int = 112) -> np.ndarray:
    """Resize and normalize a crop into a [1, H, W, 3] float32 tensor."""
    resized = cv2.resize(crop, (input_size, input_size))
    img = (resized.astype(np.float32) - PIXEL_MEAN) / PIXEL_SCALE
    return img[np.newaxis, ...].astype(np.float32)


class LearnedExtractor:
    """CNN embedding extractor.

    Args:
        backend: Initialized inference backend.
        input_size: Square model input resolution.
        padding_ratio: Padding added around the detector box.
        embed_dim: Expected output dimension.
    """

    def __init__(
        self,
        backend: InferenceBackend,
        input_size: int = 112,
        padding_ratio: float = 0.10,
        embed_dim: int = 192,
    ):
        self._backend = backend
        self.input_size = input_size
        self.padding_ratio = padding_ratio
        self.embed_dim = embed_dim

    @property
    def name(self) -> str:
        return "learned"

    @property
    def dim(self) -> int:
        return self.embed_dim

    def extract(
        self, detection: FaceDetection, image: Optional[np.ndarray] = None
    ) -> np.ndarray:
        if image is None:
            logger.debug("learned: no image attached to frame")
            return np.zeros(0, dtype=np.float32)

        crop = face_crop(image, detection.bbox, self.padding_ratio)
        if crop is None:
            logger.debug("learned: empty crop for bbox %s", detection.bbox)
            return np.zeros(0, dtype=np.float32)

        try:
            tensor = preprocess(crop, self.input_size)
            raw = np.asarray(self._backend.infer(tensor), dtype=np.float32).reshape(-1)
        except Exception as e:
            logger.warning("Embedding inference failed: %s", e)
            return np.zeros(0, dtype=np.float32)

        if raw.shape[0] != self.embed_dim:
            logger.warning(
                "Backend returned %d dims, expected %d", raw.shape[0], self.embed_dim
            )
            return np.zeros(0, dtype=np.float32)
        return l2_normalize(raw)

    def cleanup(self) -> None:
        self._backend.cleanup()


__all__ = ["LearnedExtractor", "face_crop", "preprocess"]
