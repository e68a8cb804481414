"""Geometric-ratio embedding strategy.

Builds a scale-invariant vector from landmark distances without any ML
model. Every distance is divided by the inter-ocular distance, and head
pose is appended as two extra dimensions. The vector length is fixed; an
angle the detector did not report contributes 0.0, the same convention
:func:`facepass.registration.classify_pose` uses.

It carries far less identity signal than a learned embedding, so its match
threshold has to be calibrated much stricter (see ``MatcherConfig``).
"""

from __future__ import annotations

import logging
from typing import List, Optional

import numpy as np

from facepass.geometry import distance, l2_normalize, midpoint
from facepass.types import FaceDetection, Landmark

logger = logging.getLogger(__name__)

RATIO_DIM = 11
POSE_DIM = 2


def _angle_term(angle: Optional[float]) -> float:
    return float(angle) / 90.0 if angle is not None else 0.0


class GeometricExtractor:
    """Landmark-ratio extractor.

    Args:
        min_eye_distance_px: Faces with a smaller inter-ocular distance are
            rejected as too small / too far away.
    """

    def __init__(self, min_eye_distance_px: float = 10.0):
        self.min_eye_distance_px = min_eye_distance_px

    @property
    def name(self) -> str:
        return "geometric"

    @property
    def dim(self) -> int:
        return RATIO_DIM + POSE_DIM

    def extract(
        self, detection: FaceDetection, image: Optional[np.ndarray] = None
    ) -> np.ndarray:
        raw = self.raw_features(detection)
        if raw.size == 0:
            return raw
        return l2_normalize(raw)

    def raw_features(self, detection: FaceDetection) -> np.ndarray:
        """Unnormalized feature vector, or an empty array on failure."""
        missing = detection.missing_landmarks()
        if missing:
            logger.debug("geometric: missing landmarks %s", [m.value for m in missing])
            return np.zeros(0, dtype=np.float32)

        lm = detection.landmarks
        left_eye = lm[Landmark.LEFT_EYE]
        right_eye = lm[Landmark.RIGHT_EYE]
        nose = lm[Landmark.NOSE_BASE]
        left_mouth = lm[Landmark.LEFT_MOUTH]
        right_mouth = lm[Landmark.RIGHT_MOUTH]
        chin = lm[Landmark.BOTTOM_MOUTH]

        d_eye = distance(left_eye, right_eye)
        if d_eye < self.min_eye_distance_px:
            logger.debug("geometric: eye distance %.1fpx too small", d_eye)
            return np.zeros(0, dtype=np.float32)

        eye_center = midpoint(left_eye, right_eye)
        mouth_center = midpoint(left_mouth, right_mouth)

        pairs = [
            (eye_center, nose),
            (nose, mouth_center),
            (mouth_center, chin),
            (eye_center, mouth_center),
            (left_mouth, right_mouth),
            (left_eye, nose),
            (right_eye, nose),
            (left_eye, left_mouth),
            (right_eye, right_mouth),
            (nose, left_mouth),
            (nose, right_mouth),
        ]
        features: List[float] = [distance(a, b) / d_eye for a, b in pairs]

        features.append(_angle_term(detection.yaw))
        features.append(_angle_term(detection.pitch))

        return np.asarray(features, dtype=np.float32)


__all__ = ["GeometricExtractor", "RATIO_DIM", "POSE_DIM"]
