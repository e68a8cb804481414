"""Distance and normalization primitives."""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np

from facepass.types import Point

EARTH_RADIUS_M = 6_371_008.8


def distance(a: Point, b: Point) -> float:
    """Euclidean distance between two 2-D points."""
    return math.hypot(a[0] - b[0], a[1] - b[1])


def midpoint(a: Point, b: Point) -> Point:
    return ((a[0] + b[0]) / 2.0, (a[1] + b[1]) / 2.0)


def l2_normalize(v: np.ndarray) -> np.ndarray:
    """L2 normalize a vector.

    Empty and zero-norm vectors are returned unchanged; callers treat them
    as extraction failures.
    """
    v = np.asarray(v, dtype=np.float32)
    if v.size == 0:
        return v
    norm = np.linalg.norm(v)
    if norm > 0:
        return v / norm
    return v


def is_zero(v: np.ndarray) -> bool:
    """True for the empty vector or a vector with zero norm."""
    return v.size == 0 or not np.any(v)


def mean_vector(vectors: Sequence[np.ndarray]) -> np.ndarray:
    """Component-wise arithmetic mean."""
    if not vectors:
        return np.zeros(0, dtype=np.float32)
    return np.mean(np.stack(vectors), axis=0).astype(np.float32)


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in meters between two WGS84 coordinates."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    h = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(h)))


__all__ = [
    "EARTH_RADIUS_M",
    "distance",
    "midpoint",
    "l2_normalize",
    "is_zero",
    "mean_vector",
    "haversine_m",
]
