"""Similarity matcher.

Compares a live embedding against every embedding of an enrolled template
and decides whether the best score clears the calibrated threshold.
Incomparable inputs are reported, never compared.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from facepass.geometry import is_zero, l2_normalize, mean_vector
from facepass.types import Reason

logger = logging.getLogger(__name__)


@dataclass
class MatchResult:
    """Result of matching one live embedding.

    Attributes:
        is_match: True when ``best_score >= threshold``.
        best_score: Highest similarity over all compared embeddings.
        reason: None on a match, otherwise why it failed.
        best_index: Index of the best stored embedding, -1 if none compared.
    """

    is_match: bool
    best_score: float = 0.0
    reason: Optional[Reason] = None
    best_index: int = -1


def similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity clamped to [0, 1].

    Raises:
        ValueError: If the dimensions differ.
    """
    if a.shape != b.shape:
        raise ValueError(f"Dimension mismatch: {a.shape} vs {b.shape}")
    norm = float(np.linalg.norm(a) * np.linalg.norm(b))
    if norm == 0.0:
        return 0.0
    sim = float(np.dot(a, b)) / norm
    return min(1.0, max(0.0, sim))


def average_embeddings(vectors: Sequence[np.ndarray]) -> np.ndarray:
    """Component-wise mean, re-normalized to unit length."""
    if not vectors:
        return np.zeros(0, dtype=np.float32)
    dims = {v.shape for v in vectors}
    if len(dims) != 1:
        raise ValueError(f"Cannot average embeddings of shapes {sorted(dims)}")
    return l2_normalize(mean_vector(vectors))


class SimilarityMatcher:
    """Best-of-N matcher with a fixed threshold.

    Args:
        threshold: Minimum similarity accepted as the same person. Must be
            calibrated for the embedding strategy in use.
    """

    def __init__(self, threshold: float = 0.65):
        self.threshold = threshold

    def match(self, live: np.ndarray, templates: Sequence[np.ndarray]) -> MatchResult:
        if not templates:
            return MatchResult(is_match=False, reason=Reason.NO_ENROLLED_TEMPLATE)

        live = np.asarray(live, dtype=np.float32)
        if is_zero(live):
            return MatchResult(is_match=False, reason=Reason.EXTRACTION_FAILED)

        mismatched = [t.shape for t in templates if t.shape != live.shape]
        if mismatched:
            logger.warning(
                "Template dimension %s does not match live dimension %s",
                mismatched[0], live.shape,
            )
            return MatchResult(is_match=False, reason=Reason.INCOMPATIBLE_TEMPLATE)

        sims = [similarity(live, t) for t in templates]
        best_index = int(np.argmax(sims))
        best_score = sims[best_index]
        is_match = best_score >= self.threshold

        logger.debug(
            "match: best=%.4f threshold=%.2f index=%d", best_score, self.threshold, best_index
        )
        return MatchResult(
            is_match=is_match,
            best_score=best_score,
            reason=None if is_match else Reason.BELOW_THRESHOLD,
            best_index=best_index,
        )


__all__ = ["MatchResult", "SimilarityMatcher", "similarity", "average_embeddings"]
