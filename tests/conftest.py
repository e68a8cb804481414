"""Shared fixtures for facepass tests.

All detections and embeddings are synthetic. NO ML models needed.
"""

from datetime import datetime

import numpy as np
import pytest

from facepass.config import FacepassConfig
from facepass.stores import (
    FixedPositionProvider,
    InMemoryAttendanceStore,
    InMemoryScanLogStore,
    InMemoryTemplateStore,
)
from facepass.types import FaceDetection, FaceTemplate, Frame, Landmark, Position

OFFICE = Position(lat=3.0439774709176737, lng=101.70637935352624)


class FakeClock:
    """Manually advanced monotonic nanosecond clock."""

    def __init__(self, start_ns: int = 1_000_000_000):
        self.ns = start_ns

    def __call__(self) -> int:
        return self.ns

    def advance_ms(self, ms: float) -> int:
        self.ns += int(ms * 1_000_000)
        return self.ns

    def advance_s(self, s: float) -> int:
        return self.advance_ms(s * 1000.0)


class ScriptedExtractor:
    """Extractor returning queued vectors; the last one repeats."""

    def __init__(self, outputs, name: str = "learned"):
        self._outputs = list(outputs)
        self._name = name
        self.calls = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def dim(self) -> int:
        return int(self._outputs[0].shape[0]) if self._outputs else 0

    def extract(self, detection, image=None):
        self.calls += 1
        if len(self._outputs) > 1:
            return self._outputs.pop(0)
        return self._outputs[0]


def make_landmarks(cx=200.0, cy=200.0, eye_dist=60.0):
    s = eye_dist
    return {
        Landmark.LEFT_EYE: (cx - 0.5 * s, cy - 0.4 * s),
        Landmark.RIGHT_EYE: (cx + 0.5 * s, cy - 0.4 * s),
        Landmark.NOSE_BASE: (cx, cy),
        Landmark.LEFT_MOUTH: (cx - 0.4 * s, cy + 0.5 * s),
        Landmark.RIGHT_MOUTH: (cx + 0.4 * s, cy + 0.5 * s),
        Landmark.BOTTOM_MOUTH: (cx, cy + 0.8 * s),
    }


@pytest.fixture
def make_embedding():
    """Factory fixture for deterministic L2-normalized embeddings."""
    def _make(seed: int = 0, dim: int = 192) -> np.ndarray:
        rng = np.random.default_rng(seed)
        v = rng.standard_normal(dim).astype(np.float32)
        return v / np.linalg.norm(v)
    return _make


@pytest.fixture
def at_similarity():
    """Factory: unit vector whose cosine similarity to ``base`` is ``s``."""
    def _make(base: np.ndarray, s: float, seed: int = 123) -> np.ndarray:
        rng = np.random.default_rng(seed)
        u = rng.standard_normal(base.shape[0])
        u = u - np.dot(u, base) * base
        u = u / np.linalg.norm(u)
        v = s * base.astype(np.float64) + np.sqrt(1.0 - s * s) * u
        return (v / np.linalg.norm(v)).astype(np.float32)
    return _make


@pytest.fixture
def make_face():
    """Factory fixture for a single synthetic detection."""
    def _make(
        yaw=0.0,
        pitch=0.0,
        left_eye_open=0.9,
        right_eye_open=0.9,
        smiling=0.1,
        width=150.0,
        eye_dist=60.0,
        cx=200.0,
        cy=200.0,
    ) -> FaceDetection:
        return FaceDetection(
            bbox=(cx - width / 2, cy - width / 2, width, width),
            landmarks=make_landmarks(cx, cy, eye_dist),
            yaw=yaw,
            pitch=pitch,
            left_eye_open=left_eye_open,
            right_eye_open=right_eye_open,
            smiling=smiling,
        )
    return _make


@pytest.fixture
def make_frame(make_face):
    """Factory fixture for a frame holding one face (or the given faces)."""
    def _make(faces=None, t_ns=None, brightness=128.0, image=None, **face_kwargs) -> Frame:
        if faces is None:
            faces = [make_face(**face_kwargs)]
        return Frame(faces=faces, image=image, t_ns=t_ns, brightness=brightness)
    return _make


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return FacepassConfig()


@pytest.fixture
def template_store():
    return InMemoryTemplateStore()


@pytest.fixture
def attendance_store():
    return InMemoryAttendanceStore()


@pytest.fixture
def scan_log_store():
    return InMemoryScanLogStore()


@pytest.fixture
def office_provider():
    return FixedPositionProvider(position=OFFICE)


@pytest.fixture
def enrolled(template_store, make_embedding):
    """Enroll user "u1" with make_embedding(seed=1) and return the vector."""
    vec = make_embedding(seed=1)
    template_store.save(
        "u1", FaceTemplate(embeddings=[vec], created_at=datetime(2026, 1, 5, 9, 0))
    )
    return vec
