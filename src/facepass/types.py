"""Core data types shared by every facepass module.

Detector output is represented as strongly typed dataclasses with explicit
optional fields. Embeddings are plain float32 numpy vectors; an empty vector
means extraction failed and must never be compared.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

import numpy as np

Point = Tuple[float, float]
Embedding = np.ndarray


class Landmark(str, Enum):
    """Facial points the external detector reports per face."""

    LEFT_EYE = "left_eye"
    RIGHT_EYE = "right_eye"
    NOSE_BASE = "nose_base"
    LEFT_MOUTH = "left_mouth"
    RIGHT_MOUTH = "right_mouth"
    BOTTOM_MOUTH = "bottom_mouth"


CORE_LANDMARKS: Tuple[Landmark, ...] = tuple(Landmark)


class Reason(str, Enum):
    """Every non-success outcome a facepass operation can report."""

    NO_FACE_DETECTED = "no_face_detected"
    MULTIPLE_FACES_DETECTED = "multiple_faces_detected"
    LOW_FACE_QUALITY = "low_face_quality"
    EXTRACTION_FAILED = "extraction_failed"
    INCOMPATIBLE_TEMPLATE = "incompatible_template"
    BELOW_THRESHOLD = "below_threshold"
    NO_ENROLLED_TEMPLATE = "no_enrolled_template"
    NOT_REGISTERED = "not_registered"
    TEMPLATE_LOAD_FAILED = "template_load_failed"
    LOCATION_DISABLED = "location_disabled"
    PERMISSION_DENIED = "permission_denied"
    MOCK_LOCATION_DETECTED = "mock_location_detected"
    OUTSIDE_RADIUS = "outside_radius"
    POSITION_UNAVAILABLE = "position_unavailable"
    ALREADY_CHECKED_IN = "already_checked_in"
    NOT_CHECKED_IN = "not_checked_in"
    RETRIES_EXHAUSTED = "retries_exhausted"
    PERSISTENCE_FAILED = "persistence_failed"
    CANCELLED = "cancelled"

    @property
    def is_transient(self) -> bool:
        """Per-frame hints that clear on the next good frame."""
        return self in (
            Reason.NO_FACE_DETECTED,
            Reason.MULTIPLE_FACES_DETECTED,
            Reason.LOW_FACE_QUALITY,
        )


class ScanType(str, Enum):
    REGISTRATION = "registration"
    ATTENDANCE = "attendance"


@dataclass
class FaceDetection:
    """A single face reported by the landmark detector.

    Attributes:
        bbox: Bounding box (x, y, width, height) in pixels.
        landmarks: Landmark -> (x, y) pixel coordinates. Absent keys mean
            the detector did not report that point.
        yaw: Head yaw in degrees, if the detector provides it.
        pitch: Head pitch in degrees, if the detector provides it.
        left_eye_open: Probability [0, 1] that the left eye is open.
        right_eye_open: Probability [0, 1] that the right eye is open.
        smiling: Probability [0, 1] that the face is smiling.
    """

    bbox: Tuple[float, float, float, float] = (0.0, 0.0, 0.0, 0.0)
    landmarks: Dict[Landmark, Point] = field(default_factory=dict)
    yaw: Optional[float] = None
    pitch: Optional[float] = None
    left_eye_open: Optional[float] = None
    right_eye_open: Optional[float] = None
    smiling: Optional[float] = None

    @property
    def width(self) -> float:
        return float(self.bbox[2])

    def missing_landmarks(self) -> List[Landmark]:
        return [lm for lm in CORE_LANDMARKS if lm not in self.landmarks]

    @classmethod
    def from_dict(cls, data: dict) -> FaceDetection:
        """Build a detection from a JSON-style dict (used by replay files)."""
        landmarks = {
            Landmark(name): (float(pt[0]), float(pt[1]))
            for name, pt in (data.get("landmarks") or {}).items()
        }
        bbox = tuple(float(v) for v in data.get("bbox", (0.0, 0.0, 0.0, 0.0)))
        return cls(
            bbox=bbox,
            landmarks=landmarks,
            yaw=data.get("yaw"),
            pitch=data.get("pitch"),
            left_eye_open=data.get("left_eye_open"),
            right_eye_open=data.get("right_eye_open"),
            smiling=data.get("smiling"),
        )


@dataclass
class Frame:
    """One camera frame as seen by the core.

    ``image`` is only needed by the learned extraction strategy (RGB,
    H x W x 3, uint8). ``brightness`` is the mean luminance, if the frame
    source measured it.
    """

    faces: List[FaceDetection] = field(default_factory=list)
    image: Optional[np.ndarray] = None
    t_ns: Optional[int] = None
    brightness: Optional[float] = None


@dataclass
class FaceTemplate:
    """Stored embeddings for one enrolled user."""

    embeddings: List[Embedding]
    created_at: datetime
    strategy: str = "learned"

    @property
    def dim(self) -> int:
        return int(self.embeddings[0].shape[0]) if self.embeddings else 0


@dataclass(frozen=True)
class Position:
    """A position reading from the provider."""

    lat: float
    lng: float
    is_mocked: bool = False
    accuracy: Optional[float] = None

    def format(self) -> str:
        return f"{self.lat:.6f}, {self.lng:.6f}"


@dataclass
class ScanLogEntry:
    """Audit record written once per verification attempt."""

    user_id: str
    scan_type: ScanType
    success: bool
    similarity_score: Optional[float] = None
    error_reason: Optional[Reason] = None
    position: Optional[Position] = None
    device_info: Optional[dict] = None
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class AttendanceRecord:
    """A check-in, optionally closed by a check-out."""

    record_id: str
    user_id: str
    check_in_time: datetime
    check_out_time: Optional[datetime] = None
    status: str = "present"
    similarity_score: Optional[float] = None
    scan_log_id: Optional[str] = None
    location_lat: Optional[float] = None
    location_lng: Optional[float] = None

    @property
    def is_open(self) -> bool:
        return self.check_out_time is None

    @property
    def duration_s(self) -> Optional[float]:
        if self.check_out_time is None:
            return None
        return (self.check_out_time - self.check_in_time).total_seconds()


@dataclass
class RegistrationStatus:
    is_registered: bool
    registered_at: Optional[datetime] = None
    registration_count: int = 0


__all__ = [
    "Point",
    "Embedding",
    "Landmark",
    "CORE_LANDMARKS",
    "Reason",
    "ScanType",
    "FaceDetection",
    "Frame",
    "FaceTemplate",
    "Position",
    "ScanLogEntry",
    "AttendanceRecord",
    "RegistrationStatus",
]
