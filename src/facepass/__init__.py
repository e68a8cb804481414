"""facepass - Face verified attendance core.

Turns landmark-detector output into face templates, matches live faces
against them behind a blink / smile liveness challenge, and records
check-ins and check-outs inside an office geofence.

Quick Start:
    >>> from facepass import AttendanceSessionManager, ScanKind, create_extractor
    >>> from facepass import FacepassConfig
    >>> config = FacepassConfig.from_yaml("facepass.yaml")
    >>> extractor = create_extractor(config.embedding)
    >>> manager = AttendanceSessionManager("u1", extractor, templates, attendance,
    ...                                    scan_logs, positions, config=config)
    >>> start = manager.begin(ScanKind.CHECK_IN)
    >>> with start.session as scan:
    ...     update = scan.on_frame(frame)
"""

__version__ = "0.1.0"

from facepass.types import (
    Landmark,
    Reason,
    ScanType,
    FaceDetection,
    Frame,
    FaceTemplate,
    Position,
    ScanLogEntry,
    AttendanceRecord,
    RegistrationStatus,
)
from facepass.errors import FacepassError, StoreError, PositionUnavailableError, ConfigError
from facepass.config import FacepassConfig
from facepass.embedding import create_extractor, GeometricExtractor, LearnedExtractor
from facepass.matcher import MatchResult, SimilarityMatcher, similarity, average_embeddings
from facepass.liveness import LivenessMachine, LivenessState
from facepass.registration import CaptureMachine, RegistrationController, classify_pose
from facepass.geofence import GeofenceResult, GeofenceValidator, format_distance
from facepass.session import AttendanceDecision, AttendanceSessionManager, ScanKind, ScanSession
from facepass.persistence import JsonTemplateStore

__all__ = [
    "Landmark",
    "Reason",
    "ScanType",
    "FaceDetection",
    "Frame",
    "FaceTemplate",
    "Position",
    "ScanLogEntry",
    "AttendanceRecord",
    "RegistrationStatus",
    "FacepassError",
    "StoreError",
    "PositionUnavailableError",
    "ConfigError",
    "FacepassConfig",
    "create_extractor",
    "GeometricExtractor",
    "LearnedExtractor",
    "MatchResult",
    "SimilarityMatcher",
    "similarity",
    "average_embeddings",
    "LivenessMachine",
    "LivenessState",
    "CaptureMachine",
    "RegistrationController",
    "classify_pose",
    "GeofenceResult",
    "GeofenceValidator",
    "format_distance",
    "AttendanceDecision",
    "AttendanceSessionManager",
    "ScanKind",
    "ScanSession",
    "JsonTemplateStore",
]
