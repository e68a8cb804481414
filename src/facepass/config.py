"""Configuration classes for facepass.

Every tunable constant lives in one dataclass tree so a deployment can
calibrate thresholds, pose conventions and the office geofence without
touching code.

Example:
    >>> from facepass.config import FacepassConfig
    >>> config = FacepassConfig.from_yaml("facepass.yaml")
    >>> config.matcher.threshold_for("learned")
    0.65
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, Tuple

from facepass.errors import ConfigError

FIVE_POSE: Tuple[str, ...] = ("center", "left", "right", "up", "down")
THREE_POSE: Tuple[str, ...] = ("center", "left", "right")


@dataclass(frozen=True)
class EmbeddingConfig:
    """Extraction strategy settings.

    Attributes:
        strategy: "learned" (crop -> CNN) or "geometric" (landmark ratios).
        input_size: Square model input resolution for the learned strategy.
        padding_ratio: Padding added on each side of the detector box.
        embed_dim: Expected learned embedding dimension.
        model_name: ONNX file name under the models directory.
        device: Inference device hint ("cpu", "cuda:0").
        min_eye_distance_px: Geometric strategy rejects faces whose
            inter-ocular distance is below this (face too small / far).
    """

    strategy: str = "learned"
    input_size: int = 112
    padding_ratio: float = 0.10
    embed_dim: int = 192
    model_name: str = "mobilefacenet.onnx"
    device: str = "cpu"
    min_eye_distance_px: float = 10.0


@dataclass(frozen=True)
class MatcherConfig:
    """Per-strategy calibrated match thresholds."""

    learned_threshold: float = 0.65
    geometric_threshold: float = 0.90

    def threshold_for(self, strategy: str) -> float:
        if strategy == "geometric":
            return self.geometric_threshold
        if strategy == "learned":
            return self.learned_threshold
        raise ConfigError(f"Unknown embedding strategy: {strategy!r}")


@dataclass(frozen=True)
class QualityConfig:
    min_face_px: float = 80.0
    max_frontal_yaw: float = 20.0
    eyes_closed_max: float = 0.2
    min_brightness: float = 90.0


@dataclass(frozen=True)
class LivenessConfig:
    smile_threshold: float = 0.6
    eyes_closed_threshold: float = 0.5
    eyes_open_threshold: float = 0.6


@dataclass(frozen=True)
class RegistrationConfig:
    """Capture sequence settings.

    ``yaw_left_sign`` / ``pitch_up_sign`` map detector angle signs to the
    left / up instructions and must be calibrated against the detector's
    coordinate convention.
    """

    poses: Tuple[str, ...] = FIVE_POSE
    center_max_deg: float = 10.0
    turn_min_deg: float = 12.0
    max_turn_deg: float = 40.0
    hold_seconds: float = 2.0
    yaw_left_sign: int = 1
    pitch_up_sign: int = 1


@dataclass(frozen=True)
class GeofenceConfig:
    office_lat: float = 3.0439774709176737
    office_lng: float = 101.70637935352624
    radius_m: float = 100.0
    position_timeout_s: float = 10.0


@dataclass(frozen=True)
class AttendanceConfig:
    """Session policy.

    Attributes:
        max_retries: Consecutive non-matching attempts allowed before the
            next failure becomes terminal.
        late_after: Local "HH:MM" after which a check-in is marked late.
    """

    max_retries: int = 3
    late_after: str = "08:30"

    @property
    def late_cutoff(self) -> Tuple[int, int]:
        try:
            hour, minute = (int(p) for p in self.late_after.split(":"))
        except ValueError:
            raise ConfigError(f"late_after must be HH:MM, got {self.late_after!r}")
        return hour, minute


@dataclass(frozen=True)
class SchedulingConfig:
    liveness_interval_ms: float = 50.0
    registration_interval_ms: float = 400.0
    timer_interval_s: float = 1.0


_SECTIONS = {
    "embedding": EmbeddingConfig,
    "matcher": MatcherConfig,
    "quality": QualityConfig,
    "liveness": LivenessConfig,
    "registration": RegistrationConfig,
    "geofence": GeofenceConfig,
    "attendance": AttendanceConfig,
    "scheduling": SchedulingConfig,
}


def _build_section(name: str, cls: type, data: Dict[str, Any]) -> Any:
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ConfigError(f"Unknown keys in [{name}]: {sorted(unknown)}")
    kwargs = dict(data)
    if name == "registration" and "poses" in kwargs:
        poses = kwargs["poses"]
        if poses == "five":
            poses = FIVE_POSE
        elif poses == "three":
            poses = THREE_POSE
        kwargs["poses"] = tuple(poses)
        bad = [p for p in kwargs["poses"] if p not in FIVE_POSE]
        if bad or not kwargs["poses"]:
            raise ConfigError(f"Invalid pose sequence: {poses!r}")
    return cls(**kwargs)


@dataclass(frozen=True)
class FacepassConfig:
    """Complete facepass configuration."""

    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    matcher: MatcherConfig = field(default_factory=MatcherConfig)
    quality: QualityConfig = field(default_factory=QualityConfig)
    liveness: LivenessConfig = field(default_factory=LivenessConfig)
    registration: RegistrationConfig = field(default_factory=RegistrationConfig)
    geofence: GeofenceConfig = field(default_factory=GeofenceConfig)
    attendance: AttendanceConfig = field(default_factory=AttendanceConfig)
    scheduling: SchedulingConfig = field(default_factory=SchedulingConfig)

    @property
    def threshold(self) -> float:
        """Match threshold calibrated for the active embedding strategy."""
        return self.matcher.threshold_for(self.embedding.strategy)

    @classmethod
    def from_dict(cls, data: Dict[str, Any] | None) -> FacepassConfig:
        """Create a config from a dictionary (e.g. loaded from YAML).

        Missing sections and keys keep their defaults; unknown ones raise
        :class:`ConfigError`.
        """
        data = data or {}
        unknown = set(data) - set(_SECTIONS)
        if unknown:
            raise ConfigError(f"Unknown config sections: {sorted(unknown)}")
        sections = {
            name: _build_section(name, section_cls, data.get(name) or {})
            for name, section_cls in _SECTIONS.items()
        }
        config = cls(**sections)
        config.validate()
        return config

    def validate(self) -> None:
        """Raise :class:`ConfigError` on values that cannot work together."""
        self.matcher.threshold_for(self.embedding.strategy)
        hour, minute = self.attendance.late_cutoff
        if not (0 <= hour < 24 and 0 <= minute < 60):
            raise ConfigError(f"late_after out of range: {self.attendance.late_after!r}")
        if self.attendance.max_retries < 0:
            raise ConfigError("max_retries must be >= 0")
        if self.geofence.radius_m <= 0:
            raise ConfigError("radius_m must be positive")

    @classmethod
    def from_yaml(cls, yaml_path: str) -> FacepassConfig:
        """Load a config from a YAML file.

        Raises:
            FileNotFoundError: If the file doesn't exist.
            ConfigError: If the content is not a mapping or has unknown keys.
        """
        import yaml

        with open(yaml_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)

        if data is not None and not isinstance(data, dict):
            raise ConfigError(f"{yaml_path}: top level must be a mapping")
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["registration"]["poses"] = list(self.registration.poses)
        return out


__all__ = [
    "FIVE_POSE",
    "THREE_POSE",
    "EmbeddingConfig",
    "MatcherConfig",
    "QualityConfig",
    "LivenessConfig",
    "RegistrationConfig",
    "GeofenceConfig",
    "AttendanceConfig",
    "SchedulingConfig",
    "FacepassConfig",
]
