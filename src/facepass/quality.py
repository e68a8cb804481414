"""Face quality gate.

Decides whether a frame carries exactly one usable face before any
liveness or capture logic looks at it. Failures are per-frame hints
(``Reason.is_transient``) and never end a session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from facepass.config import QualityConfig
from facepass.types import FaceDetection, Frame, Reason

logger = logging.getLogger(__name__)

HINT_NO_FACE = "No face detected"
HINT_MULTIPLE_FACES = "Only one person should be in frame"
HINT_TOO_SMALL = "Move closer to the camera"
HINT_LOOK_STRAIGHT = "Look straighter"
HINT_OPEN_EYES = "Open eyes"
HINT_TOO_DARK = "Too dark. Please find better lighting."


@dataclass
class QualityVerdict:
    """Outcome of the quality gate for one frame.

    Attributes:
        face: The single usable face, or None when the gate failed.
        reason: None when usable, otherwise the transient failure reason.
        hint: User-facing status message ("" when usable).
    """

    face: Optional[FaceDetection] = None
    reason: Optional[Reason] = None
    hint: str = ""

    @property
    def ok(self) -> bool:
        return self.face is not None and self.reason is None


def _reject(reason: Reason, hint: str) -> QualityVerdict:
    logger.debug("quality: %s (%s)", reason.value, hint)
    return QualityVerdict(face=None, reason=reason, hint=hint)


def evaluate_frame(
    frame: Frame,
    config: QualityConfig | None = None,
    check_eyes: bool = False,
    require_frontal: bool = True,
    check_brightness: bool = False,
) -> QualityVerdict:
    """Run the quality gate on a frame.

    Args:
        frame: Frame with the detector's faces.
        config: Thresholds; defaults when None.
        check_eyes: Reject when both eyes are closed. Liveness screens pass
            False because closed eyes are part of the blink challenge.
        require_frontal: Reject when ``|yaw|`` exceeds ``max_frontal_yaw``.
            Registration turns the head on purpose and passes False.
        check_brightness: Reject frames darker than ``min_brightness``.
    """
    cfg = config or QualityConfig()

    if check_brightness and frame.brightness is not None:
        if frame.brightness < cfg.min_brightness:
            return _reject(Reason.LOW_FACE_QUALITY, HINT_TOO_DARK)

    if not frame.faces:
        return _reject(Reason.NO_FACE_DETECTED, HINT_NO_FACE)
    if len(frame.faces) > 1:
        return _reject(Reason.MULTIPLE_FACES_DETECTED, HINT_MULTIPLE_FACES)

    face = frame.faces[0]
    if face.width < cfg.min_face_px:
        return _reject(Reason.LOW_FACE_QUALITY, HINT_TOO_SMALL)

    if require_frontal and face.yaw is not None and abs(face.yaw) > cfg.max_frontal_yaw:
        return _reject(Reason.LOW_FACE_QUALITY, HINT_LOOK_STRAIGHT)

    if check_eyes:
        left = 1.0 if face.left_eye_open is None else face.left_eye_open
        right = 1.0 if face.right_eye_open is None else face.right_eye_open
        if left < cfg.eyes_closed_max and right < cfg.eyes_closed_max:
            return _reject(Reason.LOW_FACE_QUALITY, HINT_OPEN_EYES)

    return QualityVerdict(face=face)


__all__ = ["QualityVerdict", "evaluate_frame"]
