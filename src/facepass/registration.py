"""Multi-pose registration capture.

The user is guided through a pose sequence (center, left, right and
optionally up, down). Each pose must be held for ``hold_seconds`` while the
face stays in position and passes the quality gate; then one embedding is
extracted. When every pose is captured the embeddings are averaged into a
single normalized template.

Nothing is persisted until the whole sequence completes; cancelling or
restarting discards every captured embedding.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

import numpy as np

from facepass.config import FacepassConfig, QualityConfig, RegistrationConfig
from facepass.embedding.base import EmbeddingExtractor
from facepass.errors import StoreError
from facepass.geometry import is_zero
from facepass.matcher import average_embeddings
from facepass.quality import evaluate_frame
from facepass.scheduling import Clock, CountdownTimer, FrameGate
from facepass.stores import ScanLogStore, TemplateStore, append_scan_log
from facepass.types import FaceDetection, FaceTemplate, Frame, Reason, ScanLogEntry, ScanType

logger = logging.getLogger(__name__)

INSTRUCTIONS = {
    "center": "Look straight ahead",
    "left": "Turn your head to the LEFT",
    "right": "Turn your head to the RIGHT",
    "up": "Tilt your head UP",
    "down": "Tilt your head DOWN",
}

HINT_HOLD = "Hold still..."
HINT_TURN_BACK = "Turn back slightly"
HINT_EXTRACTION_FAILED = "Failed to extract face features, try again"
HINT_SAVE_FAILED = "Failed to save face data. Please start again."
HINT_COMPLETE = "Face Registered!"


def classify_pose(
    pose: str,
    yaw: Optional[float],
    pitch: Optional[float],
    config: RegistrationConfig | None = None,
) -> Tuple[bool, str]:
    """Check whether head angles satisfy the required pose.

    Angles are first mapped through ``yaw_left_sign`` / ``pitch_up_sign`` so
    positive yaw means "left" and positive pitch means "up". Missing angles
    count as 0.

    Returns:
        (in_position, hint); hint is "" when in position.
    """
    cfg = config or RegistrationConfig()
    y = (yaw or 0.0) * cfg.yaw_left_sign
    p = (pitch or 0.0) * cfg.pitch_up_sign

    if pose == "center":
        if abs(y) >= cfg.center_max_deg:
            return False, "Turn your head slightly right" if y > 0 else "Turn your head slightly left"
        if abs(p) >= cfg.center_max_deg:
            return False, "Tilt your head slightly down" if p > 0 else "Tilt your head slightly up"
        return True, ""

    if pose in ("left", "right"):
        angle = y if pose == "left" else -y
        more = f"Turn your head more to the {pose}"
    elif pose in ("up", "down"):
        angle = p if pose == "up" else -p
        more = f"Tilt your head more {pose}"
    else:
        raise ValueError(f"Unknown pose: {pose!r}")

    if angle <= cfg.turn_min_deg:
        return False, more
    if angle >= cfg.max_turn_deg:
        return False, HINT_TURN_BACK
    return True, ""


class CaptureState(str, Enum):
    CAPTURING = "capturing"
    COMPLETE = "complete"
    CANCELLED = "cancelled"


@dataclass
class CaptureUpdate:
    """Per-frame feedback from the capture machine.

    Attributes:
        pose: Pose currently required ("" once finished).
        instruction: What the user should do for ``pose``.
        hint: Status message for this frame.
        in_position: Face is in the required pose and passed the gate.
        countdown: Seconds left on the hold timer (0 when not holding).
        captured_pose: Pose whose embedding was captured on this frame.
        complete: All poses captured and the template is ready.
        reason: Failure reason for this frame, if any.
        saved: Set by :class:`RegistrationController` once stored.
    """

    pose: str = ""
    instruction: str = ""
    hint: str = ""
    in_position: bool = False
    countdown: float = 0.0
    captured_pose: Optional[str] = None
    complete: bool = False
    reason: Optional[Reason] = None
    saved: bool = False


class CaptureMachine:
    """Pose-by-pose capture of registration embeddings.

    Args:
        extractor: Embedding strategy used for every pose.
        config: Pose sequence and thresholds.
        quality: Face quality thresholds.
        timer_interval_s: Countdown step of the hold timer.
        clock: Monotonic nanosecond clock; frame ``t_ns`` takes precedence.
    """

    def __init__(
        self,
        extractor: EmbeddingExtractor,
        config: RegistrationConfig | None = None,
        quality: QualityConfig | None = None,
        timer_interval_s: float = 1.0,
        clock: Optional[Clock] = None,
    ):
        self.extractor = extractor
        self.config = config or RegistrationConfig()
        self.quality = quality or QualityConfig()
        self._timer = CountdownTimer(
            seconds=self.config.hold_seconds, interval_s=timer_interval_s, clock=clock,
        )
        self._clock = clock
        self.state = CaptureState.CAPTURING
        self._index = 0
        self._captured: Dict[str, np.ndarray] = {}
        self._template: Optional[FaceTemplate] = None

    @property
    def poses(self) -> Tuple[str, ...]:
        return self.config.poses

    @property
    def current_pose(self) -> Optional[str]:
        if self.state != CaptureState.CAPTURING or self._index >= len(self.poses):
            return None
        return self.poses[self._index]

    @property
    def captured_count(self) -> int:
        return len(self._captured)

    @property
    def holding(self) -> bool:
        return self._timer.running

    @property
    def template(self) -> Optional[FaceTemplate]:
        return self._template

    def _update(self, **kwargs) -> CaptureUpdate:
        pose = self.current_pose or ""
        return CaptureUpdate(pose=pose, instruction=INSTRUCTIONS.get(pose, ""), **kwargs)

    def _not_in_position(self, hint: str, reason: Optional[Reason] = None) -> CaptureUpdate:
        self._timer.cancel()
        return self._update(hint=hint, reason=reason)

    def on_frame(self, frame: Frame) -> CaptureUpdate:
        if self.state == CaptureState.COMPLETE:
            return CaptureUpdate(hint=HINT_COMPLETE, complete=True)
        if self.state == CaptureState.CANCELLED:
            return CaptureUpdate(reason=Reason.CANCELLED)

        verdict = evaluate_frame(
            frame, self.quality,
            check_eyes=True, require_frontal=False, check_brightness=True,
        )
        if not verdict.ok:
            return self._not_in_position(verdict.hint, verdict.reason)

        face = verdict.face
        in_position, hint = classify_pose(self.current_pose, face.yaw, face.pitch, self.config)
        if not in_position:
            return self._not_in_position(hint)

        now = frame.t_ns
        if now is None and self._clock is not None:
            now = self._clock()
        self._timer.start(now)
        if not self._timer.tick(now):
            return self._update(
                hint=HINT_HOLD, in_position=True, countdown=self._timer.remaining,
            )
        return self._capture(face, frame.image)

    def _capture(self, face: FaceDetection, image: Optional[np.ndarray]) -> CaptureUpdate:
        pose = self.current_pose
        embedding = self.extractor.extract(face, image)
        if is_zero(embedding):
            logger.debug("registration: extraction failed for pose %s", pose)
            return self._extraction_failed()

        expected = next(iter(self._captured.values()), None)
        if expected is not None and expected.shape != embedding.shape:
            logger.warning(
                "registration: %s embedding has shape %s, earlier poses %s",
                pose, embedding.shape, expected.shape,
            )
            return self._extraction_failed()

        self._captured[pose] = embedding
        logger.debug(
            "registration: captured %s (%d/%d)", pose, len(self._captured), len(self.poses)
        )

        if self._index + 1 < len(self.poses):
            self._index += 1
            nxt = self.poses[self._index]
            return self._update(
                hint=f"Great! Now {INSTRUCTIONS[nxt].lower()}", captured_pose=pose,
            )

        self._template = self.finalize()
        self._index += 1
        self.state = CaptureState.COMPLETE
        return CaptureUpdate(hint=HINT_COMPLETE, captured_pose=pose, complete=True)

    def _extraction_failed(self) -> CaptureUpdate:
        return self._update(
            hint=HINT_EXTRACTION_FAILED, in_position=True, reason=Reason.EXTRACTION_FAILED,
        )

    def finalize(self) -> FaceTemplate:
        """Average the captured embeddings into a single-vector template.

        Raises:
            RuntimeError: If any pose is still missing.
        """
        missing = [p for p in self.poses if p not in self._captured]
        if missing:
            raise RuntimeError(f"Cannot finalize registration, missing poses: {missing}")
        vectors: List[np.ndarray] = [self._captured[p] for p in self.poses]
        return FaceTemplate(
            embeddings=[average_embeddings(vectors)],
            created_at=datetime.now(),
            strategy=self.extractor.name,
        )

    def cancel(self) -> None:
        self._timer.cancel()
        self._captured.clear()
        self._template = None
        self.state = CaptureState.CANCELLED

    def restart(self) -> None:
        """Discard everything and start again from the first pose."""
        self._timer.cancel()
        self._captured.clear()
        self._template = None
        self._index = 0
        self.state = CaptureState.CAPTURING


class RegistrationController:
    """Runs one registration screen for a user.

    Throttles frames, drives the :class:`CaptureMachine` and stores the
    finished template. A failed save requires a full restart.

    Usage:
        with RegistrationController("u1", extractor, store) as ctrl:
            for frame in frames:
                update = ctrl.on_frame(frame)
    """

    def __init__(
        self,
        user_id: str,
        extractor: EmbeddingExtractor,
        template_store: TemplateStore,
        scan_log_store: Optional[ScanLogStore] = None,
        config: FacepassConfig | None = None,
        clock: Optional[Clock] = None,
        device_info: Optional[dict] = None,
    ):
        cfg = config or FacepassConfig()
        self.user_id = user_id
        self.template_store = template_store
        self.scan_log_store = scan_log_store
        self.device_info = device_info
        self.gate = FrameGate(cfg.scheduling.registration_interval_ms, clock=clock)
        self.machine = CaptureMachine(
            extractor,
            config=cfg.registration,
            quality=cfg.quality,
            timer_interval_s=cfg.scheduling.timer_interval_s,
            clock=clock,
        )
        self._active = True
        self.saved = False

    @property
    def active(self) -> bool:
        return self._active

    def on_frame(self, frame: Frame) -> Optional[CaptureUpdate]:
        """Process a frame; None when it was dropped by the gate."""
        if not self._active:
            return None
        with self.gate.processing(frame.t_ns) as admitted:
            if not admitted:
                return None
            update = self.machine.on_frame(frame)
            if update.complete and not self.saved:
                return self._save(update)
            return update

    def _save(self, update: CaptureUpdate) -> CaptureUpdate:
        template = self.machine.template
        try:
            self.template_store.save(self.user_id, template)
        except StoreError as e:
            logger.warning("Failed to save template for %s: %s", self.user_id, e)
            self._log(success=False, reason=Reason.PERSISTENCE_FAILED)
            self.machine.restart()
            return CaptureUpdate(
                pose=self.machine.current_pose or "",
                instruction=INSTRUCTIONS.get(self.machine.current_pose or "", ""),
                hint=HINT_SAVE_FAILED,
                reason=Reason.PERSISTENCE_FAILED,
            )

        self.saved = True
        self._log(success=True)
        logger.info(
            "Registration completed for %s (%d poses, %s)",
            self.user_id, len(self.machine.poses), template.strategy,
        )
        update.saved = True
        return update

    def _log(self, success: bool, reason: Optional[Reason] = None) -> str:
        return append_scan_log(
            self.scan_log_store,
            ScanLogEntry(
                user_id=self.user_id,
                scan_type=ScanType.REGISTRATION,
                success=success,
                error_reason=reason,
                device_info=self.device_info,
            ),
        )

    def cancel(self) -> None:
        self.machine.cancel()
        self.close()

    def close(self) -> None:
        self._active = False
        self.gate.reset()
        if self.machine.state == CaptureState.CAPTURING:
            self.machine.cancel()

    def __enter__(self) -> RegistrationController:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = [
    "INSTRUCTIONS",
    "classify_pose",
    "CaptureState",
    "CaptureUpdate",
    "CaptureMachine",
    "RegistrationController",
]
