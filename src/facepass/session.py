"""Attendance session manager.

Combines the quality gate, liveness, embedding match and geofence into a
check-in / check-out decision for one user.

Per user the attendance state is either "no active session" or "active
session since <check-in time>". A check-in requires the former, a
check-out the latter.

A :class:`ScanSession` lives for one scan screen:

    manager = AttendanceSessionManager("u1", extractor, templates, attendance,
                                       scan_logs, positions)
    start = manager.begin(ScanKind.CHECK_IN)
    if start.session is None:
        show(start.decision)
    else:
        with start.session as scan:
            for frame in camera:
                update = scan.on_frame(frame)
                if update and update.decision:
                    break

Every verification attempt that produced a comparison writes exactly one
scan log entry. Scan log failures are logged and ignored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, List, Optional

import numpy as np

from facepass.config import FacepassConfig
from facepass.embedding.base import EmbeddingExtractor
from facepass.errors import StoreError
from facepass.geofence import GeofenceValidator
from facepass.liveness import LivenessMachine
from facepass.matcher import MatchResult, SimilarityMatcher
from facepass.quality import evaluate_frame
from facepass.scheduling import Clock, FrameGate
from facepass.stores import (
    AttendanceStore,
    PositionProvider,
    ScanLogStore,
    TemplateStore,
    append_scan_log,
)
from facepass.types import (
    AttendanceRecord,
    FaceDetection,
    FaceTemplate,
    Frame,
    Position,
    Reason,
    RegistrationStatus,
    ScanLogEntry,
    ScanType,
)

logger = logging.getLogger(__name__)

SCAN_STATS_WINDOW = 1000

MESSAGES = {
    Reason.ALREADY_CHECKED_IN: "You have already checked in. Please check out first.",
    Reason.NOT_CHECKED_IN: "No active check-in found. Please check in first.",
    Reason.NOT_REGISTERED: "Please register your face first",
    Reason.TEMPLATE_LOAD_FAILED: "Failed to load face data. Please try again.",
    Reason.EXTRACTION_FAILED: "Failed to extract face features",
    Reason.INCOMPATIBLE_TEMPLATE: "Face data is outdated. Please re-register your face.",
    Reason.RETRIES_EXHAUSTED: "Face mismatch. Please re-register in Profile.",
    Reason.PERSISTENCE_FAILED: "Face verified but attendance could not be saved.",
    Reason.CANCELLED: "Scan cancelled",
}


class ScanKind(str, Enum):
    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"


@dataclass
class AttendanceDecision:
    """Terminal outcome of a scan.

    Attributes:
        accepted: Face verification succeeded. Stays True when the
            attendance write failed afterwards (see ``write_failed``).
        kind: Check-in or check-out.
        reason: None on a clean success.
        similarity: Best similarity of the deciding match, if any.
        record_id: Attendance record created or closed.
        scan_log_id: Id of the scan log entry ("" when logging failed).
        status: "present" / "late" for check-ins.
        write_failed: Verification succeeded but the attendance write failed.
        message: User-facing text.
    """

    accepted: bool
    kind: ScanKind
    reason: Optional[Reason] = None
    similarity: Optional[float] = None
    record_id: Optional[str] = None
    scan_log_id: Optional[str] = None
    status: Optional[str] = None
    write_failed: bool = False
    message: str = ""


@dataclass
class ScanUpdate:
    """Per-frame feedback; ``decision`` is set once the scan is over."""

    prompt: str = ""
    reason: Optional[Reason] = None
    retry_count: int = 0
    decision: Optional[AttendanceDecision] = None


@dataclass
class ScanStart:
    """Result of :meth:`AttendanceSessionManager.begin`.

    Exactly one of ``session`` and ``decision`` is set.
    """

    session: Optional[ScanSession] = None
    decision: Optional[AttendanceDecision] = None

    @property
    def ok(self) -> bool:
        return self.session is not None


@dataclass
class AttendanceStatistics:
    total: int = 0
    present: int = 0
    late: int = 0
    absent: int = 0
    attendance_rate: float = 0.0


@dataclass
class ScanStatistics:
    """Summary of a user's scan log.

    Attributes:
        success_rate: Successful scans as a percentage of all scans.
        average_similarity: Mean score of successful scans that carry one.
        last_scan_at: Time of the newest entry.
    """

    total: int = 0
    successful: int = 0
    failed: int = 0
    registration: int = 0
    attendance: int = 0
    success_rate: float = 0.0
    average_similarity: float = 0.0
    last_scan_at: Optional[datetime] = None


def attendance_status(check_in_time: datetime, late_cutoff: tuple) -> str:
    """Return "late" strictly after the HH:MM cutoff, otherwise "present"."""
    if (check_in_time.hour, check_in_time.minute) > tuple(late_cutoff):
        return "late"
    return "present"


class ScanSession:
    """One scan screen: frames in, at most one terminal decision out.

    Created by :meth:`AttendanceSessionManager.begin`; do not construct
    directly.
    """

    def __init__(
        self,
        manager: AttendanceSessionManager,
        kind: ScanKind,
        template: FaceTemplate,
        position: Optional[Position],
        open_record: Optional[AttendanceRecord],
    ):
        cfg = manager.config
        self._manager = manager
        self.kind = kind
        self.template = template
        self.position = position
        self.open_record = open_record
        self.gate = FrameGate(cfg.scheduling.liveness_interval_ms, clock=manager.clock)
        self.liveness = LivenessMachine(cfg.liveness)
        self.matcher = SimilarityMatcher(cfg.matcher.threshold_for(manager.extractor.name))
        self.retry_count = 0
        self.decision: Optional[AttendanceDecision] = None
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    @property
    def user_id(self) -> str:
        return self._manager.user_id

    def on_frame(self, frame: Frame) -> Optional[ScanUpdate]:
        """Process one camera frame.

        Returns:
            None when the frame was dropped (busy, throttled, or the scan
            is no longer active); otherwise the frame's feedback.
        """
        if not self._active:
            return None

        with self.gate.processing(frame.t_ns) as admitted:
            if not admitted:
                return None

            verdict = evaluate_frame(frame, self._manager.config.quality, check_eyes=False)
            if not verdict.ok:
                return ScanUpdate(
                    prompt=verdict.hint, reason=verdict.reason, retry_count=self.retry_count,
                )

            effect = self.liveness.step(verdict.face)
            if not effect.verify:
                return ScanUpdate(prompt=effect.prompt, retry_count=self.retry_count)

            logger.debug("scan: %s challenge passed, verifying", effect.challenge.value)
            return self._verify(verdict.face, frame.image)

    def _verify(self, face: FaceDetection, image: Optional[np.ndarray]) -> Optional[ScanUpdate]:
        extractor = self._manager.extractor
        live = extractor.extract(face, image)
        if not self._active:
            return None

        if self.template.strategy != extractor.name:
            logger.warning(
                "Template strategy %s does not match extractor %s",
                self.template.strategy, extractor.name,
            )
            result = MatchResult(is_match=False, reason=Reason.INCOMPATIBLE_TEMPLATE)
        else:
            result = self.matcher.match(live, self.template.embeddings)

        if result.reason == Reason.EXTRACTION_FAILED:
            self.liveness.resume()
            return ScanUpdate(
                prompt=MESSAGES[Reason.EXTRACTION_FAILED],
                reason=Reason.EXTRACTION_FAILED,
                retry_count=self.retry_count,
            )

        compared = result.reason in (None, Reason.BELOW_THRESHOLD)
        scan_log_id = self._manager._log_attendance_scan(
            success=result.is_match,
            similarity=result.best_score if compared else None,
            reason=result.reason,
            position=self.position,
        )

        if result.is_match:
            self.retry_count = 0
            return self._finish(self._record(result.best_score, scan_log_id))

        if result.reason == Reason.INCOMPATIBLE_TEMPLATE:
            return self._finish(self._reject(Reason.INCOMPATIBLE_TEMPLATE, scan_log_id))

        if self.retry_count < self._manager.config.attendance.max_retries:
            self.retry_count += 1
            self.liveness.resume()
            logger.info(
                "Face not recognized for %s (score %.3f), retry %d/%d",
                self.user_id, result.best_score, self.retry_count,
                self._manager.config.attendance.max_retries,
            )
            return ScanUpdate(
                prompt=f"Verifying... (Attempt {self.retry_count + 1})",
                reason=Reason.BELOW_THRESHOLD,
                retry_count=self.retry_count,
            )

        logger.info("Face not recognized for %s after %d retries", self.user_id, self.retry_count)
        decision = self._reject(Reason.RETRIES_EXHAUSTED, scan_log_id)
        decision.similarity = result.best_score
        return self._finish(decision)

    def _reject(self, reason: Reason, scan_log_id: str) -> AttendanceDecision:
        return AttendanceDecision(
            accepted=False,
            kind=self.kind,
            reason=reason,
            scan_log_id=scan_log_id,
            message=MESSAGES[reason],
        )

    def _record(self, similarity: float, scan_log_id: str) -> AttendanceDecision:
        manager = self._manager
        now = manager.now()
        status = None
        try:
            if self.kind == ScanKind.CHECK_IN:
                status = attendance_status(now, manager.config.attendance.late_cutoff)
                record_id = manager.attendance_store.create_check_in(
                    manager.user_id,
                    now,
                    status=status,
                    similarity_score=similarity,
                    scan_log_id=scan_log_id or None,
                    position=self.position,
                )
            else:
                record_id = self.open_record.record_id
                manager.attendance_store.close_check_out(record_id, now)
        except StoreError as e:
            logger.warning("Attendance write failed for %s: %s", manager.user_id, e)
            return AttendanceDecision(
                accepted=True,
                kind=self.kind,
                reason=Reason.PERSISTENCE_FAILED,
                similarity=similarity,
                scan_log_id=scan_log_id,
                status=status,
                write_failed=True,
                message=MESSAGES[Reason.PERSISTENCE_FAILED],
            )

        verb = "Check-in" if self.kind == ScanKind.CHECK_IN else "Check-out"
        logger.info(
            "%s recorded for %s (similarity %.3f%s)",
            verb, manager.user_id, similarity, f", {status}" if status else "",
        )
        return AttendanceDecision(
            accepted=True,
            kind=self.kind,
            similarity=similarity,
            record_id=record_id,
            scan_log_id=scan_log_id,
            status=status,
            message=(
                f"{verb} Successful! Face recognized with "
                f"{similarity * 100:.1f}% match"
            ),
        )

    def _finish(self, decision: AttendanceDecision) -> ScanUpdate:
        self.decision = decision
        self.close()
        return ScanUpdate(
            prompt=decision.message,
            reason=decision.reason,
            retry_count=self.retry_count,
            decision=decision,
        )

    def close(self) -> None:
        """Stop the scan. Later frames and late results are ignored."""
        if not self._active:
            return
        self._active = False
        self.gate.reset()
        self.liveness.reset()
        self._manager._release(self)

    def __enter__(self) -> ScanSession:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class AttendanceSessionManager:
    """Attendance workflow for one user.

    Args:
        user_id: The signed-in user.
        extractor: Embedding strategy; must match the stored templates.
        template_store: Enrolled templates.
        attendance_store: Check-in / check-out records.
        scan_log_store: Audit log; optional.
        position_provider: GPS source for the geofence.
        config: Full configuration.
        clock: Monotonic nanosecond clock for frame throttling.
        now: Wall-clock source for attendance timestamps.
        device_info: Copied into every scan log entry.
    """

    def __init__(
        self,
        user_id: str,
        extractor: EmbeddingExtractor,
        template_store: TemplateStore,
        attendance_store: AttendanceStore,
        scan_log_store: Optional[ScanLogStore],
        position_provider: PositionProvider,
        config: FacepassConfig | None = None,
        clock: Optional[Clock] = None,
        now: Callable[[], datetime] = datetime.now,
        device_info: Optional[dict] = None,
    ):
        self.user_id = user_id
        self.extractor = extractor
        self.template_store = template_store
        self.attendance_store = attendance_store
        self.scan_log_store = scan_log_store
        self.position_provider = position_provider
        self.config = config or FacepassConfig()
        self.clock = clock
        self.now = now
        self.device_info = device_info
        self.geofence = GeofenceValidator(self.config.geofence)
        self._active_scan: Optional[ScanSession] = None

    @property
    def active_scan(self) -> Optional[ScanSession]:
        return self._active_scan

    def _refuse(self, kind: ScanKind, reason: Reason, message: str = "") -> ScanStart:
        logger.info("%s refused for %s: %s", kind.value, self.user_id, reason.value)
        return ScanStart(
            decision=AttendanceDecision(
                accepted=False,
                kind=kind,
                reason=reason,
                message=message or MESSAGES.get(reason, ""),
            )
        )

    def begin(self, kind: ScanKind) -> ScanStart:
        """Check preconditions and open a scan.

        Order: attendance state, enrolled template, geofence. The first
        failure is returned as a terminal decision and no scan is opened.
        Any scan still open for this user is closed first.
        """
        if self._active_scan is not None:
            self._active_scan.close()

        try:
            open_record = self.attendance_store.get_open_session(self.user_id)
        except StoreError as e:
            logger.warning("Failed to read attendance state for %s: %s", self.user_id, e)
            return self._refuse(kind, Reason.PERSISTENCE_FAILED, "Failed to check current session")

        if kind == ScanKind.CHECK_IN and open_record is not None:
            return self._refuse(kind, Reason.ALREADY_CHECKED_IN)
        if kind == ScanKind.CHECK_OUT and open_record is None:
            return self._refuse(kind, Reason.NOT_CHECKED_IN)

        try:
            template = self.template_store.get(self.user_id)
        except StoreError as e:
            logger.warning("Failed to load template for %s: %s", self.user_id, e)
            return self._refuse(kind, Reason.TEMPLATE_LOAD_FAILED)
        if template is None or not template.embeddings:
            return self._refuse(kind, Reason.NOT_REGISTERED)

        geo = self.geofence.validate_from(self.position_provider)
        if not geo.valid:
            return self._refuse(kind, geo.reason, geo.message)

        scan = ScanSession(self, kind, template, geo.position, open_record)
        self._active_scan = scan
        logger.debug("scan opened for %s (%s)", self.user_id, kind.value)
        return ScanStart(session=scan)

    def _release(self, scan: ScanSession) -> None:
        if self._active_scan is scan:
            self._active_scan = None

    def _log_attendance_scan(
        self,
        success: bool,
        similarity: Optional[float],
        reason: Optional[Reason],
        position: Optional[Position],
    ) -> str:
        return append_scan_log(
            self.scan_log_store,
            ScanLogEntry(
                user_id=self.user_id,
                scan_type=ScanType.ATTENDANCE,
                success=success,
                similarity_score=similarity,
                error_reason=reason,
                position=position,
                device_info=self.device_info,
                created_at=self.now(),
            ),
        )

    def statistics(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> AttendanceStatistics:
        """Summarize attendance records in ``[start, end]``."""
        records = self.attendance_store.list_records(self.user_id, start, end)
        total = len(records)
        present = sum(1 for r in records if r.status == "present")
        late = sum(1 for r in records if r.status == "late")
        absent = sum(1 for r in records if r.status == "absent")
        rate = round((present + late) / total * 100, 1) if total > 0 else 0.0
        return AttendanceStatistics(
            total=total, present=present, late=late, absent=absent, attendance_rate=rate,
        )

    def scan_history(
        self, limit: int = 50, scan_type: Optional[ScanType] = None
    ) -> List[ScanLogEntry]:
        """Newest-first scan log entries; empty when there is no log store."""
        if self.scan_log_store is None:
            return []
        return self.scan_log_store.list_entries(self.user_id, limit=limit, scan_type=scan_type)

    def scan_statistics(self) -> ScanStatistics:
        """Summarize the newest ``SCAN_STATS_WINDOW`` scan log entries."""
        entries = self.scan_history(limit=SCAN_STATS_WINDOW)
        total = len(entries)
        successful = sum(1 for e in entries if e.success)
        scores = [
            e.similarity_score for e in entries
            if e.success and e.similarity_score is not None
        ]
        return ScanStatistics(
            total=total,
            successful=successful,
            failed=total - successful,
            registration=sum(1 for e in entries if e.scan_type == ScanType.REGISTRATION),
            attendance=sum(1 for e in entries if e.scan_type == ScanType.ATTENDANCE),
            success_rate=round(successful / total * 100, 1) if total > 0 else 0.0,
            average_similarity=sum(scores) / len(scores) if scores else 0.0,
            last_scan_at=entries[0].created_at if entries else None,
        )

    def recent_failed_scans(self, minutes: float = 30.0) -> int:
        """Failed scans logged in the last ``minutes``."""
        since = self.now() - timedelta(minutes=minutes)
        return sum(
            1 for e in self.scan_history(limit=SCAN_STATS_WINDOW)
            if not e.success and e.created_at >= since
        )

    def registration_status(self) -> RegistrationStatus:
        template = self.template_store.get(self.user_id)
        if template is None or not template.embeddings:
            return RegistrationStatus(is_registered=False)
        return RegistrationStatus(
            is_registered=True,
            registered_at=template.created_at,
            registration_count=len(template.embeddings),
        )

    def reset_registration(self) -> None:
        """Delete the user's template; a new registration is required."""
        if self._active_scan is not None:
            self._active_scan.close()
        self.template_store.delete(self.user_id)
        logger.info("Face data reset for %s", self.user_id)


__all__ = [
    "ScanKind",
    "AttendanceDecision",
    "ScanUpdate",
    "ScanStart",
    "AttendanceStatistics",
    "ScanStatistics",
    "attendance_status",
    "ScanSession",
    "AttendanceSessionManager",
]
