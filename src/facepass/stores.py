"""Store and provider contracts plus in-memory implementations.

The core never talks to a database or GPS directly. Adapters implement
these Protocols; the in-memory versions back tests, the CLI and any
single-process deployment.

Adapters raise :class:`facepass.errors.StoreError` when the backend is
unreachable and :class:`facepass.errors.PositionUnavailableError` when no
position fix can be obtained.
"""

from __future__ import annotations

import copy
import logging
import uuid
from datetime import datetime
from typing import Dict, List, Optional, Protocol

from facepass.errors import PositionUnavailableError, StoreError
from facepass.types import AttendanceRecord, FaceTemplate, Position, ScanLogEntry, ScanType

logger = logging.getLogger(__name__)


class TemplateStore(Protocol):
    def get(self, user_id: str) -> Optional[FaceTemplate]:
        """Return the user's template, or None when not registered."""
        ...

    def save(self, user_id: str, template: FaceTemplate) -> None:
        """Store a template, replacing any previous one."""
        ...

    def delete(self, user_id: str) -> None:
        ...


class AttendanceStore(Protocol):
    def get_open_session(self, user_id: str) -> Optional[AttendanceRecord]:
        """Return the record with no check-out time, if any."""
        ...

    def create_check_in(
        self,
        user_id: str,
        check_in_time: datetime,
        status: str = "present",
        similarity_score: Optional[float] = None,
        scan_log_id: Optional[str] = None,
        position: Optional[Position] = None,
    ) -> str:
        ...

    def close_check_out(self, record_id: str, check_out_time: datetime) -> None:
        ...

    def list_records(
        self,
        user_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[AttendanceRecord]:
        ...


class ScanLogStore(Protocol):
    def append(self, entry: ScanLogEntry) -> str:
        """Append an audit entry and return its id."""
        ...

    def list_entries(
        self,
        user_id: str,
        limit: int = 50,
        scan_type: Optional[ScanType] = None,
    ) -> List[ScanLogEntry]:
        """Return the user's entries, newest first."""
        ...


class PositionProvider(Protocol):
    def is_service_enabled(self) -> bool:
        ...

    def has_permission(self) -> bool:
        ...

    def current(self, timeout_s: float = 10.0) -> Position:
        """Return a fresh position fix.

        Raises:
            PositionUnavailableError: On timeout or provider failure.
        """
        ...


def append_scan_log(store: Optional[ScanLogStore], entry: ScanLogEntry) -> str:
    """Append an audit entry, never raising.

    Returns:
        The entry id, or "" when there is no store or the write failed.
    """
    if store is None:
        return ""
    try:
        return store.append(entry) or ""
    except Exception as e:
        logger.warning(
            "Failed to write %s scan log for %s: %s", entry.scan_type.value, entry.user_id, e
        )
        return ""


def _new_id() -> str:
    return uuid.uuid4().hex


class InMemoryTemplateStore:
    def __init__(self):
        self._templates: Dict[str, FaceTemplate] = {}

    def get(self, user_id: str) -> Optional[FaceTemplate]:
        template = self._templates.get(user_id)
        return copy.deepcopy(template) if template is not None else None

    def save(self, user_id: str, template: FaceTemplate) -> None:
        self._templates[user_id] = copy.deepcopy(template)

    def delete(self, user_id: str) -> None:
        self._templates.pop(user_id, None)

    def __len__(self) -> int:
        return len(self._templates)


class InMemoryAttendanceStore:
    """Dict-backed attendance records.

    Refuses a second open record for the same user.
    """

    def __init__(self):
        self._records: Dict[str, AttendanceRecord] = {}

    def get_open_session(self, user_id: str) -> Optional[AttendanceRecord]:
        for record in self._records.values():
            if record.user_id == user_id and record.is_open:
                return copy.copy(record)
        return None

    def create_check_in(
        self,
        user_id: str,
        check_in_time: datetime,
        status: str = "present",
        similarity_score: Optional[float] = None,
        scan_log_id: Optional[str] = None,
        position: Optional[Position] = None,
    ) -> str:
        if self.get_open_session(user_id) is not None:
            raise StoreError(f"User {user_id} already has an open attendance record")
        record_id = _new_id()
        self._records[record_id] = AttendanceRecord(
            record_id=record_id,
            user_id=user_id,
            check_in_time=check_in_time,
            status=status,
            similarity_score=similarity_score,
            scan_log_id=scan_log_id,
            location_lat=position.lat if position else None,
            location_lng=position.lng if position else None,
        )
        return record_id

    def close_check_out(self, record_id: str, check_out_time: datetime) -> None:
        record = self._records.get(record_id)
        if record is None:
            raise StoreError(f"Unknown attendance record {record_id}")
        if not record.is_open:
            raise StoreError(f"Attendance record {record_id} already closed")
        record.check_out_time = check_out_time

    def list_records(
        self,
        user_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[AttendanceRecord]:
        records = [
            copy.copy(r)
            for r in self._records.values()
            if r.user_id == user_id
            and (start is None or r.check_in_time >= start)
            and (end is None or r.check_in_time <= end)
        ]
        return sorted(records, key=lambda r: r.check_in_time, reverse=True)


class InMemoryScanLogStore:
    def __init__(self):
        self.entries: List[ScanLogEntry] = []
        self.ids: List[str] = []

    def append(self, entry: ScanLogEntry) -> str:
        entry_id = _new_id()
        self.entries.append(entry)
        self.ids.append(entry_id)
        return entry_id

    def list_entries(
        self,
        user_id: str,
        limit: int = 50,
        scan_type: Optional[ScanType] = None,
    ) -> List[ScanLogEntry]:
        # ties keep newest-appended first
        entries = [
            e for e in reversed(self.entries)
            if e.user_id == user_id and (scan_type is None or e.scan_type == scan_type)
        ]
        entries.sort(key=lambda e: e.created_at, reverse=True)
        return entries[:limit]

    def __len__(self) -> int:
        return len(self.entries)


class FixedPositionProvider:
    """Provider returning a fixed position (or failing on demand).

    Args:
        position: Position returned by ``current``; None raises
            :class:`PositionUnavailableError`.
        service_enabled: Reported location-service state.
        permission_granted: Reported permission state.
    """

    def __init__(
        self,
        position: Optional[Position] = None,
        service_enabled: bool = True,
        permission_granted: bool = True,
    ):
        self.position = position
        self.service_enabled = service_enabled
        self.permission_granted = permission_granted

    def is_service_enabled(self) -> bool:
        return self.service_enabled

    def has_permission(self) -> bool:
        return self.permission_granted

    def current(self, timeout_s: float = 10.0) -> Position:
        if self.position is None:
            raise PositionUnavailableError(
                f"No position fix within {timeout_s:.0f}s"
            )
        return self.position


__all__ = [
    "TemplateStore",
    "AttendanceStore",
    "ScanLogStore",
    "PositionProvider",
    "append_scan_log",
    "InMemoryTemplateStore",
    "InMemoryAttendanceStore",
    "InMemoryScanLogStore",
    "FixedPositionProvider",
]
