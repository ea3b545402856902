"""Append-only attendance ledgers keyed by (session, student)."""
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

import redis
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from rollcall.utils.errors import InternalFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttendanceEntry:
    """One student's successful verification."""
    session_id: str
    student_id: str
    recorded_at: datetime
    subject_ref: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'session_id': self.session_id,
            'student_id': self.student_id,
            'subject_ref': self.subject_ref,
            'recorded_at': self.recorded_at.isoformat()
        }


@dataclass(frozen=True)
class LedgerResult:
    created: bool
    entry: AttendanceEntry


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AttendanceLedger:
    """
    Interface of an attendance ledger.

    ``record_if_absent`` must be atomic: concurrent calls for the same
    (session_id, student_id) produce exactly one created record.
    """

    def record_if_absent(
        self,
        session_id: str,
        student_id: str,
        subject_ref: str = None,
        recorded_at: datetime = None
    ) -> LedgerResult:
        raise NotImplementedError

    def records_for(self, session_id: str) -> List[AttendanceEntry]:
        raise NotImplementedError


class InMemoryLedger(AttendanceLedger):
    """Process-local ledger guarded by a single lock."""

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: Dict[Tuple[str, str], AttendanceEntry] = {}

    def record_if_absent(self, session_id, student_id, subject_ref=None, recorded_at=None):
        key = (session_id, student_id)
        with self._lock:
            existing = self._entries.get(key)
            if existing is not None:
                return LedgerResult(created=False, entry=existing)
            entry = AttendanceEntry(
                session_id=session_id,
                student_id=student_id,
                recorded_at=recorded_at or utcnow(),
                subject_ref=subject_ref
            )
            self._entries[key] = entry
            return LedgerResult(created=True, entry=entry)

    def records_for(self, session_id):
        with self._lock:
            entries = [e for (sid, _), e in self._entries.items() if sid == session_id]
        return sorted(entries, key=lambda e: e.recorded_at)


class SqlAlchemyLedger(AttendanceLedger):
    """
    Ledger stored in the ``attendance_records`` table.

    Atomicity comes from the unique constraint on (session_id, student_id):
    the loser of a concurrent insert gets an IntegrityError and reports the
    winner's record as a duplicate.
    """

    def __init__(self, db):
        self.db = db

    def record_if_absent(self, session_id, student_id, subject_ref=None, recorded_at=None):
        from rollcall.models.attendance import AttendanceRecord

        try:
            existing = AttendanceRecord.find(session_id, student_id)
            if existing is not None:
                return LedgerResult(created=False, entry=existing.to_entry())

            record = AttendanceRecord(
                session_id=session_id,
                student_id=student_id,
                subject_ref=subject_ref,
                recorded_at=recorded_at or utcnow()
            )
            self.db.session.add(record)
            try:
                self.db.session.commit()
            except IntegrityError:
                self.db.session.rollback()
                existing = AttendanceRecord.find(session_id, student_id)
                if existing is None:
                    raise
                return LedgerResult(created=False, entry=existing.to_entry())

            return LedgerResult(created=True, entry=record.to_entry())

        except SQLAlchemyError as e:
            self.db.session.rollback()
            logger.error("Attendance write failed for %s/%s: %s", session_id, student_id, e)
            raise InternalFailure("Attendance storage unavailable") from e

    def records_for(self, session_id):
        from rollcall.models.attendance import AttendanceRecord

        try:
            records = AttendanceRecord.query.filter_by(session_id=session_id) \
                .order_by(AttendanceRecord.recorded_at).all()
        except SQLAlchemyError as e:
            raise InternalFailure("Attendance storage unavailable") from e
        return [r.to_entry() for r in records]


class RedisLedger(AttendanceLedger):
    """
    Ledger kept in Redis, for deployments where several workers verify scans.

    ``SET key value NX`` decides the winner; the per-session hash is an index
    used for listing.
    """

    KEY_PREFIX = 'rollcall:attendance'

    def __init__(self, client, retention_seconds: int = 7 * 24 * 3600):
        self.client = client
        self.retention_seconds = retention_seconds

    def _pair_key(self, session_id: str, student_id: str) -> str:
        return f"{self.KEY_PREFIX}:{session_id}:{student_id}"

    def _index_key(self, session_id: str) -> str:
        return f"{self.KEY_PREFIX}:{session_id}"

    def _entry(self, session_id, student_id, value, subject_ref=None) -> AttendanceEntry:
        if isinstance(value, bytes):
            value = value.decode()
        return AttendanceEntry(
            session_id=session_id,
            student_id=student_id,
            recorded_at=datetime.fromisoformat(value),
            subject_ref=subject_ref
        )

    def record_if_absent(self, session_id, student_id, subject_ref=None, recorded_at=None):
        recorded_at = recorded_at or utcnow()
        value = recorded_at.isoformat()
        try:
            created = self.client.set(
                self._pair_key(session_id, student_id),
                value,
                nx=True,
                ex=self.retention_seconds
            )
            if not created:
                existing = self.client.get(self._pair_key(session_id, student_id))
                return LedgerResult(
                    created=False,
                    entry=self._entry(session_id, student_id, existing or value, subject_ref)
                )

            self.client.hset(self._index_key(session_id), student_id, value)
            self.client.expire(self._index_key(session_id), self.retention_seconds)
        except redis.RedisError as e:
            logger.error("Attendance write failed for %s/%s: %s", session_id, student_id, e)
            raise InternalFailure("Attendance storage unavailable") from e

        return LedgerResult(
            created=True,
            entry=AttendanceEntry(session_id, student_id, recorded_at, subject_ref)
        )

    def records_for(self, session_id):
        try:
            raw = self.client.hgetall(self._index_key(session_id))
        except redis.RedisError as e:
            raise InternalFailure("Attendance storage unavailable") from e

        entries = []
        for student_id, value in raw.items():
            if isinstance(student_id, bytes):
                student_id = student_id.decode()
            entries.append(self._entry(session_id, student_id, value))
        return sorted(entries, key=lambda e: e.recorded_at)
