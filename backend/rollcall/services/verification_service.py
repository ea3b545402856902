"""Scan verification against the live session state."""
import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from rollcall.services.attendance_ledger import AttendanceEntry, AttendanceLedger
from rollcall.services.session_registry import SessionRegistry
from rollcall.utils.errors import (
    DuplicateAttendance, InvalidInput, NoActiveSession, StaleOrInvalidToken, TokenExpired
)
from rollcall.utils.validators import Validator

logger = logging.getLogger(__name__)


class OutcomeStatus(enum.Enum):
    ACCEPTED = 'accepted'
    DUPLICATE = DuplicateAttendance.code
    REJECTED = 'rejected'


class RejectionReason(enum.Enum):
    INVALID_INPUT = InvalidInput.code
    NO_ACTIVE_SESSION = NoActiveSession.code
    STALE_OR_INVALID_TOKEN = StaleOrInvalidToken.code
    TOKEN_EXPIRED = TokenExpired.code


class Guidance(enum.Enum):
    """What the capture client should tell the student."""
    RECORDED = 'recorded'
    ALREADY_RECORDED = 'already-recorded'
    SCAN_AGAIN = 'scan-again'
    NO_OPEN_SESSION = 'no-open-session'
    FIX_REQUEST = 'fix-request'


_REASON_ERRORS = {
    RejectionReason.INVALID_INPUT: InvalidInput,
    RejectionReason.NO_ACTIVE_SESSION: NoActiveSession,
    RejectionReason.STALE_OR_INVALID_TOKEN: StaleOrInvalidToken,
    RejectionReason.TOKEN_EXPIRED: TokenExpired,
}

_REASON_GUIDANCE = {
    RejectionReason.INVALID_INPUT: Guidance.FIX_REQUEST,
    RejectionReason.NO_ACTIVE_SESSION: Guidance.NO_OPEN_SESSION,
    RejectionReason.STALE_OR_INVALID_TOKEN: Guidance.SCAN_AGAIN,
    RejectionReason.TOKEN_EXPIRED: Guidance.SCAN_AGAIN,
}

_MESSAGES = {
    Guidance.RECORDED: "Attendance marked successfully",
    Guidance.ALREADY_RECORDED: "Attendance already recorded for this session",
    Guidance.SCAN_AGAIN: "Code is no longer valid, scan the current code again",
    Guidance.NO_OPEN_SESSION: "No attendance session is open",
    Guidance.FIX_REQUEST: "Scan data is missing or malformed",
}


@dataclass(frozen=True)
class VerificationOutcome:
    status: OutcomeStatus
    reason: Optional[RejectionReason] = None
    entry: Optional[AttendanceEntry] = None

    @property
    def guidance(self) -> Guidance:
        if self.status is OutcomeStatus.ACCEPTED:
            return Guidance.RECORDED
        if self.status is OutcomeStatus.DUPLICATE:
            return Guidance.ALREADY_RECORDED
        return _REASON_GUIDANCE[self.reason]

    @property
    def error_class(self) -> Optional[type]:
        """Taxonomy class of a rejection or duplicate, None when accepted."""
        if self.status is OutcomeStatus.DUPLICATE:
            return DuplicateAttendance
        if self.status is OutcomeStatus.REJECTED:
            return _REASON_ERRORS[self.reason]
        return None

    @property
    def message(self) -> str:
        return _MESSAGES[self.guidance]

    @property
    def accepted(self) -> bool:
        return self.status is OutcomeStatus.ACCEPTED

    @classmethod
    def rejected(cls, reason: RejectionReason) -> 'VerificationOutcome':
        return cls(status=OutcomeStatus.REJECTED, reason=reason)

    def to_dict(self) -> dict:
        data = {
            'status': self.status.value,
            'reason': self.reason.value if self.reason else None,
            'guidance': self.guidance.value
        }
        if self.entry is not None:
            data['record'] = self.entry.to_dict()
        return data


class VerificationService:
    """
    Decides whether a scan is accepted.

    Checks run in a fixed order: identifiers, live session, token match,
    token freshness, and only then the ledger. A stale or forged scan never
    reaches the ledger, so it cannot occupy a student's record.
    """

    def __init__(self, registry: SessionRegistry, ledger: AttendanceLedger):
        self.registry = registry
        self.ledger = ledger

    def verify(self, session_id, token, student_id) -> VerificationOutcome:
        """
        Verify a scan. Rejections are returned, never raised; only a ledger
        failure propagates, as InternalFailure.
        """
        if not all(Validator.is_identifier(v) for v in (session_id, token, student_id)):
            return VerificationOutcome.rejected(RejectionReason.INVALID_INPUT)
        session_id, token, student_id = session_id.strip(), token.strip(), student_id.strip()

        session = self.registry.session_by_id(session_id)
        if session is None:
            logger.debug("Scan by %s rejected: no active session %s", student_id, session_id)
            return VerificationOutcome.rejected(RejectionReason.NO_ACTIVE_SESSION)

        if token != session.current_token:
            logger.debug("Scan by %s rejected: stale token for %s", student_id, session_id)
            return VerificationOutcome.rejected(RejectionReason.STALE_OR_INVALID_TOKEN)

        now = self.registry.now()
        if now - session.token_issued_at >= self.registry.rotation_interval:
            logger.debug("Scan by %s rejected: token expired for %s", student_id, session_id)
            return VerificationOutcome.rejected(RejectionReason.TOKEN_EXPIRED)

        result = self.ledger.record_if_absent(
            session_id,
            student_id,
            subject_ref=session.subject_ref,
            recorded_at=datetime.fromtimestamp(now, tz=timezone.utc)
        )
        if not result.created:
            return VerificationOutcome(status=OutcomeStatus.DUPLICATE, entry=result.entry)

        logger.info("Attendance recorded: %s in session %s", student_id, session_id)
        return VerificationOutcome(status=OutcomeStatus.ACCEPTED, entry=result.entry)
