"""Attendance session operations exposed to the HTTP layer."""
import logging
from typing import List, Optional

import redis
from flask import Flask, current_app

from rollcall.services.attendance_ledger import (
    AttendanceEntry, AttendanceLedger, InMemoryLedger, RedisLedger, SqlAlchemyLedger
)
from rollcall.services.credential_channel import CredentialChannel, Subscription
from rollcall.services.credential_codec import decode_credential
from rollcall.services.session_registry import SessionRegistry, SessionSnapshot
from rollcall.services.verification_service import (
    RejectionReason, VerificationOutcome, VerificationService
)
from rollcall.utils.errors import InvalidInput, NoActiveSession
from rollcall.utils.validators import Validator

logger = logging.getLogger(__name__)

EXTENSION_KEY = 'rollcall'


class AttendanceService:
    """Start, stop, read, verify and subscribe, for one application."""

    def __init__(
        self,
        registry: SessionRegistry,
        ledger: AttendanceLedger,
    ):
        self.registry = registry
        self.ledger = ledger
        self.channel: CredentialChannel = registry.channel
        self.verifier = VerificationService(registry, ledger)

    def start_session(self, subject_ref: str) -> SessionSnapshot:
        return self.registry.start(subject_ref)

    def stop_session(self, session_id: str) -> bool:
        session_id = Validator.require_identifier(session_id, 'session_id')
        return self.registry.stop(session_id)

    def get_active_session(self, subject_ref: str) -> Optional[SessionSnapshot]:
        return self.registry.active_session(subject_ref)

    def verify_scan(self, session_id: str, token: str, student_id: str) -> VerificationOutcome:
        return self.verifier.verify(session_id, token, student_id)

    def verify_payload(self, payload: str, student_id: str) -> VerificationOutcome:
        """Verify a raw scanned payload."""
        try:
            decoded = decode_credential(payload)
        except InvalidInput:
            return VerificationOutcome.rejected(RejectionReason.INVALID_INPUT)
        return self.verifier.verify(decoded.session_id, decoded.token, student_id)

    def subscribe_credential_updates(self, subject_ref: str) -> Subscription:
        """Attach a display to a subject's credential stream."""
        if self.registry.active_session(subject_ref) is None:
            raise NoActiveSession(f"No active session for {subject_ref}")
        subscription = self.channel.subscribe(subject_ref.strip())
        if subscription is None:
            raise NoActiveSession(f"No active session for {subject_ref}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        self.channel.unsubscribe(subscription)

    def list_attendance(self, session_id: str) -> List[AttendanceEntry]:
        session_id = Validator.require_identifier(session_id, 'session_id')
        return self.ledger.records_for(session_id)

    def shutdown(self) -> None:
        self.registry.shutdown()


def build_ledger(app: Flask) -> AttendanceLedger:
    """Create the ledger selected by LEDGER_BACKEND."""
    backend = app.config.get('LEDGER_BACKEND', 'sqlalchemy')

    if backend == 'memory':
        return InMemoryLedger()
    if backend == 'redis':
        client = redis.Redis.from_url(app.config['REDIS_URL'])
        return RedisLedger(client, retention_seconds=app.config.get('LEDGER_RETENTION_SECONDS', 7 * 24 * 3600))
    if backend == 'sqlalchemy':
        from rollcall import db
        return SqlAlchemyLedger(db)

    raise ValueError(f"Unknown LEDGER_BACKEND: {backend}")


def init_app(app: Flask) -> AttendanceService:
    """Build the attendance service for ``app`` and register it as an extension."""
    subject_validator = None
    if app.config.get('REQUIRE_KNOWN_SUBJECT', True):
        from rollcall.models.subject import Subject
        subject_validator = Subject.exists

    channel = CredentialChannel(subscriber_queue_size=app.config.get('SUBSCRIBER_QUEUE_SIZE', 8))
    registry = SessionRegistry(
        channel,
        rotation_interval=app.config.get('ROTATION_INTERVAL_SECONDS', 5),
        window_duration=app.config.get('SESSION_WINDOW_SECONDS', 30),
        subject_validator=subject_validator
    )
    service = AttendanceService(registry, build_ledger(app))

    app.extensions[EXTENSION_KEY] = service
    app.logger.debug(
        'Attendance service ready (rotation %ss, window %ss, ledger %s)',
        registry.rotation_interval, registry.window_duration, app.config.get('LEDGER_BACKEND')
    )
    return service


def get_attendance_service() -> AttendanceService:
    """The attendance service of the current application."""
    return current_app.extensions[EXTENSION_KEY]
