"""In-memory registry of the active attendance session per subject."""
import logging
import secrets
import threading
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from rollcall.services.credential_channel import CredentialChannel
from rollcall.services.credential_codec import encode_credential
from rollcall.services.token_rotator import TokenRotator
from rollcall.utils.errors import InvalidSubject
from rollcall.utils.validators import Validator

logger = logging.getLogger(__name__)


def _isoformat(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def generate_session_id() -> str:
    return str(uuid.uuid4())


def generate_token() -> str:
    return secrets.token_urlsafe(16)


@dataclass(frozen=True)
class Credential:
    """Externally visible projection of a session at one rotation."""
    session_id: str
    subject_ref: str
    token: str
    payload: str
    issued_at: float
    expires_at: float
    sequence: int

    def to_dict(self) -> dict:
        return {
            'session_id': self.session_id,
            'subject_ref': self.subject_ref,
            'credential_payload': self.payload,
            'issued_at': _isoformat(self.issued_at),
            'expires_at': _isoformat(self.expires_at),
            'sequence': self.sequence
        }


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only copy of a session, safe to hand out of the registry."""
    session_id: str
    subject_ref: str
    current_token: str
    token_issued_at: float
    window_opened_at: float
    window_expires_at: float
    credential: Credential

    def to_dict(self) -> dict:
        return {
            'session_id': self.session_id,
            'subject_ref': self.subject_ref,
            'credential_payload': self.credential.payload,
            'opened_at': _isoformat(self.window_opened_at),
            'expires_at': _isoformat(self.window_expires_at),
            'token_issued_at': _isoformat(self.token_issued_at),
            'sequence': self.credential.sequence
        }


@dataclass
class Session:
    """Mutable session state. Only the registry holds references to it."""
    session_id: str
    subject_ref: str
    current_token: str
    token_issued_at: float
    window_opened_at: float
    window_expires_at: float
    credential: Credential
    rotator: Optional[TokenRotator] = None

    def is_expired(self, now: float) -> bool:
        return now >= self.window_expires_at

    def issue(self, token: str, issued_at: float, sequence: int) -> Credential:
        """Install a new token and return its credential."""
        self.current_token = token
        self.token_issued_at = issued_at
        self.credential = Credential(
            session_id=self.session_id,
            subject_ref=self.subject_ref,
            token=token,
            payload=encode_credential(self.session_id, token, self.subject_ref),
            issued_at=issued_at,
            expires_at=self.window_expires_at,
            sequence=sequence
        )
        return self.credential

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            session_id=self.session_id,
            subject_ref=self.subject_ref,
            current_token=self.current_token,
            token_issued_at=self.token_issued_at,
            window_opened_at=self.window_opened_at,
            window_expires_at=self.window_expires_at,
            credential=self.credential
        )


class _Slot:
    """Per-subject mutual-exclusion domain and the session it guards."""

    def __init__(self):
        self.lock = threading.RLock()
        self.session: Optional[Session] = None


class SessionRegistry:
    """
    Owns at most one live Session per subject.

    Every mutation of a subject's session (start, stop, rotation, expiry)
    happens under that subject's lock; different subjects never contend.
    Expiry is enforced by the rotator and again on every read, so a delayed
    timer can never expose a stale session.
    """

    def __init__(
        self,
        channel: CredentialChannel,
        rotation_interval: float = 5,
        window_duration: float = 30,
        clock: Callable[[], float] = time.time,
        rotator_factory: Callable[..., TokenRotator] = TokenRotator,
        subject_validator: Callable[[str], bool] = None,
    ):
        if rotation_interval <= 0 or window_duration <= 0:
            raise ValueError("rotation_interval and window_duration must be positive")
        self.channel = channel
        self.rotation_interval = rotation_interval
        self.window_duration = window_duration
        self._clock = clock
        self._rotator_factory = rotator_factory
        self._subject_validator = subject_validator
        self._guard = threading.Lock()
        self._slots: Dict[str, _Slot] = {}
        self._subject_by_session: Dict[str, str] = {}

    def now(self) -> float:
        return self._clock()

    # ------------------------------------------------------------------ lookup

    def _slot(self, subject_ref: str) -> _Slot:
        with self._guard:
            slot = self._slots.get(subject_ref)
            if slot is None:
                slot = self._slots[subject_ref] = _Slot()
            return slot

    def _subject_for(self, session_id: str) -> Optional[str]:
        with self._guard:
            return self._subject_by_session.get(session_id)

    # --------------------------------------------------------------- lifecycle

    def start(self, subject_ref: str) -> SessionSnapshot:
        """Open a session for the subject, superseding any current one."""
        if not Validator.is_identifier(subject_ref):
            raise InvalidSubject("Subject reference is missing or malformed")
        subject_ref = subject_ref.strip()
        if self._subject_validator is not None and not self._subject_validator(subject_ref):
            raise InvalidSubject(f"Unknown subject: {subject_ref}")

        slot = self._slot(subject_ref)
        superseded = None
        with slot.lock:
            if slot.session is not None:
                superseded = slot.session
                self._teardown(slot, superseded, close_streams=False)

            now = self.now()
            session_id = generate_session_id()
            session = Session(
                session_id=session_id,
                subject_ref=subject_ref,
                current_token='',
                token_issued_at=now,
                window_opened_at=now,
                window_expires_at=now + self.window_duration,
                credential=None
            )
            credential = session.issue(generate_token(), now, sequence=0)
            slot.session = session
            with self._guard:
                self._subject_by_session[session_id] = subject_ref

            self.channel.open(credential)
            session.rotator = self._rotator_factory(
                session_id=session_id,
                interval=self.rotation_interval,
                expires_at=session.window_expires_at,
                on_tick=lambda: self._rotate(subject_ref, session_id),
                on_expire=lambda: self._expire(subject_ref, session_id),
                clock=self._clock
            )
            session.rotator.start()
            snapshot = session.snapshot()

        if superseded is not None:
            superseded.rotator.join(timeout=1)
            logger.info("Session %s for %s superseded by %s",
                        superseded.session_id, subject_ref, session_id)
        logger.info("Session %s started for %s, expires %s",
                    session_id, subject_ref, _isoformat(snapshot.window_expires_at))
        return snapshot

    def stop(self, session_id: str) -> bool:
        """Tear down the session if it is the live one. Returns whether anything stopped."""
        subject_ref = self._subject_for(session_id)
        if subject_ref is None:
            return False

        slot = self._slot(subject_ref)
        with slot.lock:
            session = slot.session
            if session is None or session.session_id != session_id:
                return False
            self._teardown(slot, session, close_streams=True)

        session.rotator.join(timeout=1)
        logger.info("Session %s for %s stopped", session_id, subject_ref)
        return True

    def shutdown(self) -> None:
        """Stop every live session."""
        with self._guard:
            session_ids = list(self._subject_by_session)
        for session_id in session_ids:
            self.stop(session_id)

    # ------------------------------------------------------------------- reads

    def active_session(self, subject_ref: str) -> Optional[SessionSnapshot]:
        """The live session for a subject, or None if absent or expired."""
        if not isinstance(subject_ref, str):
            return None
        with self._guard:
            slot = self._slots.get(subject_ref.strip())
        if slot is None:
            return None
        with slot.lock:
            session = self._live(slot)
            return session.snapshot() if session else None

    def session_by_id(self, session_id: str) -> Optional[SessionSnapshot]:
        """The live session with this id, or None."""
        subject_ref = self._subject_for(session_id)
        if subject_ref is None:
            return None
        slot = self._slot(subject_ref)
        with slot.lock:
            session = self._live(slot)
            if session is None or session.session_id != session_id:
                return None
            return session.snapshot()

    def active_sessions(self) -> Dict[str, SessionSnapshot]:
        with self._guard:
            subjects = list(self._slots)
        sessions = {}
        for subject_ref in subjects:
            snapshot = self.active_session(subject_ref)
            if snapshot is not None:
                sessions[subject_ref] = snapshot
        return sessions

    # --------------------------------------------------------------- internals

    def _live(self, slot: _Slot) -> Optional[Session]:
        """Return the slot's session, tearing it down first if it has expired. Caller holds the lock."""
        session = slot.session
        if session is not None and session.is_expired(self.now()):
            self._teardown(slot, session, close_streams=True)
            logger.info("Session %s for %s expired", session.session_id, session.subject_ref)
            return None
        return session

    def _teardown(self, slot: _Slot, session: Session, close_streams: bool) -> None:
        """Cancel rotation and forget the session. Caller holds the slot lock."""
        if session.rotator is not None:
            session.rotator.cancel()
        slot.session = None
        with self._guard:
            self._subject_by_session.pop(session.session_id, None)
        if close_streams:
            self.channel.close(session.subject_ref, session.session_id)

    def _rotate(self, subject_ref: str, session_id: str) -> None:
        slot = self._slot(subject_ref)
        with slot.lock:
            session = self._live(slot)
            if session is None or session.session_id != session_id or session.rotator.cancelled:
                return
            credential = session.issue(
                generate_token(),
                self.now(),
                sequence=session.credential.sequence + 1
            )

        # Published after the lock is released; the channel drops it if the
        # session has been stopped or superseded in the meantime.
        try:
            self.channel.publish(credential)
        except Exception:
            logger.exception("Failed to publish credential for session %s", session_id)

    def _expire(self, subject_ref: str, session_id: str) -> None:
        slot = self._slot(subject_ref)
        with slot.lock:
            session = slot.session
            if session is None or session.session_id != session_id:
                return
            self._teardown(slot, session, close_streams=True)
        logger.info("Session %s for %s expired", session_id, subject_ref)
