"""Shared fixtures for the session service tests."""
import pytest
from flask_jwt_extended import create_access_token

from rollcall import create_app, db
from rollcall.models.subject import Subject
from rollcall.services.attendance_ledger import InMemoryLedger
from rollcall.services.attendance_service import get_attendance_service
from rollcall.services.credential_channel import CredentialChannel
from rollcall.services.session_registry import SessionRegistry
from rollcall.services.verification_service import VerificationService

T0 = 1_700_000_000.0


class FakeClock:
    """Clock the tests move by hand."""

    def __init__(self, start: float = T0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ManualRotator:
    """Rotator whose ticks are fired by the test instead of a thread."""

    def __init__(self, session_id, interval, expires_at, on_tick, on_expire, clock):
        self.session_id = session_id
        self.interval = interval
        self.expires_at = expires_at
        self._on_tick = on_tick
        self._on_expire = on_expire
        self.started = False
        self.cancelled = False
        self.joined = False

    def start(self):
        self.started = True
        return self

    def cancel(self):
        self.cancelled = True

    def join(self, timeout=None):
        self.joined = True

    def fire_tick(self):
        if not self.cancelled:
            self._on_tick()

    def fire_expire(self):
        if not self.cancelled:
            self._on_expire()


class ManualRotatorFactory:
    def __init__(self):
        self.created = []

    def __call__(self, **kwargs):
        rotator = ManualRotator(**kwargs)
        self.created.append(rotator)
        return rotator

    @property
    def latest(self) -> ManualRotator:
        return self.created[-1]

    def running(self):
        return [r for r in self.created if r.started and not r.cancelled]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rotators():
    return ManualRotatorFactory()


@pytest.fixture
def channel():
    return CredentialChannel(subscriber_queue_size=4)


@pytest.fixture
def registry(channel, clock, rotators):
    registry = SessionRegistry(
        channel,
        rotation_interval=5,
        window_duration=30,
        clock=clock,
        rotator_factory=rotators
    )
    yield registry
    registry.shutdown()


@pytest.fixture
def ledger():
    return InMemoryLedger()


@pytest.fixture
def verifier(registry, ledger):
    return VerificationService(registry, ledger)


@pytest.fixture
def app():
    """Create test app."""
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        Subject(code='SUBJ-1', title='Introduction to Programming').save()
        Subject(code='SUBJ-2', title='Data Structures').save()
        yield app
        get_attendance_service().shutdown()
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def instructor_headers(app):
    token = create_access_token(identity='teacher-1', additional_claims={'role': 'teacher'})
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def student_headers(app):
    token = create_access_token(identity='student-1', additional_claims={'role': 'student'})
    return {'Authorization': f'Bearer {token}'}
