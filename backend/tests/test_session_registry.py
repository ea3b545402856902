"""Test session lifecycle in the registry."""
import pytest

from rollcall.services.credential_codec import decode_credential
from rollcall.services.session_registry import SessionRegistry
from rollcall.utils.errors import InvalidSubject


def test_start_issues_first_credential_synchronously(registry, clock, rotators):
    session = registry.start('SUBJ-1')

    assert session.subject_ref == 'SUBJ-1'
    assert session.credential.sequence == 0
    assert session.token_issued_at == clock.now
    assert session.window_expires_at == clock.now + 30
    assert decode_credential(session.credential.payload).token == session.current_token
    assert rotators.latest.started


@pytest.mark.parametrize('subject_ref', ['', '   ', None, 'has spaces'])
def test_start_rejects_invalid_subject(registry, subject_ref):
    with pytest.raises(InvalidSubject):
        registry.start(subject_ref)


def test_start_rejects_unknown_subject(channel, clock, rotators):
    registry = SessionRegistry(
        channel, clock=clock, rotator_factory=rotators,
        subject_validator=lambda code: code == 'SUBJ-1'
    )

    with pytest.raises(InvalidSubject, match='Unknown subject'):
        registry.start('SUBJ-9')
    assert registry.start('SUBJ-1').subject_ref == 'SUBJ-1'


def test_second_start_supersedes_first(registry, rotators):
    first = registry.start('SUBJ-1')
    first_rotator = rotators.latest

    second = registry.start('SUBJ-1')

    assert second.session_id != first.session_id
    assert first_rotator.cancelled
    assert registry.session_by_id(first.session_id) is None
    assert registry.active_session('SUBJ-1').session_id == second.session_id
    assert len(rotators.running()) == 1


def test_subjects_are_independent(registry):
    one = registry.start('SUBJ-1')
    two = registry.start('SUBJ-2')

    assert registry.active_session('SUBJ-1').session_id == one.session_id
    assert registry.active_session('SUBJ-2').session_id == two.session_id


def test_stop_tears_down_session(registry, rotators):
    session = registry.start('SUBJ-1')

    assert registry.stop(session.session_id) is True

    assert registry.active_session('SUBJ-1') is None
    assert rotators.latest.cancelled
    assert rotators.running() == []


def test_stop_is_idempotent(registry):
    session = registry.start('SUBJ-1')

    assert registry.stop(session.session_id) is True
    assert registry.stop(session.session_id) is False
    assert registry.stop('never-existed') is False


def test_stopping_superseded_session_leaves_current_alone(registry):
    first = registry.start('SUBJ-1')
    second = registry.start('SUBJ-1')

    assert registry.stop(first.session_id) is False
    assert registry.active_session('SUBJ-1').session_id == second.session_id


def test_rotation_replaces_token(registry, clock, rotators):
    session = registry.start('SUBJ-1')

    clock.advance(5)
    rotators.latest.fire_tick()

    rotated = registry.active_session('SUBJ-1')
    assert rotated.session_id == session.session_id
    assert rotated.current_token != session.current_token
    assert rotated.token_issued_at == clock.now
    assert rotated.credential.sequence == 1
    assert decode_credential(rotated.credential.payload).token == rotated.current_token


def test_late_tick_after_stop_does_nothing(registry, channel, rotators):
    session = registry.start('SUBJ-1')
    rotator = rotators.latest
    registry.stop(session.session_id)

    # Bypass the cancelled flag to simulate a callback already in flight.
    rotator._on_tick()

    assert registry.active_session('SUBJ-1') is None
    assert channel.subscribe('SUBJ-1') is None


def test_read_expires_session_lazily(registry, clock, rotators):
    session = registry.start('SUBJ-1')

    clock.advance(29.5)
    assert registry.active_session('SUBJ-1') is not None

    clock.advance(0.5)
    assert registry.active_session('SUBJ-1') is None
    assert registry.session_by_id(session.session_id) is None
    assert rotators.latest.cancelled


def test_rotator_expiry_tears_down_session(registry, clock, rotators):
    session = registry.start('SUBJ-1')

    clock.advance(30)
    rotators.latest.fire_expire()

    assert rotators.latest.cancelled
    assert registry.stop(session.session_id) is False


def test_shutdown_stops_every_session(registry, rotators):
    registry.start('SUBJ-1')
    registry.start('SUBJ-2')

    registry.shutdown()

    assert registry.active_sessions() == {}
    assert rotators.running() == []


def test_registry_rejects_non_positive_intervals(channel):
    with pytest.raises(ValueError):
        SessionRegistry(channel, rotation_interval=0)
