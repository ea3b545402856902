"""Attendance session API endpoints."""
import json

from flask import Blueprint, Response, current_app, request

from rollcall import limiter
from rollcall.services.attendance_service import get_attendance_service
from rollcall.services.credential_channel import END_OF_STREAM
from rollcall.services.qr_service import QRService
from rollcall.services.verification_service import OutcomeStatus
from rollcall.utils.decorators import instructor_required
from rollcall.utils.errors import InvalidInput
from rollcall.utils.helpers import success_response, error_response

sessions_bp = Blueprint('sessions', __name__)


def _json_body() -> dict:
    """Request JSON as a dict; an absent body counts as empty."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidInput("Request body must be a JSON object")
    return data


def _with_image(data: dict) -> dict:
    """Attach the rendered QR image of the credential payload."""
    if current_app.config.get('QR_IMAGE_ENABLED', True):
        data['qr_image'] = QRService.render_data_url(
            data['credential_payload'],
            box_size=current_app.config.get('QR_BOX_SIZE', 10)
        )
    return data


@sessions_bp.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint."""
    return success_response(message='Session service is running')


@sessions_bp.route('/start', methods=['POST'])
@instructor_required
def start_session():
    """Open an attendance window for a subject, replacing any open one."""
    data = _json_body()

    session = get_attendance_service().start_session(data.get('subject_ref'))

    return success_response(
        data=_with_image(session.to_dict()),
        message="Attendance session started",
        status_code=201
    )


@sessions_bp.route('/stop', methods=['POST'])
@instructor_required
def stop_session():
    """Close an attendance window. Stopping a closed session is not an error."""
    data = _json_body()

    stopped = get_attendance_service().stop_session(data.get('session_id'))

    return success_response(
        data={'ok': True, 'stopped': stopped},
        message="Attendance session stopped" if stopped else "Session was not active"
    )


@sessions_bp.route('/active/<subject_ref>', methods=['GET'])
@instructor_required
def get_active_session(subject_ref):
    """Current session and credential for a subject."""
    session = get_attendance_service().get_active_session(subject_ref)

    if session is None:
        return success_response(
            data={'active': False, 'session': None},
            message="No active session"
        )

    return success_response(
        data={'active': True, 'session': _with_image(session.to_dict())},
        message="Active session retrieved"
    )


@sessions_bp.route('/verify', methods=['POST'])
@limiter.limit(lambda: current_app.config.get('VERIFY_RATE_LIMIT', '60 per minute'))
def verify_scan():
    """
    Verify a scanned credential for a student.
    Accepts either session_id and token, or the raw scanned payload.
    """
    data = _json_body()
    service = get_attendance_service()

    if data.get('payload') is not None:
        outcome = service.verify_payload(data.get('payload'), data.get('student_id'))
    else:
        outcome = service.verify_scan(
            data.get('session_id'),
            data.get('token'),
            data.get('student_id')
        )

    if outcome.status is OutcomeStatus.REJECTED:
        return error_response(
            outcome.message,
            outcome.error_class.status_code,
            code=outcome.reason.value,
            data=outcome.to_dict()
        )

    return success_response(
        data=outcome.to_dict(),
        message=outcome.message,
        status_code=201 if outcome.accepted else 200
    )


@sessions_bp.route('/stream/<subject_ref>', methods=['GET'])
@instructor_required(locations=['headers', 'query_string'])
def stream_credentials(subject_ref):
    """Server-sent events carrying every new credential for the subject."""
    service = get_attendance_service()
    subscription = service.subscribe_credential_updates(subject_ref)

    heartbeat = current_app.config.get('STREAM_HEARTBEAT_SECONDS', 15)
    render_image = current_app.config.get('QR_IMAGE_ENABLED', True)
    box_size = current_app.config.get('QR_BOX_SIZE', 10)

    def event_stream():
        try:
            while True:
                item = subscription.get(timeout=heartbeat)
                if item is END_OF_STREAM:
                    yield "event: end\ndata: {}\n\n"
                    return
                if item is None:
                    yield ": keep-alive\n\n"
                    continue

                payload = item.to_dict()
                if render_image:
                    payload['qr_image'] = QRService.render_data_url(item.payload, box_size=box_size)
                yield f"event: credential\ndata: {json.dumps(payload)}\n\n"
        finally:
            service.unsubscribe(subscription)

    return Response(
        event_stream(),
        mimetype='text/event-stream',
        headers={'Cache-Control': 'no-cache', 'X-Accel-Buffering': 'no'}
    )


@sessions_bp.route('/<session_id>/attendance', methods=['GET'])
@instructor_required
def list_attendance(session_id):
    """Attendance recorded for a session."""
    records = get_attendance_service().list_attendance(session_id)

    return success_response(
        data={
            'session_id': session_id,
            'count': len(records),
            'records': [r.to_dict() for r in records]
        },
        message="Attendance retrieved successfully"
    )
