"""Test the attendance session endpoints."""
import json

from rollcall.services.attendance_service import get_attendance_service
from rollcall.services.credential_codec import decode_credential


def start(client, headers, subject_ref='SUBJ-1'):
    response = client.post('/api/sessions/start', json={'subject_ref': subject_ref}, headers=headers)
    assert response.status_code == 201
    return json.loads(response.data)['data']


def test_health_check(client):
    """Test session service health endpoint."""
    response = client.get('/api/sessions/health')
    assert response.status_code == 200
    data = json.loads(response.data)
    assert data['message'] == 'Session service is running'


def test_app_health_reports_sessions(client, instructor_headers):
    start(client, instructor_headers)

    response = client.get('/health')

    assert json.loads(response.data)['active_sessions'] == 1


def test_start_session(client, instructor_headers):
    data = start(client, instructor_headers)

    assert data['subject_ref'] == 'SUBJ-1'
    assert data['sequence'] == 0
    assert data['qr_image'].startswith('data:image/png;base64,')
    assert decode_credential(data['credential_payload']).session_id == data['session_id']
    assert 'expires_at' in data


def test_start_requires_instructor(client, student_headers):
    assert client.post('/api/sessions/start', json={'subject_ref': 'SUBJ-1'}).status_code == 401

    response = client.post('/api/sessions/start', json={'subject_ref': 'SUBJ-1'}, headers=student_headers)
    assert response.status_code == 403


def test_start_rejects_unknown_subject(client, instructor_headers):
    response = client.post('/api/sessions/start', json={'subject_ref': 'NOPE'}, headers=instructor_headers)

    assert response.status_code == 400
    assert json.loads(response.data)['code'] == 'invalid-subject'


def test_start_rejects_missing_subject(client, instructor_headers):
    response = client.post('/api/sessions/start', json={}, headers=instructor_headers)

    assert response.status_code == 400


def test_get_active_session(client, instructor_headers):
    started = start(client, instructor_headers)

    response = client.get('/api/sessions/active/SUBJ-1', headers=instructor_headers)
    data = json.loads(response.data)['data']

    assert data['active'] is True
    assert data['session']['session_id'] == started['session_id']

    response = client.get('/api/sessions/active/SUBJ-2', headers=instructor_headers)
    assert json.loads(response.data)['data'] == {'active': False, 'session': None}


def test_stop_session_is_idempotent(client, instructor_headers):
    started = start(client, instructor_headers)

    for expected in (True, False):
        response = client.post('/api/sessions/stop', json={'session_id': started['session_id']},
                               headers=instructor_headers)
        assert response.status_code == 200
        assert json.loads(response.data)['data'] == {'ok': True, 'stopped': expected}

    response = client.get('/api/sessions/active/SUBJ-1', headers=instructor_headers)
    assert json.loads(response.data)['data']['active'] is False


def test_stop_requires_session_id(client, instructor_headers):
    response = client.post('/api/sessions/stop', json={}, headers=instructor_headers)

    assert response.status_code == 400


def test_start_and_stop_reject_non_object_body(client, instructor_headers):
    for path, body in (('/api/sessions/start', ['SUBJ-1']), ('/api/sessions/stop', 'abc')):
        response = client.post(path, json=body, headers=instructor_headers)

        assert response.status_code == 400
        assert json.loads(response.data)['code'] == 'invalid-input'


def test_verify_rejects_non_object_body(client):
    for body in (['x'], 'abc', 42):
        response = client.post('/api/sessions/verify', json=body)

        assert response.status_code == 400
        assert json.loads(response.data)['code'] == 'invalid-input'


def test_verify_accepts_then_reports_duplicate(client, instructor_headers):
    started = start(client, instructor_headers)
    scan = {
        'session_id': started['session_id'],
        'token': decode_credential(started['credential_payload']).token,
        'student_id': 'CS2021001'
    }

    first = client.post('/api/sessions/verify', json=scan)
    second = client.post('/api/sessions/verify', json=scan)

    assert first.status_code == 201
    assert json.loads(first.data)['data']['status'] == 'accepted'
    assert second.status_code == 200
    assert json.loads(second.data)['data']['status'] == 'duplicate'
    assert json.loads(second.data)['data']['guidance'] == 'already-recorded'


def test_verify_accepts_raw_payload(client, instructor_headers):
    started = start(client, instructor_headers)

    response = client.post('/api/sessions/verify', json={
        'payload': started['credential_payload'],
        'student_id': 'CS2021001'
    })

    assert response.status_code == 201


def test_verify_rejects_garbled_payload(client, instructor_headers):
    start(client, instructor_headers)

    response = client.post('/api/sessions/verify', json={'payload': '{"x":1}', 'student_id': 'CS2021001'})

    assert response.status_code == 400
    assert json.loads(response.data)['code'] == 'invalid-input'


def test_verify_rejects_stale_token(client, instructor_headers):
    started = start(client, instructor_headers)

    response = client.post('/api/sessions/verify', json={
        'session_id': started['session_id'],
        'token': 'an-old-token',
        'student_id': 'CS2021001'
    })

    assert response.status_code == 409
    data = json.loads(response.data)
    assert data['code'] == 'stale-or-invalid-token'
    assert data['data']['guidance'] == 'scan-again'


def test_verify_rejects_superseded_session(client, instructor_headers):
    first = start(client, instructor_headers)
    start(client, instructor_headers)

    response = client.post('/api/sessions/verify', json={
        'payload': first['credential_payload'],
        'student_id': 'CS2021001'
    })

    assert response.status_code == 404
    assert json.loads(response.data)['data']['guidance'] == 'no-open-session'


def test_list_attendance(client, instructor_headers):
    started = start(client, instructor_headers)
    for student_id in ('CS2021001', 'CS2021002', 'CS2021001'):
        client.post('/api/sessions/verify', json={
            'payload': started['credential_payload'],
            'student_id': student_id
        })

    response = client.get(f"/api/sessions/{started['session_id']}/attendance", headers=instructor_headers)
    data = json.loads(response.data)['data']

    assert data['count'] == 2
    assert sorted(r['student_id'] for r in data['records']) == ['CS2021001', 'CS2021002']
    assert all(r['recorded_at'].endswith('+00:00') for r in data['records'])


def test_stream_requires_active_session(client, instructor_headers):
    response = client.get('/api/sessions/stream/SUBJ-1', headers=instructor_headers)

    assert response.status_code == 404
    assert json.loads(response.data)['code'] == 'no-active-session'


def test_stream_sends_current_credential_then_ends(client, instructor_headers):
    started = start(client, instructor_headers)

    response = client.get('/api/sessions/stream/SUBJ-1', headers=instructor_headers)
    assert response.status_code == 200
    assert response.mimetype == 'text/event-stream'

    get_attendance_service().stop_session(started['session_id'])
    body = response.get_data(as_text=True)

    events = [chunk for chunk in body.split('\n\n') if chunk.startswith('event:')]
    assert events[0].startswith('event: credential')
    credential = json.loads(events[0].split('data: ', 1)[1])
    assert credential['credential_payload'] == started['credential_payload']
    assert events[-1].startswith('event: end')


def test_stream_accepts_query_string_token(client, instructor_headers):
    started = start(client, instructor_headers)
    token = instructor_headers['Authorization'].split(' ', 1)[1]

    response = client.get(f'/api/sessions/stream/SUBJ-1?jwt={token}')
    get_attendance_service().stop_session(started['session_id'])

    assert response.status_code == 200
    assert 'event: end' in response.get_data(as_text=True)


def test_query_string_token_only_accepted_on_stream(client, instructor_headers):
    start(client, instructor_headers)
    token = instructor_headers['Authorization'].split(' ', 1)[1]

    response = client.get(f'/api/sessions/active/SUBJ-1?jwt={token}')

    assert response.status_code == 401
