"""Session lifecycle tests."""
from datetime import datetime

import pytest
from sqlalchemy.exc import IntegrityError

from attendance_engine import db
from attendance_engine.models.attendance_session import AttendanceSession


def test_start_qr_session(start_session, course):
    response = start_session('qr')
    assert response.status_code == 201
    data = response.get_json()['data']
    fields = data['publicMethodFields']
    assert data['sessionId']
    assert data['lateAfterMinutes'] == 10
    assert fields['qrRefreshInterval'] == 30
    assert len(fields['qrCode']) >= 32
    assert fields['qrImage'].startswith('data:image/png;base64,')

    session = db.session.get(AttendanceSession, data['sessionId'])
    assert session.status == 'active'
    assert session.enrolled_count_snapshot == 3


def test_start_gps_session_defaults(start_session):
    response = start_session('gps', {'lat': 19.0760, 'lng': 72.8777})
    assert response.status_code == 201
    fields = response.get_json()['data']['publicMethodFields']
    assert fields == {'centerLat': 19.0760, 'centerLng': 72.8777, 'radiusMeters': 30}


def test_start_gps_validation(start_session):
    response = start_session('gps', {'lat': 19.0760})
    assert response.status_code == 400
    assert response.get_json()['code'] == 'VALIDATION_ERROR'

    response = start_session('gps', {'lat': 19.0760, 'lng': 72.8777, 'radiusMeters': 0})
    assert response.status_code == 400

    response = start_session('gps', {'lat': 123.0, 'lng': 72.8777})
    assert response.status_code == 400


def test_start_network_requires_ssid(start_session):
    response = start_session('network', {})
    assert response.status_code == 400
    assert response.get_json()['code'] == 'VALIDATION_ERROR'

    response = start_session('network', {'expectedSSID': 'CampusWiFi'})
    assert response.status_code == 201
    assert response.get_json()['data']['publicMethodFields'] == {'expectedSSID': 'CampusWiFi'}


def test_start_bluetooth_generates_beacon(start_session):
    response = start_session('bluetooth')
    assert response.status_code == 201
    assert response.get_json()['data']['publicMethodFields']['beaconCode']


def test_start_unknown_method(start_session):
    response = start_session('telepathy')
    assert response.status_code == 400


def test_start_requires_owner(start_session, other_teacher):
    response = start_session('qr', user=other_teacher)
    assert response.status_code == 403
    assert response.get_json()['code'] == 'NOT_OWNER'


def test_start_unknown_class(start_session):
    response = start_session('qr', class_id=9999)
    assert response.status_code == 404
    assert response.get_json()['code'] == 'CLASS_NOT_FOUND'


def test_single_active_session_per_class(start_session):
    first = start_session('qr').get_json()['data']['sessionId']

    response = start_session('bluetooth')
    assert response.status_code == 400
    body = response.get_json()
    assert body['code'] == 'SESSION_ALREADY_ACTIVE'
    assert body['existingSessionId'] == first
    assert AttendanceSession.query.filter_by(status='active').count() == 1


def test_unique_index_rejects_second_active_row(app, teacher, course):
    """Bypassing the service check still cannot create two active sessions."""
    for _ in range(2):
        db.session.add(AttendanceSession(class_id=course.id, teacher_id=teacher.id, method='bluetooth',
                                         status='active', start_time=datetime(2026, 3, 2, 9, 0)))
    with pytest.raises(IntegrityError):
        db.session.commit()
    db.session.rollback()


def test_stale_session_expires_lazily(client, auth_header, start_session, course, teacher, frozen_clock):
    first = start_session('qr').get_json()['data']['sessionId']
    frozen_clock.advance(minutes=181)

    response = client.get(f'/api/sessions/active/{course.id}', headers=auth_header(teacher))
    assert response.status_code == 200
    assert response.get_json()['data']['session'] is None
    assert db.session.get(AttendanceSession, first).status == 'ended'

    response = start_session('qr')
    assert response.status_code == 201


def test_active_session_within_ttl(client, auth_header, start_session, course, teacher, students, frozen_clock):
    session_id = start_session('qr').get_json()['data']['sessionId']
    frozen_clock.advance(minutes=180)

    response = client.get(f'/api/sessions/active/{course.id}', headers=auth_header(teacher))
    assert response.get_json()['data']['session']['id'] == session_id
    assert 'qrCode' in response.get_json()['data']['session']

    response = client.get(f'/api/sessions/active/{course.id}', headers=auth_header(students[0]))
    assert 'qrCode' not in response.get_json()['data']['session']


def test_refresh_qr_rotates_token(client, auth_header, teacher, students, qr_session, mark):
    session_id, old_code = qr_session

    response = client.put(f'/api/sessions/{session_id}/qr', headers=auth_header(teacher))
    assert response.status_code == 200
    data = response.get_json()['data']
    assert data['qrCode'] != old_code
    assert data['qrImage'].startswith('data:image/png;base64,')

    response = mark(students[0], session_id, {'qrCode': old_code})
    assert response.get_json()['code'] == 'INVALID_QR'

    response = mark(students[0], session_id, {'qrCode': data['qrCode']})
    assert response.status_code == 201


def test_refresh_qr_rules(client, auth_header, teacher, other_teacher, start_session, qr_session, end_session):
    session_id, _ = qr_session

    response = client.put(f'/api/sessions/{session_id}/qr', headers=auth_header(other_teacher))
    assert response.status_code == 403

    end_session(session_id)
    response = client.put(f'/api/sessions/{session_id}/qr', headers=auth_header(teacher))
    assert response.status_code == 400
    assert response.get_json()['code'] == 'SESSION_NOT_ACTIVE'

    bt_id = start_session('bluetooth').get_json()['data']['sessionId']
    response = client.put(f'/api/sessions/{bt_id}/qr', headers=auth_header(teacher))
    assert response.get_json()['code'] == 'INVALID_METHOD'


def test_session_details_and_stats(client, auth_header, teacher, students, outsider, qr_session, mark):
    session_id, code = qr_session
    mark(students[0], session_id, {'qrCode': code})
    mark(students[1], session_id, {'qrCode': code}, face=False)

    response = client.get(f'/api/sessions/{session_id}', headers=auth_header(teacher))
    assert response.status_code == 200
    data = response.get_json()['data']
    assert data['counts']['present'] == 1
    assert data['counts']['face_failed'] == 1
    assert data['qrCode'] == code

    response = client.get(f'/api/sessions/{session_id}', headers=auth_header(students[2]))
    assert response.status_code == 200
    assert 'qrCode' not in response.get_json()['data']

    response = client.get(f'/api/sessions/{session_id}', headers=auth_header(outsider))
    assert response.status_code == 403

    response = client.get(f'/api/sessions/{session_id}/stats', headers=auth_header(teacher))
    stats = response.get_json()['data']
    assert stats['enrolled'] == 3
    assert stats['present'] == 1
    assert stats['faceFailed'] == 1
    assert stats['attendanceRate'] == 33


def test_list_class_sessions(client, auth_header, teacher, course, start_session, end_session, frozen_clock):
    first = start_session('qr').get_json()['data']['sessionId']
    end_session(first)
    frozen_clock.advance(days=1)
    second = start_session('bluetooth').get_json()['data']['sessionId']

    response = client.get(f'/api/sessions/class/{course.id}', headers=auth_header(teacher))
    sessions = response.get_json()['data']['sessions']
    assert [s['id'] for s in sessions] == [second, first]

    response = client.get(f'/api/sessions/class/{course.id}?status=ended', headers=auth_header(teacher))
    assert [s['id'] for s in response.get_json()['data']['sessions']] == [first]


def test_session_not_found(client, auth_header, teacher):
    response = client.get('/api/sessions/4242', headers=auth_header(teacher))
    assert response.status_code == 404
    assert response.get_json()['code'] == 'SESSION_NOT_FOUND'
