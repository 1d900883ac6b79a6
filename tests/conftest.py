"""Shared fixtures: app, roster, auth headers, a frozen clock and API helpers."""
from datetime import datetime, timedelta

import pytest

from attendance_engine import create_app, db
from attendance_engine.models.course import Course
from attendance_engine.models.user import User, UserRole
from attendance_engine.services.auth_service import AuthService

T0 = datetime(2026, 3, 2, 9, 0, 0)


class FrozenClock:
    """Replacement for ``clock.now`` that only moves when told to."""

    def __init__(self, start):
        self.current = start

    def __call__(self):
        return self.current

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)
        return self.current


@pytest.fixture(autouse=True)
def frozen_clock(monkeypatch):
    frozen = FrozenClock(T0)
    monkeypatch.setattr('attendance_engine.utils.clock.now', frozen)
    return frozen


@pytest.fixture
def app():
    """Create test app."""
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def make_user(app):
    def _make(email, name, role=UserRole.STUDENT, roll_number=None):
        user = User(email=email, name=name, role=role, roll_number=roll_number)
        user.set_password('password123')
        return user.save()
    return _make


@pytest.fixture
def teacher(make_user):
    return make_user('teacher@example.com', 'Teacher One', UserRole.TEACHER)


@pytest.fixture
def other_teacher(make_user):
    return make_user('teacher2@example.com', 'Teacher Two', UserRole.TEACHER)


@pytest.fixture
def students(make_user):
    return [
        make_user(f'student{i}@example.com', f'Student {i}', roll_number=f'R{i:03d}')
        for i in range(1, 4)
    ]


@pytest.fixture
def outsider(make_user):
    return make_user('outsider@example.com', 'Not Enrolled', roll_number='R999')


@pytest.fixture
def course(teacher, students):
    course = Course(subject_name='Physics', subject_code='PHY101', teacher_id=teacher.id, min_attendance=75)
    course.students.extend(students)
    return course.save()


@pytest.fixture
def auth_header(app):
    def _header(user):
        return {'Authorization': f'Bearer {AuthService.issue_token(user)}'}
    return _header


@pytest.fixture
def start_session(client, auth_header, teacher, course):
    """POST /api/sessions/start and return the response."""
    def _start(method='qr', config=None, user=None, class_id=None, **extra):
        body = {
            'classId': class_id or course.id,
            'method': method,
            'methodConfig': config or {}
        }
        body.update(extra)
        return client.post('/api/sessions/start', json=body, headers=auth_header(user or teacher))
    return _start


@pytest.fixture
def qr_session(start_session):
    """An active qr session; returns ``(session_id, qr_code)``."""
    response = start_session('qr')
    assert response.status_code == 201
    data = response.get_json()['data']
    return data['sessionId'], data['publicMethodFields']['qrCode']


@pytest.fixture
def mark(client, auth_header):
    """POST /api/attendance/mark and return the response."""
    def _mark(student, session_id, proof=None, face=True, device_id=None, **extra):
        body = {'sessionId': session_id, 'proof': proof or {}, 'faceVerified': face}
        if device_id is not None:
            body['deviceId'] = device_id
        body.update(extra)
        return client.post('/api/attendance/mark', json=body, headers=auth_header(student))
    return _mark


@pytest.fixture
def end_session(client, auth_header, teacher):
    def _end(session_id, user=None):
        return client.post(f'/api/sessions/{session_id}/end', headers=auth_header(user or teacher))
    return _end
