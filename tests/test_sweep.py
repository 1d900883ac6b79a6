"""Ending sessions and teacher approvals."""
from attendance_engine import db
from attendance_engine.models.attendance import AttendanceRecord
from attendance_engine.models.attendance_session import AttendanceSession
from attendance_engine.models.course import Course
from attendance_engine.services.summary_service import SummaryService


def status_of(session_id, student):
    return db.session.get(AttendanceRecord, f'{session_id}_{student.id}')


def summary_counts(student, course):
    summary = SummaryService.get(student.id, course.id)
    return summary.present, summary.late, summary.absent, summary.total_sessions


def test_end_synthesizes_absent_for_unmarked(qr_session, mark, end_session, students, course, frozen_clock):
    session_id, code = qr_session
    mark(students[0], session_id, {'qrCode': code})
    frozen_clock.advance(minutes=45)

    response = end_session(session_id)
    assert response.status_code == 200
    summary = response.get_json()['data']['summary']
    assert summary == {
        'totalPresent': 1,
        'totalLate': 0,
        'totalAbsent': 2,
        'newAbsentMarked': 2,
        'totalFaceFailed': 0,
        'duration': 45
    }

    assert AttendanceRecord.query.filter_by(session_id=session_id).count() == len(students)
    for student in students[1:]:
        record = status_of(session_id, student)
        assert record.status == 'absent'
        assert record.auto_absent is True
        assert summary_counts(student, course) == (0, 0, 1, 1)

    session = db.session.get(AttendanceSession, session_id)
    assert session.status == 'ended'
    assert session.end_time == frozen_clock.current
    assert (session.total_present, session.total_absent) == (1, 2)


def test_unresolved_late_swept_to_absent(qr_session, mark, end_session, students, course, frozen_clock):
    session_id, code = qr_session
    frozen_clock.advance(minutes=12)
    assert mark(students[0], session_id, {'qrCode': code}).get_json()['data']['status'] == 'late'
    assert summary_counts(students[0], course) == (0, 1, 0, 1)

    end_session(session_id)

    record = status_of(session_id, students[0])
    assert record.status == 'absent'
    assert record.auto_absent is True
    assert summary_counts(students[0], course) == (0, 0, 1, 1)
    assert SummaryService.get(students[0].id, course.id).percentage == 0


def test_face_failed_left_untouched(qr_session, mark, end_session, students, course):
    session_id, code = qr_session
    mark(students[0], session_id, {'qrCode': code}, face=False)

    data = end_session(session_id).get_json()['data']['summary']
    assert data['totalFaceFailed'] == 1
    assert data['newAbsentMarked'] == 2
    assert status_of(session_id, students[0]).status == 'face_failed'
    assert SummaryService.get(students[0].id, course.id) is None


def test_end_twice(qr_session, end_session, other_teacher):
    session_id, _ = qr_session
    response = end_session(session_id, user=other_teacher)
    assert response.status_code == 403

    assert end_session(session_id).status_code == 200
    response = end_session(session_id)
    assert response.status_code == 400
    assert response.get_json()['code'] == 'SESSION_NOT_ACTIVE'


def test_sweep_uses_current_roster(qr_session, end_session, course, make_user):
    late_joiner = make_user('late@example.com', 'Late Joiner')
    course = db.session.get(Course, course.id)
    course.students.append(late_joiner)
    db.session.commit()

    session_id, _ = qr_session
    assert end_session(session_id).get_json()['data']['summary']['newAbsentMarked'] == 4
    assert status_of(session_id, late_joiner).status == 'absent'


def test_approve_late_to_present(client, auth_header, teacher, qr_session, mark, students, course, frozen_clock):
    session_id, code = qr_session
    frozen_clock.advance(minutes=20)
    attendance_id = mark(students[0], session_id, {'qrCode': code}).get_json()['data']['attendanceId']

    response = client.patch(f'/api/attendance/{attendance_id}/approve',
                            json={'approved': True, 'reason': 'Bus was late'},
                            headers=auth_header(teacher))
    assert response.status_code == 200
    assert response.get_json()['data']['status'] == 'present'

    record = status_of(session_id, students[0])
    assert record.teacher_approved is True
    assert record.approval_reason == 'Bus was late'
    assert summary_counts(students[0], course) == (1, 0, 0, 1)


def test_reject_face_failed_counts_absent(client, auth_header, teacher, qr_session, mark, students, course):
    session_id, code = qr_session
    attendance_id = mark(students[0], session_id, {'qrCode': code}, face=False).get_json()['data']['attendanceId']

    response = client.patch(f'/api/attendance/{attendance_id}/approve', json={'approved': False},
                            headers=auth_header(teacher))
    assert response.get_json()['data']['status'] == 'absent'
    assert summary_counts(students[0], course) == (0, 0, 1, 1)


def test_approve_rules(client, auth_header, teacher, other_teacher, qr_session, mark, end_session, students):
    session_id, code = qr_session
    attendance_id = mark(students[0], session_id, {'qrCode': code}).get_json()['data']['attendanceId']

    response = client.patch(f'/api/attendance/{attendance_id}/approve', json={'approved': True},
                            headers=auth_header(teacher))
    assert response.get_json()['code'] == 'NOT_PENDING'

    response = client.patch(f'/api/attendance/{attendance_id}/approve', json={'approved': 'yes'},
                            headers=auth_header(teacher))
    assert response.get_json()['code'] == 'VALIDATION_ERROR'

    response = client.patch(f'/api/attendance/{attendance_id}/approve', json={'approved': True},
                            headers=auth_header(other_teacher))
    assert response.status_code == 403

    response = client.patch('/api/attendance/nope_1/approve', json={'approved': True},
                            headers=auth_header(teacher))
    assert response.status_code == 404

    end_session(session_id)
    absent_id = f'{session_id}_{students[1].id}'
    response = client.patch(f'/api/attendance/{absent_id}/approve', json={'approved': True},
                            headers=auth_header(teacher))
    assert response.get_json()['code'] == 'SESSION_NOT_ACTIVE'
