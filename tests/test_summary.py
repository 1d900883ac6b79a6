"""Summary reducer and aggregator."""
import pytest

from attendance_engine import db
from attendance_engine.models.attendance import AttendanceRecord
from attendance_engine.models.attendance_session import AttendanceSession
from attendance_engine.models.notification import Notification, ProcessedEvent
from attendance_engine.services.event_handlers import dispatch
from attendance_engine.services.event_queue import build_event
from attendance_engine.services.summary_service import (
    SummaryService, apply_transition, compute_percentage, new_summary
)


def counts(summary):
    return summary.present, summary.late, summary.absent, summary.total_sessions


def assert_consistent(summary):
    assert summary.present + summary.late + summary.absent == summary.total_sessions


@pytest.mark.parametrize('status, percentage, below', [
    ('present', 100, False),
    ('late', 100, False),
    ('absent', 0, True),
])
def test_first_event_seeds_summary(status, percentage, below):
    summary = apply_transition(new_summary(1, 1, 75), None, status, 75)
    assert summary.total_sessions == 1
    assert getattr(summary, status) == 1
    assert summary.percentage == percentage
    assert summary.is_below_threshold is below


def test_reclassify_moves_between_buckets():
    summary = new_summary(1, 1, 75)
    apply_transition(summary, None, 'late', 75)
    apply_transition(summary, None, 'present', 75)

    apply_transition(summary, 'late', 'absent', 75)
    assert counts(summary) == (1, 0, 1, 2)
    assert summary.percentage == 50
    assert summary.is_below_threshold is True


def test_face_failed_counts_as_new_event():
    summary = new_summary(1, 1, 75)
    apply_transition(summary, 'face_failed', 'absent', 75)
    assert counts(summary) == (0, 0, 1, 1)


def test_reclassify_floors_empty_bucket_and_keeps_total():
    summary = new_summary(1, 1, 75)
    apply_transition(summary, None, 'present', 75)

    apply_transition(summary, 'late', 'absent', 75)
    assert counts(summary) == (1, 0, 1, 1)


def test_invariant_over_mixed_sequence():
    summary = new_summary(1, 1, 75)
    steps = [
        (None, 'present'), (None, 'late'), ('late', 'present'), (None, 'absent'),
        ('absent', 'present'), (None, 'late'), ('late', 'absent'), ('face_failed', 'present'),
    ]
    for old, new in steps:
        apply_transition(summary, old, new, 75)
        assert_consistent(summary)
        assert summary.percentage == compute_percentage(summary.present, summary.late, summary.total_sessions)


def test_uncountable_status_rejected():
    with pytest.raises(ValueError):
        apply_transition(new_summary(1, 1, 75), None, 'face_failed', 75)


@pytest.mark.parametrize('present, late, total, expected', [
    (1, 0, 8, 13),   # 12.5 rounds up
    (2, 0, 3, 67),
    (1, 0, 3, 33),
    (0, 0, 0, 0),
    (5, 2, 8, 88),   # 87.5 rounds up
])
def test_percentage_rounds_half_up(present, late, total, expected):
    assert compute_percentage(present, late, total) == expected


def test_threshold_is_strict():
    summary = new_summary(1, 1, 75)
    for status in ('present', 'present', 'present', 'absent'):
        apply_transition(summary, None, status, 75)
    assert summary.percentage == 75
    assert summary.is_below_threshold is False


def test_on_transition_uses_class_threshold(app, course, students):
    course.min_attendance = 90
    course.save()
    for status in ('present', 'present', 'present', 'present', 'late', 'present', 'present',
                   'present', 'present', 'absent'):
        SummaryService.on_event(students[0].id, course.id, status)

    summary = SummaryService.get(students[0].id, course.id)
    assert counts(summary) == (8, 1, 1, 10)
    assert summary.percentage == 90
    assert summary.min_attendance == 90
    assert summary.is_below_threshold is False


def test_redelivered_event_is_applied_once(app, course, students):
    event = build_event('summary.transition', {
        'student_id': students[0].id, 'class_id': course.id,
        'old_status': None, 'new_status': 'present'
    })
    assert dispatch(event) is True
    assert dispatch(event) is True

    summary = SummaryService.get(students[0].id, course.id)
    assert counts(summary) == (1, 0, 0, 1)
    assert ProcessedEvent.query.filter_by(event_id=event['id']).count() == 1


@pytest.fixture
def late_record(app, teacher, course, students, frozen_clock):
    session = AttendanceSession(class_id=course.id, teacher_id=teacher.id, method='qr',
                                status='ended', start_time=frozen_clock())
    session.save()
    record = AttendanceRecord(
        id=AttendanceRecord.make_id(session.id, students[0].id),
        session_id=session.id, class_id=course.id, student_id=students[0].id,
        status='late', method='qr', joined_at=frozen_clock(), marked_at=frozen_clock()
    )
    db.session.add(record)
    db.session.commit()
    return record


def set_status(record_id, status):
    AttendanceRecord.query.filter_by(id=record_id).update({'status': status}, synchronize_session=False)
    db.session.commit()


def test_out_of_order_reclassify_follows_record(late_record, course, students):
    student_id, record_id = students[0].id, late_record.id
    SummaryService.on_event(student_id, course.id, 'late', record_id=record_id)

    # The sweep turns the record absent but its summary event is delayed
    set_status(record_id, 'absent')
    # The approved dispute lands first
    set_status(record_id, 'present')
    SummaryService.on_reclassify(student_id, course.id, 'absent', 'present', record_id=record_id)
    # Delayed sweep event
    SummaryService.on_reclassify(student_id, course.id, 'late', 'absent', record_id=record_id)

    summary = SummaryService.get(student_id, course.id)
    assert counts(summary) == (1, 0, 0, 1)
    assert summary.percentage == 100
    assert db.session.get(AttendanceRecord, record_id).counted_status == 'present'


def test_repeated_record_event_is_ignored(late_record, course, students):
    for _ in range(2):
        SummaryService.on_event(students[0].id, course.id, 'late', record_id=late_record.id)

    assert counts(SummaryService.get(students[0].id, course.id)) == (0, 1, 0, 1)


def test_failed_event_is_contained(app, course, students):
    event = build_event('summary.transition', {
        'student_id': students[0].id, 'class_id': course.id,
        'old_status': None, 'new_status': 'teleported'
    })
    assert dispatch(event) is False
    assert SummaryService.get(students[0].id, course.id) is None
    assert dispatch({'id': 'x', 'type': 'unknown', 'payload': {}}) is False


def test_first_crossing_below_threshold_notifies(app, course, students):
    student_id = students[0].id
    SummaryService.on_event(student_id, course.id, 'present')
    SummaryService.on_event(student_id, course.id, 'absent')
    SummaryService.on_event(student_id, course.id, 'absent')

    notifications = Notification.query.filter_by(recipient_id=student_id, type='low_attendance').all()
    assert len(notifications) == 1
    assert '50%' in notifications[0].message


def test_summary_endpoints(client, auth_header, teacher, other_teacher, course, students):
    SummaryService.on_event(students[0].id, course.id, 'present')
    SummaryService.on_event(students[1].id, course.id, 'absent')

    response = client.get(f'/api/summaries/class/{course.id}', headers=auth_header(teacher))
    data = response.get_json()['data']
    assert [s['studentId'] for s in data['summaries']] == [students[1].id, students[0].id]
    assert data['belowThreshold'] == 1

    response = client.get(f'/api/summaries/class/{course.id}', headers=auth_header(other_teacher))
    assert response.status_code == 403

    response = client.get(f'/api/summaries/student/{students[0].id}', headers=auth_header(students[0]))
    assert response.get_json()['data']['summaries'][0]['percentage'] == 100

    response = client.get(f'/api/summaries/student/{students[0].id}', headers=auth_header(students[1]))
    assert response.status_code == 403

    response = client.get(f'/api/summaries/student/{students[0].id}', headers=auth_header(other_teacher))
    assert response.get_json()['data']['summaries'] == []
