"""Rolling attendance summaries.

Every counter change goes through :func:`apply_transition`, whether it comes
from a mark, a teacher approval, the end-of-session sweep or a dispute.
"""
import logging
from typing import List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from attendance_engine import db
from attendance_engine.models.attendance import COUNTED_STATUSES, AttendanceRecord
from attendance_engine.models.notification import ProcessedEvent
from attendance_engine.models.summary import AttendanceSummary
from attendance_engine.services.roster_service import RosterService
from attendance_engine.utils import clock
from attendance_engine.utils.errors import AuthorizationError
from attendance_engine.utils.helpers import round_half_up

logger = logging.getLogger(__name__)

HANDLER_NAME = 'summary'


def compute_percentage(present: int, late: int, total: int) -> int:
    if total <= 0:
        return 0
    return round_half_up(100 * (present + late) / total)


def apply_transition(summary: AttendanceSummary, old_status: Optional[str], new_status: str,
                     min_attendance: int) -> AttendanceSummary:
    """Move one session's outcome for a student between buckets.

    ``old_status`` of None (or face_failed, which is never counted) is a new
    event and adds a session. A reclassification decrements the old bucket,
    floored at 0, and leaves total_sessions unchanged.
    """
    if new_status not in COUNTED_STATUSES:
        raise ValueError(f"cannot count status {new_status!r}")

    if old_status in COUNTED_STATUSES:
        setattr(summary, old_status, max(0, getattr(summary, old_status) - 1))
    else:
        summary.total_sessions += 1
    setattr(summary, new_status, getattr(summary, new_status) + 1)

    summary.min_attendance = min_attendance
    summary.percentage = compute_percentage(summary.present, summary.late, summary.total_sessions)
    summary.is_below_threshold = summary.percentage < min_attendance
    return summary


def new_summary(student_id: int, class_id: int, min_attendance: int) -> AttendanceSummary:
    return AttendanceSummary(
        id=AttendanceSummary.make_id(student_id, class_id),
        student_id=student_id,
        class_id=class_id,
        present=0,
        late=0,
        absent=0,
        total_sessions=0,
        percentage=0,
        is_below_threshold=False,
        min_attendance=min_attendance
    )


class SummaryService:
    """Service for attendance summaries."""

    @staticmethod
    def _lock(student_id: int, class_id: int) -> Optional[AttendanceSummary]:
        return (
            AttendanceSummary.query
            .filter_by(id=AttendanceSummary.make_id(student_id, class_id))
            .with_for_update()
            .populate_existing()
            .first()
        )

    @staticmethod
    def _lock_record(record_id: str) -> Optional[AttendanceRecord]:
        return (
            AttendanceRecord.query
            .filter_by(id=record_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    @staticmethod
    def stage_transition(student_id: int, class_id: int, old_status: Optional[str], new_status: str,
                         record_id: Optional[str] = None) -> bool:
        """Apply a transition inside the caller's transaction.

        With a ``record_id`` the record itself decides the move: the summary
        goes from the bucket the record is counted in to the record's current
        status, whatever order the events arrive in. A stale or repeated event
        changes nothing.

        Returns True when this transition moved the summary below threshold.
        """
        min_attendance = RosterService.min_attendance(class_id, current_app.config['DEFAULT_MIN_ATTENDANCE'])
        summary = SummaryService._lock(student_id, class_id)

        record = None
        if record_id is not None:
            record = SummaryService._lock_record(record_id)
            if record is None:
                logger.warning("Summary event for missing record %s", record_id)
                return False
            if record.status not in COUNTED_STATUSES or record.status == record.counted_status:
                logger.debug("Record %s already counted as %s", record_id, record.counted_status)
                return False
            old_status, new_status = record.counted_status, record.status

        if summary is None:
            summary = new_summary(student_id, class_id, min_attendance)
            db.session.add(summary)
        was_below = bool(summary.is_below_threshold) and summary.total_sessions > 0

        apply_transition(summary, old_status, new_status, min_attendance)
        summary.last_updated = clock.now()
        if record is not None:
            record.counted_status = new_status
        return summary.is_below_threshold and not was_below

    @staticmethod
    def on_transition(student_id: int, class_id: int, old_status: Optional[str], new_status: str,
                      event_id: Optional[str] = None, record_id: Optional[str] = None,
                      _retry: bool = True) -> bool:
        """Queued entry point. Commits its own transaction.

        With an ``event_id`` the update is recorded in the processed-event
        ledger in the same transaction, so a redelivered event is a no-op.
        """
        if event_id and db.session.get(ProcessedEvent, (event_id, HANDLER_NAME)) is not None:
            logger.debug("Event %s already applied", event_id)
            return False

        crossed = SummaryService.stage_transition(student_id, class_id, old_status, new_status,
                                                  record_id=record_id)
        if event_id:
            db.session.add(ProcessedEvent(event_id=event_id, handler=HANDLER_NAME))
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            if not _retry:
                raise
            # Lost the insert race for the summary row or the ledger entry
            return SummaryService.on_transition(student_id, class_id, old_status, new_status,
                                                event_id=event_id, record_id=record_id, _retry=False)

        if crossed:
            SummaryService.notify_below_threshold(student_id, class_id)
        return crossed

    @staticmethod
    def on_event(student_id: int, class_id: int, status: str, event_id: Optional[str] = None,
                 record_id: Optional[str] = None) -> bool:
        return SummaryService.on_transition(student_id, class_id, None, status,
                                            event_id=event_id, record_id=record_id)

    @staticmethod
    def on_reclassify(student_id: int, class_id: int, old_status: str, new_status: str,
                      event_id: Optional[str] = None, record_id: Optional[str] = None) -> bool:
        return SummaryService.on_transition(student_id, class_id, old_status, new_status,
                                            event_id=event_id, record_id=record_id)

    @staticmethod
    def queue_transition(student_id: int, class_id: int, old_status: Optional[str], new_status: str,
                         record_id: Optional[str] = None) -> Optional[str]:
        from attendance_engine.services import event_queue
        from attendance_engine.services.event_handlers import SUMMARY_TRANSITION
        return event_queue.publish(SUMMARY_TRANSITION, student_id=student_id, class_id=class_id,
                                   old_status=old_status, new_status=new_status, record_id=record_id)

    @staticmethod
    def notify_below_threshold(student_id: int, class_id: int) -> None:
        from attendance_engine.services.notification_service import LOW_ATTENDANCE, NotificationService
        summary = db.session.get(AttendanceSummary, AttendanceSummary.make_id(student_id, class_id))
        if summary is None:
            return
        NotificationService.notify(
            student_id, LOW_ATTENDANCE,
            title='Low attendance',
            message=(f'Your attendance is {summary.percentage}%, '
                     f'below the required {summary.min_attendance}%.'),
            class_id=class_id
        )

    @staticmethod
    def get(student_id: int, class_id: int) -> Optional[AttendanceSummary]:
        return db.session.get(AttendanceSummary, AttendanceSummary.make_id(student_id, class_id))

    @staticmethod
    def for_class(user, class_id: int) -> List[AttendanceSummary]:
        course = RosterService.get_course(class_id)
        RosterService.require_owner(course, user.id)
        return (
            AttendanceSummary.query
            .filter_by(class_id=class_id)
            .order_by(AttendanceSummary.percentage.asc(), AttendanceSummary.student_id.asc())
            .all()
        )

    @staticmethod
    def for_student(user, student_id: int) -> List[AttendanceSummary]:
        """Summaries for one student; the student, or a teacher sees their own classes only."""
        query = AttendanceSummary.query.filter_by(student_id=student_id)
        if user.is_student():
            if user.id != student_id:
                raise AuthorizationError("You can only view your own summaries")
        else:
            class_ids = [course.id for course in user.teaching_classes]
            query = query.filter(AttendanceSummary.class_id.in_(class_ids))
        return query.order_by(AttendanceSummary.class_id.asc()).all()
