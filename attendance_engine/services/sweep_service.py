"""End-of-session sweep.

Ending a session is one transaction: the status flip, unresolved late
records turning absent and an absent record for every enrolled student who
never marked. Summary updates follow through the event queue.
"""
import logging
from typing import Dict

from sqlalchemy.exc import IntegrityError

from attendance_engine import db
from attendance_engine.models.attendance import ABSENT, LATE, AttendanceRecord
from attendance_engine.models.attendance_session import AttendanceSession, STATUS_ACTIVE, STATUS_ENDED
from attendance_engine.services.audit_service import AuditService
from attendance_engine.services.roster_service import RosterService
from attendance_engine.services.session_service import SessionService
from attendance_engine.services.summary_service import SummaryService
from attendance_engine.utils import clock
from attendance_engine.utils.errors import ConflictError, InternalError
from attendance_engine.utils.helpers import round_half_up

logger = logging.getLogger(__name__)


class SweepService:
    """Service for closing sessions."""

    @staticmethod
    def end_session(teacher, session_id) -> Dict:
        session = SessionService.get_session(session_id)
        SessionService.require_owner(session, teacher.id)
        if not session.is_active:
            raise ConflictError("Session is not active", code='SESSION_NOT_ACTIVE')

        now = clock.now()
        updated = (
            AttendanceSession.query
            .filter_by(id=session.id, status=STATUS_ACTIVE)
            .update({'status': STATUS_ENDED, 'end_time': now}, synchronize_session=False)
        )
        if not updated:
            db.session.rollback()
            raise ConflictError("Session is not active", code='SESSION_NOT_ACTIVE')

        pending_late = (
            AttendanceRecord.query
            .filter(
                AttendanceRecord.session_id == session.id,
                AttendanceRecord.status == LATE,
                AttendanceRecord.teacher_approved.is_(None)
            )
            .all()
        )
        late_students = [(record.student_id, record.id) for record in pending_late]
        if pending_late:
            (
                AttendanceRecord.query
                .filter(
                    AttendanceRecord.id.in_([record.id for record in pending_late]),
                    AttendanceRecord.status == LATE,
                    AttendanceRecord.teacher_approved.is_(None)
                )
                .update({'status': ABSENT, 'auto_absent': True}, synchronize_session=False)
            )

        marked = {
            student_id for (student_id,) in
            db.session.query(AttendanceRecord.student_id).filter_by(session_id=session.id).all()
        }
        roster = RosterService.get_class(session.class_id) or {'studentIds': []}
        unmarked = [student_id for student_id in roster['studentIds'] if student_id not in marked]
        for student_id in unmarked:
            db.session.add(AttendanceRecord(
                id=AttendanceRecord.make_id(session.id, student_id),
                session_id=session.id,
                class_id=session.class_id,
                student_id=student_id,
                status=ABSENT,
                method=session.method,
                face_verified=False,
                teacher_approved=None,
                auto_absent=True,
                marked_at=now
            ))
        db.session.flush()

        counts = SessionService.status_counts(session.id)
        AttendanceSession.query.filter_by(id=session.id).update({
            'total_present': counts['present'],
            'total_late': counts['late'],
            'total_absent': counts['absent']
        }, synchronize_session=False)

        try:
            db.session.commit()
        except IntegrityError:
            # A mark landed for one of the unmarked students; nothing was applied
            db.session.rollback()
            logger.warning("Sweep for session %s collided with a concurrent mark", session.id)
            raise InternalError("Could not end the session, please retry", code='INTERNAL_ERROR')

        for student_id, record_id in late_students:
            SummaryService.queue_transition(student_id, session.class_id, LATE, ABSENT, record_id=record_id)
        for student_id in unmarked:
            SummaryService.queue_transition(student_id, session.class_id, None, ABSENT,
                                            record_id=AttendanceRecord.make_id(session.id, student_id))

        session = db.session.get(AttendanceSession, session.id)
        duration = round_half_up(clock.minutes_between(session.start_time, now))
        logger.info("Session %s ended: %s late swept, %s absent synthesized",
                    session.id, len(late_students), len(unmarked))
        AuditService.record('session.ended', actor_id=teacher.id, session_id=session.id,
                            late_swept=len(late_students), absent_marked=len(unmarked))

        return {
            'sessionId': session.id,
            'summary': {
                'totalPresent': counts['present'],
                'totalLate': counts['late'],
                'totalAbsent': counts['absent'],
                'newAbsentMarked': len(unmarked),
                'totalFaceFailed': counts['face_failed'],
                'duration': duration
            }
        }
