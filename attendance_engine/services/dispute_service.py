"""Student disputes and their resolution."""
import logging
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError

from attendance_engine import db
from attendance_engine.models.attendance import PRESENT, AttendanceRecord
from attendance_engine.models.dispute import APPROVED, PENDING, REJECTED, Dispute
from attendance_engine.services.audit_service import AuditService
from attendance_engine.services.notification_service import (
    DISPUTE_RAISED, DISPUTE_RESOLVED, NotificationService
)
from attendance_engine.services.summary_service import SummaryService
from attendance_engine.utils import clock
from attendance_engine.utils.errors import (
    AuthorizationError, ConflictError, NotFoundError, ValidationError
)
from attendance_engine.utils.validators import parse_id

logger = logging.getLogger(__name__)

MIN_REASON_LENGTH = 10
MIN_COMMENT_LENGTH = 5
MAX_EVIDENCE_LENGTH = 500


class DisputeService:
    """Service for raising and resolving disputes."""

    @staticmethod
    def _duplicate() -> ConflictError:
        return ConflictError("You already have a pending dispute for this attendance record",
                             code='DISPUTE_ALREADY_EXISTS', status_code=409)

    @staticmethod
    def raise_dispute(student, data: dict) -> Dict:
        if not student.is_student():
            raise AuthorizationError("Only students can raise disputes", code='STUDENT_ONLY')

        attendance_id = data.get('attendanceId')
        reason = data.get('reason')
        if not attendance_id or not reason:
            raise ValidationError("attendanceId and reason are required", code='MISSING_FIELDS')
        if not isinstance(reason, str) or len(reason.strip()) < MIN_REASON_LENGTH:
            raise ValidationError(f"Reason must be at least {MIN_REASON_LENGTH} characters",
                                  code='REASON_TOO_SHORT')
        evidence = data.get('evidenceNote')
        if evidence is not None and not isinstance(evidence, str):
            raise ValidationError("evidenceNote must be a string")

        record = db.session.get(AttendanceRecord, str(attendance_id))
        if record is None:
            raise NotFoundError("Attendance record not found", code='ATTENDANCE_NOT_FOUND')
        if record.student_id != student.id:
            raise AuthorizationError("You can only dispute your own attendance", code='NOT_YOUR_ATTENDANCE')
        if record.status == PRESENT and record.teacher_approved is True:
            raise ConflictError("Present attendance cannot be disputed", code='CANNOT_DISPUTE_PRESENT')
        if Dispute.query.filter_by(attendance_id=record.id, status=PENDING).first() is not None:
            raise DisputeService._duplicate()

        dispute = Dispute(
            attendance_id=record.id,
            session_id=record.session_id,
            class_id=record.class_id,
            student_id=student.id,
            teacher_id=record.session.teacher_id,
            original_status=record.status,
            reason=reason.strip(),
            evidence_note=evidence.strip()[:MAX_EVIDENCE_LENGTH] if evidence else None,
            status=PENDING
        )
        db.session.add(dispute)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise DisputeService._duplicate()

        logger.info("Dispute %s raised by student %s on %s", dispute.id, student.id, record.id)
        NotificationService.notify(
            dispute.teacher_id, DISPUTE_RAISED,
            title='New attendance dispute',
            message=f'{student.name} disputed their {record.status} attendance.',
            class_id=record.class_id, session_id=record.session_id,
            attendance_id=record.id, dispute_id=dispute.id
        )
        AuditService.record('dispute.raised', actor_id=student.id, dispute_id=dispute.id,
                            attendance_id=record.id, original_status=record.status)
        return dispute.to_dict()

    @staticmethod
    def resolve(teacher, dispute_id, data: dict) -> Dict:
        """Approve or reject a pending dispute.

        Approval updates the dispute, the record and the summary in a single
        transaction; a failure leaves all three untouched.
        """
        if not teacher.is_teacher():
            raise AuthorizationError("Only teachers can resolve disputes", code='TEACHER_ONLY')

        decision = data.get('decision')
        comment = data.get('comment', data.get('teacherComment'))
        if not decision or not comment:
            raise ValidationError("decision and comment are required", code='MISSING_FIELDS')
        if decision not in (APPROVED, REJECTED):
            raise ValidationError("decision must be approved or rejected", code='INVALID_DECISION')
        if not isinstance(comment, str) or len(comment.strip()) < MIN_COMMENT_LENGTH:
            raise ValidationError(f"Please provide a comment of at least {MIN_COMMENT_LENGTH} characters",
                                  code='COMMENT_TOO_SHORT')
        comment = comment.strip()

        dispute = DisputeService._get(dispute_id)
        if dispute.teacher_id != teacher.id:
            raise AuthorizationError("You can only resolve disputes for your own classes",
                                     code='NOT_YOUR_DISPUTE')
        if dispute.status != PENDING:
            raise ConflictError("This dispute has already been resolved", code='ALREADY_RESOLVED')

        now = clock.now()
        updated = Dispute.query.filter_by(id=dispute.id, status=PENDING).update(
            {'status': decision, 'teacher_comment': comment, 'resolved_at': now},
            synchronize_session=False
        )
        if not updated:
            db.session.rollback()
            raise ConflictError("This dispute has already been resolved", code='ALREADY_RESOLVED')

        crossed = False
        previous_status = None
        if decision == APPROVED:
            record = db.session.get(AttendanceRecord, dispute.attendance_id)
            previous_status = record.status
            AttendanceRecord.query.filter_by(id=record.id).update({
                'status': PRESENT,
                'teacher_approved': True,
                'approved_at': now,
                'marked_at': now
            }, synchronize_session=False)
            if previous_status != PRESENT:
                crossed = SummaryService.stage_transition(record.student_id, record.class_id,
                                                          previous_status, PRESENT, record_id=record.id)
        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            logger.exception("Resolving dispute %s failed", dispute.id)
            raise

        if crossed:
            SummaryService.notify_below_threshold(dispute.student_id, dispute.class_id)

        logger.info("Dispute %s %s by teacher %s", dispute.id, decision, teacher.id)
        NotificationService.notify(
            dispute.student_id, DISPUTE_RESOLVED,
            title=f'Dispute {decision}',
            message=comment,
            class_id=dispute.class_id, session_id=dispute.session_id,
            attendance_id=dispute.attendance_id, dispute_id=dispute.id
        )
        AuditService.record('dispute.resolved', actor_id=teacher.id, dispute_id=dispute.id,
                            decision=decision, previous_status=previous_status)
        return {
            'disputeId': dispute.id,
            'decision': decision,
            'message': ('Dispute approved. Student attendance updated to present.'
                        if decision == APPROVED else 'Dispute rejected.')
        }

    @staticmethod
    def _get(dispute_id) -> Dispute:
        dispute = db.session.get(Dispute, parse_id(dispute_id, 'disputeId'))
        if dispute is None:
            raise NotFoundError("Dispute not found", code='DISPUTE_NOT_FOUND')
        return dispute

    @staticmethod
    def get(user, dispute_id) -> Dict:
        dispute = DisputeService._get(dispute_id)
        if user.id not in (dispute.student_id, dispute.teacher_id):
            raise AuthorizationError("You cannot view this dispute")
        data = dispute.to_dict()
        record = db.session.get(AttendanceRecord, dispute.attendance_id)
        data['attendance'] = record.to_dict() if record else None
        return data

    @staticmethod
    def for_student(student) -> List[Dict]:
        disputes = (
            Dispute.query.filter_by(student_id=student.id)
            .order_by(Dispute.created_at.desc(), Dispute.id.desc())
            .all()
        )
        return [d.to_dict() for d in disputes]

    @staticmethod
    def for_teacher(teacher, status: Optional[str] = None) -> Dict:
        if status is not None and status not in (PENDING, APPROVED, REJECTED):
            raise ValidationError("status must be pending, approved or rejected")
        query = Dispute.query.filter_by(teacher_id=teacher.id)
        if status:
            query = query.filter_by(status=status)
        disputes = [d.to_dict() for d in query.order_by(Dispute.created_at.desc(), Dispute.id.desc()).limit(50)]
        pending = [d for d in disputes if d['status'] == PENDING]
        resolved = [d for d in disputes if d['status'] != PENDING]
        return {
            'all': disputes,
            'pending': pending,
            'resolved': resolved,
            'counts': {'total': len(disputes), 'pending': len(pending), 'resolved': len(resolved)}
        }
