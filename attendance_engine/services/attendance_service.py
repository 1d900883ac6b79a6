"""Attendance marking, teacher approvals and record listings."""
import logging
from typing import Dict, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from attendance_engine import db
from attendance_engine.models.attendance import (
    ABSENT, FACE_FAILED, LATE, PRESENT, STATUSES, AttendanceRecord
)
from attendance_engine.models.attendance_session import AttendanceSession
from attendance_engine.services import event_queue
from attendance_engine.services.audit_service import AuditService
from attendance_engine.services.event_handlers import GPS_PROXIMITY_CHECK
from attendance_engine.services.face_service import FaceService
from attendance_engine.services.fraud_service import FraudService
from attendance_engine.services.notification_service import STUDENT_LATE, NotificationService
from attendance_engine.services.roster_service import RosterService
from attendance_engine.services.session_service import SessionService
from attendance_engine.services.summary_service import SummaryService
from attendance_engine.services.verification_service import VerificationService
from attendance_engine.utils import clock
from attendance_engine.utils.errors import (
    AuthorizationError, ConflictError, NotFoundError, ValidationError
)
from attendance_engine.utils.validators import parse_id

logger = logging.getLogger(__name__)

PROOF_FIELDS = ('qrCode', 'lat', 'lng', 'latitude', 'longitude', 'ssid', 'beaconCode')


class AttendanceService:
    """Service for attendance records."""

    @staticmethod
    def _already_marked(record_id: str, status: Optional[str] = None) -> ConflictError:
        payload = {'attendanceId': record_id}
        if status:
            payload['status'] = status
        return ConflictError("Attendance already marked for this session", code='ALREADY_MARKED',
                             payload=payload)

    @staticmethod
    def _proof(data: dict) -> dict:
        proof = data.get('proof')
        if proof is None:
            proof = {key: data[key] for key in PROOF_FIELDS if key in data}
        return proof

    @staticmethod
    def mark(student, data: dict) -> Dict:
        """Mark the calling student in a session.

        Returns the response body with an extra ``created`` key telling the
        API layer whether the mark was accepted (201) or face_failed (200).
        """
        session = SessionService.get_session(data.get('sessionId'))
        if not session.is_active or SessionService.expire_if_stale(session):
            raise ConflictError("Session has ended", code='SESSION_ENDED')

        if not RosterService.is_enrolled(session.class_id, student.id):
            raise AuthorizationError("You are not enrolled in this class", code='NOT_ENROLLED')

        record_id = AttendanceRecord.make_id(session.id, student.id)
        existing = db.session.get(AttendanceRecord, record_id)
        if existing is not None and existing.status != FACE_FAILED:
            raise AttendanceService._already_marked(record_id, existing.status)

        method = data.get('method')
        if method is not None and method != session.method:
            raise ValidationError(f"This session uses {session.method} verification", code='METHOD_MISMATCH',
                                  payload={'expectedMethod': session.method})

        face = FaceService.resolve_face_input(data, student, current_app.config['FACE_MATCH_THRESHOLD'])
        location = VerificationService.verify_proof(session, AttendanceService._proof(data))

        device_id = data.get('deviceId')
        if device_id is not None and not isinstance(device_id, str):
            raise ValidationError("deviceId must be a string")

        FraudService.check_rapid_scan(existing)
        FraudService.check_duplicate_device(session, student.id, device_id)

        now = clock.now()
        status, approved = VerificationService.classify(session, face['verified'], now)
        fields = {
            'status': status,
            'method': session.method,
            'face_verified': face['verified'],
            'face_distance': face['distance'],
            'teacher_approved': approved,
            'marked_at': now,
            'device_id': device_id,
            'latitude': location.get('latitude'),
            'longitude': location.get('longitude')
        }

        if existing is not None and status == FACE_FAILED:
            # Another failed face attempt only refreshes the timestamp
            updated = AttendanceRecord.query.filter_by(id=record_id, status=FACE_FAILED).update(
                {'marked_at': now, 'face_distance': face['distance']}, synchronize_session=False
            )
            if not updated:
                db.session.rollback()
                raise AttendanceService._already_marked(record_id)
            db.session.commit()
            old_status = FACE_FAILED
        elif existing is not None:
            updated = AttendanceRecord.query.filter_by(id=record_id, status=FACE_FAILED).update(
                fields, synchronize_session=False
            )
            if not updated:
                db.session.rollback()
                raise AttendanceService._already_marked(record_id)
            db.session.commit()
            old_status = FACE_FAILED
        else:
            record = AttendanceRecord(
                id=record_id,
                session_id=session.id,
                class_id=session.class_id,
                student_id=student.id,
                joined_at=now,
                auto_absent=False,
                **fields
            )
            db.session.add(record)
            try:
                db.session.commit()
            except IntegrityError:
                db.session.rollback()
                raise AttendanceService._already_marked(record_id)
            old_status = None

        logger.info("Student %s marked %s in session %s", student.id, status, session.id)
        AttendanceService._after_mark(session, student, record_id, old_status, status)

        if status == FACE_FAILED:
            return {
                'created': False,
                'status': FACE_FAILED,
                'attendanceId': record_id,
                'message': 'Face verification failed. Retry or ask your teacher for approval.'
            }
        return {
            'created': True,
            'status': status,
            'attendanceId': record_id,
            'isLate': status == LATE,
            'message': ('Marked late. Waiting for teacher approval.'
                        if status == LATE else 'Attendance marked successfully.')
        }

    @staticmethod
    def _after_mark(session: AttendanceSession, student, record_id: str,
                    old_status: Optional[str], status: str) -> None:
        """Best-effort follow-ups once the record is committed."""
        if status != FACE_FAILED:
            SummaryService.queue_transition(student.id, session.class_id, old_status, status, record_id=record_id)
        if session.method == 'gps' and status != FACE_FAILED:
            event_queue.publish(GPS_PROXIMITY_CHECK, attendance_id=record_id)
        if status == LATE:
            NotificationService.notify(
                session.teacher_id, STUDENT_LATE,
                title='Late arrival',
                message=f'{student.name} marked late and is waiting for approval.',
                class_id=session.class_id, session_id=session.id, attendance_id=record_id
            )
        AuditService.record('attendance.marked', actor_id=student.id, session_id=session.id,
                            attendance_id=record_id, status=status, previous_status=old_status)

    @staticmethod
    def get_record(attendance_id: str) -> AttendanceRecord:
        record = db.session.get(AttendanceRecord, attendance_id) if attendance_id else None
        if record is None:
            raise NotFoundError("Attendance record not found", code='ATTENDANCE_NOT_FOUND')
        return record

    @staticmethod
    def approve(teacher, attendance_id: str, data: dict) -> Dict:
        """Teacher decision on a late or face_failed record."""
        approved = data.get('approved')
        if not isinstance(approved, bool):
            raise ValidationError("approved must be a boolean")
        reason = data.get('reason')
        if reason is not None and not isinstance(reason, str):
            raise ValidationError("reason must be a string")

        record = AttendanceService.get_record(attendance_id)
        session = record.session
        SessionService.require_owner(session, teacher.id)
        if not session.is_active or SessionService.expire_if_stale(session):
            raise ConflictError("Session is not active", code='SESSION_NOT_ACTIVE')
        if record.status not in (LATE, FACE_FAILED):
            raise ConflictError("Record is not awaiting approval", code='NOT_PENDING',
                                payload={'status': record.status})

        old_status = record.status
        new_status = PRESENT if approved else ABSENT
        updated = AttendanceRecord.query.filter_by(id=record.id, status=old_status).update({
            'status': new_status,
            'teacher_approved': approved,
            'approval_reason': reason,
            'approved_at': clock.now()
        }, synchronize_session=False)
        if not updated:
            db.session.rollback()
            raise ConflictError("Record is not awaiting approval", code='NOT_PENDING')
        db.session.commit()

        logger.info("Teacher %s set %s from %s to %s", teacher.id, record.id, old_status, new_status)
        SummaryService.queue_transition(record.student_id, record.class_id, old_status, new_status,
                                        record_id=record.id)
        AuditService.record('attendance.approved', actor_id=teacher.id, attendance_id=record.id,
                            previous_status=old_status, status=new_status, reason=reason)
        return {'attendanceId': record.id, 'status': new_status, 'teacherApproved': approved}

    @staticmethod
    def for_session(user, session_id) -> Dict:
        """Records of a session grouped by status, with student details."""
        session = SessionService.get_session(session_id)
        if user.is_teacher():
            SessionService.require_owner(session, user.id)
        elif not RosterService.is_enrolled(session.class_id, user.id):
            raise AuthorizationError("You are not enrolled in this class", code='NOT_ENROLLED')

        records = (
            AttendanceRecord.query
            .filter_by(session_id=session.id)
            .order_by(AttendanceRecord.marked_at.asc())
            .all()
        )
        grouped = {status: [] for status in STATUSES}
        for record in records:
            item = record.to_dict()
            item['student'] = RosterService.get_student(record.student_id)
            grouped[record.status].append(item)

        counts = {status: len(items) for status, items in grouped.items()}
        counts['total'] = len(records)
        return {'sessionId': session.id, 'attendance': grouped, 'counts': counts}

    @staticmethod
    def for_student(user, student_id, class_id=None, limit: int = 20) -> Dict:
        """A student's records, newest first, optionally for one class."""
        student_id = parse_id(student_id, 'studentId')
        if class_id is not None:
            class_id = parse_id(class_id, 'classId')
        if user.id != student_id:
            if class_id is None or not user.is_teacher():
                raise AuthorizationError("Unauthorized")
            RosterService.require_owner(RosterService.get_course(class_id), user.id, code='UNAUTHORIZED')

        query = AttendanceRecord.query.filter_by(student_id=student_id)
        if class_id is not None:
            query = query.filter_by(class_id=class_id)
        records = query.order_by(AttendanceRecord.marked_at.desc()).limit(max(1, min(limit, 100))).all()

        items = []
        for record in records:
            item = record.to_dict()
            item['session'] = {
                'startTime': clock.isoformat(record.session.start_time),
                'method': record.session.method
            }
            items.append(item)

        summary = SummaryService.get(student_id, class_id) if class_id is not None else None
        return {'records': items, 'summary': summary.to_dict() if summary else None}
