"""Fraud heuristics run around attendance marking.

Blocking checks run before the record write; the gps proximity check is
advisory and runs from the event queue after the write committed. A failure
inside a check is logged and treated as "no fraud".
"""
import logging
from datetime import timedelta
from typing import Dict, List, Optional

from flask import current_app

from attendance_engine import db
from attendance_engine.models.attendance import AttendanceRecord
from attendance_engine.models.attendance_session import AttendanceSession
from attendance_engine.models.fraud_flag import (
    ACTION_BLOCKED, ACTION_FLAGGED, DUPLICATE_DEVICE, GPS_PROXIMITY, REVIEW_DECISIONS, FraudFlag
)
from attendance_engine.services.audit_service import AuditService
from attendance_engine.services.gps_service import GPSService
from attendance_engine.utils import clock
from attendance_engine.utils.errors import (
    AuthorizationError, ConflictError, FraudBlock, NotFoundError, ValidationError
)

logger = logging.getLogger(__name__)


class FraudService:
    """Service for fraud detection and review."""

    @staticmethod
    def check_rapid_scan(existing: Optional[AttendanceRecord]) -> None:
        """Reject a retry that lands within the rapid-scan window of the first attempt."""
        if existing is None or existing.joined_at is None:
            return
        window = timedelta(seconds=current_app.config['RAPID_SCAN_WINDOW_SECONDS'])
        if clock.now() - existing.joined_at <= window:
            logger.warning("Rapid scan by student %s in session %s", existing.student_id, existing.session_id)
            raise FraudBlock(
                "Duplicate scan, wait a few seconds before retrying",
                code='DUPLICATE_SCAN',
                status_code=429,
                payload={'retryAfterSeconds': current_app.config['RAPID_SCAN_WINDOW_SECONDS']}
            )

    @staticmethod
    def _device_owner(session_id: int, student_id: int, device_id: str) -> Optional[int]:
        try:
            other = (
                AttendanceRecord.query
                .filter(
                    AttendanceRecord.session_id == session_id,
                    AttendanceRecord.device_id == device_id,
                    AttendanceRecord.student_id != student_id
                )
                .first()
            )
        except Exception:
            logger.exception("Duplicate device check failed for session %s", session_id)
            return None
        return other.student_id if other else None

    @staticmethod
    def check_duplicate_device(session: AttendanceSession, student_id: int, device_id: Optional[str]) -> None:
        """Block a device already used by another student in this session.

        The flag is committed even though the mark itself is rejected.
        """
        if not device_id:
            return
        other_student_id = FraudService._device_owner(session.id, student_id, device_id)
        if other_student_id is None:
            return

        flag = FraudFlag(
            type=DUPLICATE_DEVICE,
            session_id=session.id,
            class_id=session.class_id,
            suspected_student_ids=[other_student_id, student_id],
            details={'deviceId': device_id},
            auto_action=ACTION_BLOCKED
        )
        try:
            flag.save()
        except Exception:
            db.session.rollback()
            logger.exception("Could not store duplicate_device flag for session %s", session.id)
        logger.warning("Device %s reused by students %s and %s in session %s",
                       device_id, other_student_id, student_id, session.id)
        AuditService.record('fraud.blocked', actor_id=student_id, session_id=session.id,
                            type=DUPLICATE_DEVICE, other_student_id=other_student_id)
        raise FraudBlock("This device was already used by another student in this session",
                         code='FRAUD_BLOCKED', payload={'type': DUPLICATE_DEVICE})

    @staticmethod
    def check_gps_proximity(attendance_id: str) -> Optional[FraudFlag]:
        """Flag other gps marks in the session within the proximity distance."""
        record = db.session.get(AttendanceRecord, attendance_id)
        if record is None or record.latitude is None or record.longitude is None:
            return None

        threshold = current_app.config['GPS_PROXIMITY_METERS']
        others = (
            AttendanceRecord.query
            .filter(
                AttendanceRecord.session_id == record.session_id,
                AttendanceRecord.student_id != record.student_id,
                AttendanceRecord.latitude.isnot(None),
                AttendanceRecord.longitude.isnot(None)
            )
            .all()
        )
        close = []
        for other in others:
            distance = GPSService.calculate_distance(record.latitude, record.longitude,
                                                     other.latitude, other.longitude)
            if distance <= threshold:
                close.append((other.student_id, round(distance, 2)))
        if not close:
            return None

        flag = FraudFlag(
            type=GPS_PROXIMITY,
            session_id=record.session_id,
            class_id=record.class_id,
            suspected_student_ids=[record.student_id] + [student_id for student_id, _ in close],
            details={'distances': {str(student_id): d for student_id, d in close},
                     'thresholdMeters': threshold},
            auto_action=ACTION_FLAGGED
        )
        flag.save()
        logger.info("gps_proximity flag %s raised in session %s", flag.id, record.session_id)
        return flag

    @staticmethod
    def flags_for_session(teacher, session_id: int) -> List[Dict]:
        session = db.session.get(AttendanceSession, session_id)
        if session is None:
            raise NotFoundError("Session not found", code='SESSION_NOT_FOUND')
        if session.teacher_id != teacher.id:
            raise AuthorizationError("You do not own this session", code='NOT_OWNER')
        flags = FraudFlag.query.filter_by(session_id=session_id).order_by(FraudFlag.created_at.asc()).all()
        return [flag.to_dict() for flag in flags]

    @staticmethod
    def review(teacher, flag_id: int, decision: str) -> Dict:
        if decision not in REVIEW_DECISIONS:
            raise ValidationError("decision must be reviewed or dismissed")
        flag = db.session.get(FraudFlag, flag_id)
        if flag is None:
            raise NotFoundError("Fraud flag not found", code='FLAG_NOT_FOUND')
        session = db.session.get(AttendanceSession, flag.session_id)
        if session is None or session.teacher_id != teacher.id:
            raise AuthorizationError("You do not own this session", code='NOT_OWNER')

        updated = (
            FraudFlag.query
            .filter_by(id=flag.id, status='pending')
            .update({'status': decision, 'reviewed_by': teacher.id, 'reviewed_at': clock.now()},
                    synchronize_session=False)
        )
        db.session.commit()
        if not updated:
            raise ConflictError("Flag was already reviewed", code='ALREADY_REVIEWED')
        AuditService.record('fraud.reviewed', actor_id=teacher.id, flag_id=flag.id, decision=decision)
        return db.session.get(FraudFlag, flag.id).to_dict()
