"""Attendance session lifecycle."""
import logging
from typing import Dict, List, Optional

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from attendance_engine import db
from attendance_engine.models.attendance import AttendanceRecord, STATUSES
from attendance_engine.models.attendance_session import (
    AttendanceSession, METHODS, STATUS_ACTIVE, STATUS_ENDED
)
from attendance_engine.services.audit_service import AuditService
from attendance_engine.services.gps_service import GPSService
from attendance_engine.services.qr_service import QRService
from attendance_engine.services.roster_service import RosterService
from attendance_engine.utils import clock
from attendance_engine.utils.errors import (
    AuthorizationError, ConflictError, NotFoundError, ValidationError
)
from attendance_engine.utils.helpers import round_half_up
from attendance_engine.utils.validators import parse_id, parse_positive_number, parse_non_negative_int

logger = logging.getLogger(__name__)


class SessionService:
    """Service for starting, rotating, reading and expiring sessions."""

    @staticmethod
    def get_session(session_id) -> AttendanceSession:
        session = db.session.get(AttendanceSession, parse_id(session_id, 'sessionId'))
        if session is None:
            raise NotFoundError("Session not found", code='SESSION_NOT_FOUND')
        return session

    @staticmethod
    def require_owner(session: AttendanceSession, teacher_id: int) -> None:
        if session.teacher_id != teacher_id:
            raise AuthorizationError("You do not own this session", code='NOT_OWNER')

    @staticmethod
    def expire_if_stale(session: AttendanceSession) -> bool:
        """End an active session older than the TTL. Returns True if it is stale."""
        ttl = current_app.config['SESSION_TTL_MINUTES']
        if not session.is_stale(ttl):
            return False
        updated = (
            AttendanceSession.query
            .filter_by(id=session.id, status=STATUS_ACTIVE)
            .update({'status': STATUS_ENDED, 'end_time': clock.now()}, synchronize_session=False)
        )
        db.session.commit()
        if updated:
            logger.info("Session %s expired after %s minutes", session.id, ttl)
            AuditService.record('session.expired', session_id=session.id, class_id=session.class_id)
        return True

    @staticmethod
    def get_active(class_id: int) -> Optional[AttendanceSession]:
        """Active session for a class, or None. A stale one is ended as a side effect."""
        session = AttendanceSession.query.filter_by(class_id=class_id, status=STATUS_ACTIVE).first()
        if session is None:
            return None
        if SessionService.expire_if_stale(session):
            return None
        return session

    @staticmethod
    def _method_fields(method: str, config: dict) -> Dict:
        cfg = current_app.config
        if method == 'qr':
            return {
                'qr_code': QRService.generate_token(),
                'qr_refresh_interval': parse_non_negative_int(
                    config.get('refreshInterval', cfg['DEFAULT_QR_REFRESH_SECONDS']), 'refreshInterval'
                ) or cfg['DEFAULT_QR_REFRESH_SECONDS'],
                'qr_last_updated': clock.now()
            }
        if method == 'gps':
            if config.get('lat') is None or config.get('lng') is None:
                raise ValidationError("GPS sessions require lat and lng")
            lat, lng = GPSService.parse_coordinates(config.get('lat'), config.get('lng'), 'methodConfig')
            radius = parse_positive_number(
                config.get('radiusMeters', cfg['DEFAULT_GPS_RADIUS_METERS']), 'radiusMeters'
            )
            return {'center_latitude': lat, 'center_longitude': lng, 'radius_meters': radius}
        if method == 'network':
            ssid = config.get('expectedSSID')
            if not isinstance(ssid, str) or not ssid.strip():
                raise ValidationError("Network sessions require expectedSSID")
            return {'expected_ssid': ssid.strip()}
        beacon = config.get('beaconCode')
        if beacon is not None and (not isinstance(beacon, str) or not beacon.strip()):
            raise ValidationError("beaconCode must be a non-empty string")
        return {'beacon_code': beacon.strip() if beacon else AttendanceSession.generate_beacon_code()}

    @staticmethod
    def _already_active(existing: AttendanceSession) -> ConflictError:
        return ConflictError(
            "An active session already exists for this class",
            code='SESSION_ALREADY_ACTIVE',
            payload={'existingSessionId': existing.id if existing else None}
        )

    @staticmethod
    def start(teacher, data: dict) -> Dict:
        """Open a session for a class the teacher owns."""
        class_id = parse_id(data.get('classId'), 'classId')
        method = data.get('method')
        if method not in METHODS:
            raise ValidationError(f"method must be one of {', '.join(METHODS)}")
        config = data.get('methodConfig') or {}
        if not isinstance(config, dict):
            raise ValidationError("methodConfig must be an object")

        course = RosterService.get_course(class_id)
        RosterService.require_owner(course, teacher.id)

        late_after = config.get('lateAfterMinutes', data.get('lateAfterMinutes'))
        if late_after is None:
            late_after = current_app.config['DEFAULT_LATE_AFTER_MINUTES']
        late_after = parse_non_negative_int(late_after, 'lateAfterMinutes')

        fields = SessionService._method_fields(method, config)

        existing = SessionService.get_active(class_id)
        if existing is not None:
            raise SessionService._already_active(existing)

        session = AttendanceSession(
            class_id=class_id,
            teacher_id=teacher.id,
            method=method,
            status=STATUS_ACTIVE,
            start_time=clock.now(),
            late_after_minutes=late_after,
            enrolled_count_snapshot=len(course.students),
            **fields
        )
        db.session.add(session)
        try:
            db.session.commit()
        except IntegrityError:
            # Another start for the same class won the race
            db.session.rollback()
            existing = AttendanceSession.query.filter_by(class_id=class_id, status=STATUS_ACTIVE).first()
            raise SessionService._already_active(existing)

        logger.info("Session %s started for class %s (%s)", session.id, class_id, method)
        AuditService.record('session.started', actor_id=teacher.id, session_id=session.id,
                            class_id=class_id, method=method)

        public_fields = session.public_method_fields()
        if method == 'qr':
            public_fields['qrImage'] = QRService.render_image(session.qr_code)
        return {
            'sessionId': session.id,
            'classId': class_id,
            'method': method,
            'startTime': clock.isoformat(session.start_time),
            'lateAfterMinutes': session.late_after_minutes,
            'publicMethodFields': public_fields
        }

    @staticmethod
    def refresh_qr(teacher, session_id) -> Dict:
        """Rotate the QR token of an active qr session."""
        session = SessionService.get_session(session_id)
        SessionService.require_owner(session, teacher.id)
        if session.method != 'qr':
            raise ValidationError("Session does not use QR verification", code='INVALID_METHOD')
        if not session.is_active or SessionService.expire_if_stale(session):
            raise ConflictError("Session is not active", code='SESSION_NOT_ACTIVE')

        token = QRService.generate_token()
        now = clock.now()
        updated = (
            AttendanceSession.query
            .filter_by(id=session.id, status=STATUS_ACTIVE)
            .update({'qr_code': token, 'qr_last_updated': now}, synchronize_session=False)
        )
        db.session.commit()
        if not updated:
            raise ConflictError("Session is not active", code='SESSION_NOT_ACTIVE')

        return {
            'qrCode': token,
            'qrImage': QRService.render_image(token),
            'qrLastUpdated': clock.isoformat(now),
            'qrRefreshInterval': session.qr_refresh_interval
        }

    @staticmethod
    def status_counts(session_id: int) -> Dict[str, int]:
        rows = (
            db.session.query(AttendanceRecord.status, func.count(AttendanceRecord.id))
            .filter(AttendanceRecord.session_id == session_id)
            .group_by(AttendanceRecord.status)
            .all()
        )
        counts = {status: 0 for status in STATUSES}
        counts.update({status: count for status, count in rows})
        return counts

    @staticmethod
    def _require_viewer(user, session: AttendanceSession) -> bool:
        """Teacher of the session or an enrolled student. Returns True for the teacher."""
        if user.is_teacher():
            SessionService.require_owner(session, user.id)
            return True
        if not RosterService.is_enrolled(session.class_id, user.id):
            raise AuthorizationError("You are not enrolled in this class", code='NOT_ENROLLED')
        return False

    @staticmethod
    def get_details(user, session_id) -> Dict:
        session = SessionService.get_session(session_id)
        is_owner = SessionService._require_viewer(user, session)
        if session.is_active:
            SessionService.expire_if_stale(session)
        data = session.to_dict(include_secrets=is_owner)
        data['counts'] = SessionService.status_counts(session.id)
        return data

    @staticmethod
    def list_for_class(user, class_id, status: Optional[str] = None, limit: int = 20) -> List[Dict]:
        """Session history for a class, newest first."""
        course = RosterService.get_course(parse_id(class_id, 'classId'))
        if user.is_teacher():
            RosterService.require_owner(course, user.id)
        elif not RosterService.is_enrolled(course.id, user.id):
            raise AuthorizationError("You are not enrolled in this class", code='NOT_ENROLLED')
        if status is not None and status not in (STATUS_ACTIVE, STATUS_ENDED):
            raise ValidationError("status must be active or ended")

        query = AttendanceSession.query.filter_by(class_id=course.id)
        if status:
            query = query.filter_by(status=status)
        sessions = query.order_by(AttendanceSession.start_time.desc()).limit(max(1, min(limit, 100))).all()
        return [s.to_dict(include_secrets=False) for s in sessions]

    @staticmethod
    def stats(teacher, session_id) -> Dict:
        session = SessionService.get_session(session_id)
        SessionService.require_owner(session, teacher.id)
        counts = SessionService.status_counts(session.id)
        manual = (
            AttendanceRecord.query
            .filter(AttendanceRecord.session_id == session.id, AttendanceRecord.approved_at.isnot(None))
            .count()
        )
        enrolled = session.enrolled_count_snapshot or 0
        attended = counts['present'] + counts['late']
        end = session.end_time or clock.now()
        return {
            'sessionId': session.id,
            'status': session.status,
            'enrolled': enrolled,
            'present': counts['present'],
            'late': counts['late'],
            'absent': counts['absent'],
            'faceFailed': counts['face_failed'],
            'manualApprovals': manual,
            'attendanceRate': round_half_up(100 * attended / enrolled) if enrolled else 0,
            'duration': round_half_up(clock.minutes_between(session.start_time, end))
        }

    @staticmethod
    def end(teacher, session_id) -> Dict:
        """End an active session; runs the sweep in the same transaction."""
        from attendance_engine.services.sweep_service import SweepService
        return SweepService.end_session(teacher, session_id)
