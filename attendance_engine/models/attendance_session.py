"""Attendance session: one time-bounded attendance window for a class."""
import secrets
from sqlalchemy import text
from attendance_engine import db
from attendance_engine.models.base import BaseModel
from attendance_engine.utils import clock

METHODS = ('qr', 'gps', 'network', 'bluetooth')

STATUS_ACTIVE = 'active'
STATUS_ENDED = 'ended'

class AttendanceSession(BaseModel):
    """Session with its per-method verification config."""
    
    __tablename__ = 'attendance_sessions'
    __table_args__ = (
        # At most one active session per class
        db.Index(
            'uq_attendance_sessions_active_class', 'class_id', unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'")
        ),
    )
    
    class_id = db.Column(db.Integer, db.ForeignKey('classes.id'), nullable=False, index=True)
    teacher_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    method = db.Column(db.String(20), nullable=False)  # qr, gps, network, bluetooth
    status = db.Column(db.String(20), nullable=False, default=STATUS_ACTIVE)
    start_time = db.Column(db.DateTime, nullable=False)
    end_time = db.Column(db.DateTime, nullable=True)
    late_after_minutes = db.Column(db.Integer, nullable=False, default=10)
    enrolled_count_snapshot = db.Column(db.Integer, nullable=False, default=0)
    
    # qr
    qr_code = db.Column(db.String(128), nullable=True)
    qr_refresh_interval = db.Column(db.Integer, nullable=True)
    qr_last_updated = db.Column(db.DateTime, nullable=True)
    
    # gps
    center_latitude = db.Column(db.Float, nullable=True)
    center_longitude = db.Column(db.Float, nullable=True)
    radius_meters = db.Column(db.Float, nullable=True)
    
    # network
    expected_ssid = db.Column(db.String(255), nullable=True)
    
    # bluetooth
    beacon_code = db.Column(db.String(64), nullable=True)
    
    # Written once by the end-of-session sweep
    total_present = db.Column(db.Integer, default=0)
    total_late = db.Column(db.Integer, default=0)
    total_absent = db.Column(db.Integer, default=0)
    
    course = db.relationship('Course', backref=db.backref('sessions', lazy='dynamic'))
    
    @staticmethod
    def generate_beacon_code() -> str:
        return secrets.token_hex(4).upper()
    
    @property
    def is_active(self) -> bool:
        return self.status == STATUS_ACTIVE
    
    def elapsed_minutes(self, at=None) -> float:
        return clock.minutes_between(self.start_time, at or clock.now())
    
    def is_stale(self, ttl_minutes: int, at=None) -> bool:
        """True once an active session has outlived its TTL."""
        return self.is_active and self.elapsed_minutes(at) > ttl_minutes
    
    def public_method_fields(self) -> dict:
        """Method config a client needs to display or satisfy the proof."""
        if self.method == 'qr':
            return {
                'qrCode': self.qr_code,
                'qrRefreshInterval': self.qr_refresh_interval,
                'qrLastUpdated': clock.isoformat(self.qr_last_updated)
            }
        if self.method == 'gps':
            return {
                'centerLat': self.center_latitude,
                'centerLng': self.center_longitude,
                'radiusMeters': self.radius_meters
            }
        if self.method == 'network':
            return {'expectedSSID': self.expected_ssid}
        return {'beaconCode': self.beacon_code}
    
    def to_dict(self, include_secrets: bool = True):
        """Convert to dictionary."""
        data = {
            'id': self.id,
            'classId': self.class_id,
            'teacherId': self.teacher_id,
            'method': self.method,
            'status': self.status,
            'startTime': clock.isoformat(self.start_time),
            'endTime': clock.isoformat(self.end_time),
            'lateAfterMinutes': self.late_after_minutes,
            'enrolledCountSnapshot': self.enrolled_count_snapshot,
            'totalPresent': self.total_present,
            'totalLate': self.total_late,
            'totalAbsent': self.total_absent
        }
        if include_secrets:
            data.update(self.public_method_fields())
        return data
