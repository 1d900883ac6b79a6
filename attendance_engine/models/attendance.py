"""Attendance record: one student's outcome for one session."""
from attendance_engine import db
from attendance_engine.models.base import BaseModel
from attendance_engine.utils import clock

FACE_FAILED = 'face_failed'
LATE = 'late'
PRESENT = 'present'
ABSENT = 'absent'

STATUSES = (FACE_FAILED, LATE, PRESENT, ABSENT)

# Buckets the summary aggregator counts
COUNTED_STATUSES = (PRESENT, LATE, ABSENT)

class AttendanceRecord(BaseModel):
    """Attendance record keyed by session and student."""
    
    __tablename__ = 'attendance_records'
    
    # "<session_id>_<student_id>" so the primary key rejects a second insert
    id = db.Column(db.String(64), primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('attendance_sessions.id'), nullable=False, index=True)
    class_id = db.Column(db.Integer, db.ForeignKey('classes.id'), nullable=False, index=True)
    student_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    
    status = db.Column(db.String(20), nullable=False)
    method = db.Column(db.String(20), nullable=False)  # qr, gps, network, bluetooth
    face_verified = db.Column(db.Boolean, default=False, nullable=False)
    face_distance = db.Column(db.Float, nullable=True)
    teacher_approved = db.Column(db.Boolean, nullable=True)  # None = pending review
    auto_absent = db.Column(db.Boolean, default=False, nullable=False)
    approval_reason = db.Column(db.Text, nullable=True)
    approved_at = db.Column(db.DateTime, nullable=True)
    
    # Bucket the student's summary currently counts this record in
    counted_status = db.Column(db.String(20), nullable=True)
    
    joined_at = db.Column(db.DateTime, nullable=True)
    marked_at = db.Column(db.DateTime, nullable=True)
    
    # Proof details kept for fraud heuristics
    device_id = db.Column(db.String(100), nullable=True, index=True)
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    
    session = db.relationship('AttendanceSession', backref=db.backref('records', lazy='dynamic'))
    student = db.relationship('User', foreign_keys=[student_id])
    
    @staticmethod
    def make_id(session_id, student_id) -> str:
        return f'{session_id}_{student_id}'
    
    def to_dict(self):
        """Convert to dictionary."""
        return {
            'id': self.id,
            'sessionId': self.session_id,
            'classId': self.class_id,
            'studentId': self.student_id,
            'status': self.status,
            'method': self.method,
            'faceVerified': self.face_verified,
            'teacherApproved': self.teacher_approved,
            'autoAbsent': self.auto_absent,
            'approvalReason': self.approval_reason,
            'joinedAt': clock.isoformat(self.joined_at),
            'markedAt': clock.isoformat(self.marked_at)
        }
    
    def __repr__(self):
        return f'<AttendanceRecord {self.id} {self.status}>'
