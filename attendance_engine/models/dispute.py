"""Student disputes against a past attendance outcome."""
from sqlalchemy import text
from attendance_engine import db
from attendance_engine.models.base import BaseModel
from attendance_engine.utils import clock

PENDING = 'pending'
APPROVED = 'approved'
REJECTED = 'rejected'

class Dispute(BaseModel):
    """Request to reclassify one attendance record."""
    
    __tablename__ = 'disputes'
    __table_args__ = (
        # One open dispute per attendance record
        db.Index(
            'uq_disputes_pending_attendance', 'attendance_id', unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'")
        ),
    )
    
    attendance_id = db.Column(db.String(64), db.ForeignKey('attendance_records.id'), nullable=False, index=True)
    session_id = db.Column(db.Integer, db.ForeignKey('attendance_sessions.id'), nullable=False)
    class_id = db.Column(db.Integer, db.ForeignKey('classes.id'), nullable=False)
    student_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    teacher_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    original_status = db.Column(db.String(20), nullable=False)
    reason = db.Column(db.Text, nullable=False)
    evidence_note = db.Column(db.String(500), nullable=True)
    status = db.Column(db.String(20), nullable=False, default=PENDING)
    teacher_comment = db.Column(db.Text, nullable=True)
    resolved_at = db.Column(db.DateTime, nullable=True)
    
    def to_dict(self):
        """Convert to dictionary."""
        return {
            'disputeId': self.id,
            'attendanceId': self.attendance_id,
            'sessionId': self.session_id,
            'classId': self.class_id,
            'studentId': self.student_id,
            'teacherId': self.teacher_id,
            'originalStatus': self.original_status,
            'reason': self.reason,
            'evidenceNote': self.evidence_note,
            'status': self.status,
            'teacherComment': self.teacher_comment,
            'resolvedAt': clock.isoformat(self.resolved_at),
            'createdAt': clock.isoformat(self.created_at)
        }
