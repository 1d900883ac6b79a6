"""Rolling per-student, per-class attendance summary."""
from attendance_engine import db
from attendance_engine.models.base import BaseModel
from attendance_engine.utils import clock

class AttendanceSummary(BaseModel):
    """Counts for one (student, class) pair across every session of the class."""
    
    __tablename__ = 'attendance_summaries'
    
    # "<student_id>_<class_id>"
    id = db.Column(db.String(64), primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    class_id = db.Column(db.Integer, db.ForeignKey('classes.id'), nullable=False, index=True)
    
    present = db.Column(db.Integer, nullable=False, default=0)
    late = db.Column(db.Integer, nullable=False, default=0)
    absent = db.Column(db.Integer, nullable=False, default=0)
    total_sessions = db.Column(db.Integer, nullable=False, default=0)
    percentage = db.Column(db.Integer, nullable=False, default=0)
    is_below_threshold = db.Column(db.Boolean, nullable=False, default=False)
    min_attendance = db.Column(db.Integer, nullable=False, default=75)
    last_updated = db.Column(db.DateTime, nullable=True)
    
    student = db.relationship('User', foreign_keys=[student_id])
    
    @staticmethod
    def make_id(student_id, class_id) -> str:
        return f'{student_id}_{class_id}'
    
    def to_dict(self):
        """Convert to dictionary."""
        return {
            'summaryId': self.id,
            'studentId': self.student_id,
            'studentName': self.student.name if self.student else None,
            'rollNumber': self.student.roll_number if self.student else None,
            'classId': self.class_id,
            'present': self.present,
            'late': self.late,
            'absent': self.absent,
            'totalSessions': self.total_sessions,
            'percentage': self.percentage,
            'isBelowThreshold': self.is_below_threshold,
            'minAttendance': self.min_attendance,
            'lastUpdated': clock.isoformat(self.last_updated)
        }
