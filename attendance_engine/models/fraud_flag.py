"""Fraud flags raised by the marking heuristics."""
from attendance_engine import db
from attendance_engine.models.base import BaseModel
from attendance_engine.utils import clock

DUPLICATE_DEVICE = 'duplicate_device'
GPS_PROXIMITY = 'gps_proximity'

ACTION_BLOCKED = 'blocked'
ACTION_FLAGGED = 'flagged'

REVIEW_DECISIONS = ('reviewed', 'dismissed')

class FraudFlag(BaseModel):
    """A recorded suspicion waiting for human review."""
    
    __tablename__ = 'fraud_flags'
    
    type = db.Column(db.String(30), nullable=False)
    session_id = db.Column(db.Integer, db.ForeignKey('attendance_sessions.id'), nullable=False, index=True)
    class_id = db.Column(db.Integer, db.ForeignKey('classes.id'), nullable=False)
    suspected_student_ids = db.Column(db.JSON, nullable=False, default=list)
    details = db.Column(db.JSON, nullable=True)
    status = db.Column(db.String(20), nullable=False, default='pending')  # pending, reviewed, dismissed
    auto_action = db.Column(db.String(20), nullable=False)  # blocked, flagged
    reviewed_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    reviewed_at = db.Column(db.DateTime, nullable=True)
    
    def to_dict(self):
        """Convert to dictionary."""
        return {
            'id': self.id,
            'type': self.type,
            'sessionId': self.session_id,
            'classId': self.class_id,
            'suspectedStudentIds': list(self.suspected_student_ids or []),
            'details': self.details,
            'status': self.status,
            'autoAction': self.auto_action,
            'reviewedBy': self.reviewed_by,
            'reviewedAt': clock.isoformat(self.reviewed_at),
            'createdAt': clock.isoformat(self.created_at)
        }
