"""In-app notifications and the processed-event ledger."""
from attendance_engine import db
from attendance_engine.models.base import BaseModel
from attendance_engine.utils import clock

class Notification(BaseModel):
    """Message stored for a user; push delivery is not done here."""
    
    __tablename__ = 'notifications'
    
    recipient_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    type = db.Column(db.String(40), nullable=False)  # student_late, low_attendance, dispute_raised, dispute_resolved
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    class_id = db.Column(db.Integer, nullable=True)
    session_id = db.Column(db.Integer, nullable=True)
    attendance_id = db.Column(db.String(64), nullable=True)
    dispute_id = db.Column(db.Integer, nullable=True)
    is_read = db.Column(db.Boolean, default=False, nullable=False)
    
    def to_dict(self):
        return {
            'id': self.id,
            'type': self.type,
            'title': self.title,
            'message': self.message,
            'classId': self.class_id,
            'sessionId': self.session_id,
            'attendanceId': self.attendance_id,
            'disputeId': self.dispute_id,
            'isRead': self.is_read,
            'createdAt': clock.isoformat(self.created_at)
        }

class ProcessedEvent(db.Model):
    """Marks a queued event as applied by one handler, making redelivery a no-op."""
    
    __tablename__ = 'processed_events'
    
    event_id = db.Column(db.String(64), primary_key=True)
    handler = db.Column(db.String(64), primary_key=True)
    processed_at = db.Column(db.DateTime, nullable=False, default=lambda: clock.now())
