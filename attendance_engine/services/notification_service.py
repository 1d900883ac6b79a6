"""In-app notifications."""
import logging
from typing import List

from attendance_engine import db
from attendance_engine.models.notification import Notification
from attendance_engine.services import event_queue
from attendance_engine.services.event_handlers import NOTIFICATION

logger = logging.getLogger(__name__)

STUDENT_LATE = 'student_late'
LOW_ATTENDANCE = 'low_attendance'
DISPUTE_RAISED = 'dispute_raised'
DISPUTE_RESOLVED = 'dispute_resolved'


class NotificationService:
    """Notifications are queued, stored and logged; nothing is pushed to devices."""

    @staticmethod
    def notify(recipient_id: int, type: str, title: str, message: str, **related) -> None:
        event_queue.publish(NOTIFICATION, recipient_id=recipient_id, type=type,
                            title=title, message=message, **related)

    @staticmethod
    def store(recipient_id: int, type: str, title: str, message: str, **related) -> Notification:
        notification = Notification(
            recipient_id=recipient_id,
            type=type,
            title=title,
            message=message,
            class_id=related.get('class_id'),
            session_id=related.get('session_id'),
            attendance_id=related.get('attendance_id'),
            dispute_id=related.get('dispute_id')
        )
        notification.save()
        logger.info("Notification %s stored for user %s", type, recipient_id)
        return notification

    @staticmethod
    def for_user(user_id: int, unread_only: bool = False, limit: int = 50) -> List[Notification]:
        query = Notification.query.filter_by(recipient_id=user_id)
        if unread_only:
            query = query.filter_by(is_read=False)
        return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()

    @staticmethod
    def mark_read(user_id: int, notification_id: int) -> bool:
        updated = Notification.query.filter_by(id=notification_id, recipient_id=user_id).update(
            {'is_read': True}, synchronize_session=False
        )
        db.session.commit()
        return updated == 1
