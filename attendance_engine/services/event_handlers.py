"""Consumers for queued events."""
import logging
from typing import Any, Callable, Dict

from attendance_engine import db

logger = logging.getLogger(__name__)

SUMMARY_TRANSITION = 'summary.transition'
GPS_PROXIMITY_CHECK = 'fraud.gps_proximity'
NOTIFICATION = 'notification.send'
AUDIT = 'audit.log'


def handle_summary_transition(event: Dict[str, Any]) -> None:
    from attendance_engine.services.summary_service import SummaryService
    payload = event['payload']
    SummaryService.on_transition(
        student_id=payload['student_id'],
        class_id=payload['class_id'],
        old_status=payload.get('old_status'),
        new_status=payload['new_status'],
        event_id=event['id'],
        record_id=payload.get('record_id')
    )


def handle_gps_proximity(event: Dict[str, Any]) -> None:
    from attendance_engine.services.fraud_service import FraudService
    FraudService.check_gps_proximity(event['payload']['attendance_id'])


def handle_notification(event: Dict[str, Any]) -> None:
    from attendance_engine.services.notification_service import NotificationService
    NotificationService.store(**event['payload'])


def handle_audit(event: Dict[str, Any]) -> None:
    from attendance_engine.services.audit_service import AuditService
    AuditService.write(event['payload'], event_id=event['id'])


HANDLERS: Dict[str, Callable[[Dict[str, Any]], None]] = {
    SUMMARY_TRANSITION: handle_summary_transition,
    GPS_PROXIMITY_CHECK: handle_gps_proximity,
    NOTIFICATION: handle_notification,
    AUDIT: handle_audit,
}


def dispatch(event: Dict[str, Any]) -> bool:
    """Run the handler for one event. Returns False when it failed."""
    handler = HANDLERS.get(event.get('type'))
    if handler is None:
        logger.warning("No handler for event type %s", event.get('type'))
        return False
    try:
        handler(event)
        return True
    except Exception:
        db.session.rollback()
        logger.exception("Event %s (%s) failed", event.get('id'), event.get('type'))
        return False
