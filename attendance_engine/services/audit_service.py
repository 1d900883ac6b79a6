"""Audit trail emitted as structured log lines."""
import json
import logging

from attendance_engine.services import event_queue
from attendance_engine.services.event_handlers import AUDIT
from attendance_engine.utils import clock

audit_logger = logging.getLogger('attendance_engine.audit')


class AuditService:
    """Audit entries are queued and written to the ``attendance_engine.audit`` logger."""

    @staticmethod
    def record(action: str, actor_id=None, **details) -> None:
        event_queue.publish(AUDIT, action=action, actor_id=actor_id,
                            at=clock.isoformat(clock.now()), details=details)

    @staticmethod
    def write(entry: dict, event_id: str = None) -> None:
        audit_logger.info(json.dumps(dict(entry, event_id=event_id), sort_keys=True, default=str))
