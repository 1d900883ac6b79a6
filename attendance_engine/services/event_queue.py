"""Outbound queue for best-effort side effects.

Primary writes commit first; everything that may lag or be lost (summary
updates from marks and sweeps, advisory fraud checks, notifications, audit
lines) is published here and consumed at least once by a worker.
"""
import json
import logging
import queue
import threading
import uuid
from typing import Any, Dict, Optional

import redis
from flask import Flask, current_app

from attendance_engine.utils import clock

logger = logging.getLogger(__name__)


def build_event(event_type: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Wrap a payload in an envelope with a unique id."""
    return {
        'id': uuid.uuid4().hex,
        'type': event_type,
        'payload': payload,
        'attempts': 0,
        'published_at': clock.isoformat(clock.now())
    }


def schedule_retry(event: Dict[str, Any], max_attempts: int) -> bool:
    """Count a failed delivery. Returns True while the event may be retried."""
    event['attempts'] = event.get('attempts', 0) + 1
    if event['attempts'] < max_attempts:
        logger.warning("Retrying event %s (%s), attempt %s of %s",
                       event.get('id'), event.get('type'), event['attempts'] + 1, max_attempts)
        return True
    logger.error("Giving up on event %s (%s) after %s attempts",
                 event.get('id'), event.get('type'), event['attempts'])
    return False


class MemoryEventQueue:
    """In-process queue.

    Eager mode dispatches inside ``publish`` (tests); otherwise a daemon
    thread drains the queue under its own app context. A failed event is
    retried up to ``max_attempts`` times, then kept in ``dead_letter``.
    """

    def __init__(self, app: Flask, eager: bool = False, max_attempts: int = 5):
        self.app = app
        self.eager = eager
        self.max_attempts = max_attempts
        self.dead_letter = []
        self._queue = queue.Queue()
        self._worker = None

    def publish(self, event: Dict[str, Any]) -> None:
        if self.eager:
            self._deliver_inline(event)
            return
        self._queue.put(event)
        self._ensure_worker()

    def _deliver_inline(self, event: Dict[str, Any]) -> None:
        from attendance_engine.services.event_handlers import dispatch
        while not dispatch(event):
            if not schedule_retry(event, self.max_attempts):
                self.dead_letter.append(event)
                return

    def _ensure_worker(self) -> None:
        if self._worker is None or not self._worker.is_alive():
            self._worker = threading.Thread(target=self._drain, name='event-worker', daemon=True)
            self._worker.start()

    def _drain(self) -> None:
        from attendance_engine.services.event_handlers import dispatch
        while True:
            event = self._queue.get()
            with self.app.app_context():
                ok = dispatch(event)
            if not ok:
                if schedule_retry(event, self.max_attempts):
                    self._queue.put(event)
                else:
                    self.dead_letter.append(event)
            self._queue.task_done()

    def pending(self) -> int:
        return self._queue.qsize()


class RedisEventQueue:
    """Redis list used as a reliable work queue.

    Publishing is an RPUSH. The worker BLMOVEs each event into a processing
    list and only removes it from there once it was handled or requeued, so
    a worker that dies mid-event leaves it for :meth:`recover`. Failed events
    go back on the queue until ``max_attempts``, then to a dead-letter list.
    """

    def __init__(self, app: Flask, url: Optional[str], name: str, client: Optional[redis.Redis] = None,
                 max_attempts: int = 5):
        self.app = app
        self.name = name
        self.processing = f'{name}:processing'
        self.dead_letter = f'{name}:dead'
        self.max_attempts = max_attempts
        self.client = client if client is not None else redis.Redis.from_url(url, decode_responses=True)

    def publish(self, event: Dict[str, Any]) -> None:
        self.client.rpush(self.name, json.dumps(event))

    def recover(self) -> int:
        """Put events left in the processing list back at the head of the queue."""
        moved = 0
        while self.client.lmove(self.processing, self.name, 'RIGHT', 'LEFT') is not None:
            moved += 1
        if moved:
            logger.warning("Recovered %s unfinished events into %s", moved, self.name)
        return moved

    def _handle(self, raw: str) -> None:
        from attendance_engine.services.event_handlers import dispatch
        try:
            event = json.loads(raw)
        except ValueError:
            logger.error("Dead-lettering malformed event: %r", raw)
            self.client.rpush(self.dead_letter, raw)
            return
        with self.app.app_context():
            ok = dispatch(event)
        if not ok:
            target = self.name if schedule_retry(event, self.max_attempts) else self.dead_letter
            self.client.rpush(target, json.dumps(event))

    def run_worker(self, timeout: int = 5, max_events: Optional[int] = None) -> int:
        """Block and dispatch events until ``max_events`` deliveries were made."""
        handled = 0
        self.recover()
        logger.info("Event worker listening on %s", self.name)
        while max_events is None or handled < max_events:
            raw = self.client.blmove(self.name, self.processing, timeout, 'LEFT', 'RIGHT')
            if raw is None:
                continue
            self._handle(raw)
            self.client.lrem(self.processing, 1, raw)
            handled += 1
        return handled

    def pending(self) -> int:
        return self.client.llen(self.name)


def init_event_queue(app: Flask) -> None:
    """Attach the configured queue backend to the app."""
    backend = app.config.get('EVENT_QUEUE_BACKEND', 'memory')
    max_attempts = app.config.get('EVENT_MAX_ATTEMPTS', 5)
    if backend == 'redis':
        event_queue = RedisEventQueue(app, app.config['REDIS_URL'], app.config['EVENT_QUEUE_NAME'],
                                      max_attempts=max_attempts)
    else:
        event_queue = MemoryEventQueue(app, eager=app.config.get('EVENT_QUEUE_EAGER', False),
                                       max_attempts=max_attempts)
    app.extensions['event_queue'] = event_queue


def publish(event_type: str, **payload) -> Optional[str]:
    """Publish an event; failures are logged, never raised to the caller."""
    event = build_event(event_type, payload)
    try:
        current_app.extensions['event_queue'].publish(event)
    except Exception:
        logger.exception("Failed to publish %s event", event_type)
        return None
    return event['id']
