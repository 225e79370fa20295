"""
In-process publish/subscribe hub.

Every subscriber is one open client connection (websocket, broker relay...).
Publishing is synchronous and fans out in registration order. Each dispatch
runs inside its own error boundary: a subscriber that raises is logged and
skipped, never seen by the publisher or the other subscribers. There is no
buffering; a subscriber only sees events published while it is registered.
"""

import itertools
import logging
import threading
from typing import Callable, Dict

from courier.events import DomainEvent

logger = logging.getLogger(__name__)

Handler = Callable[[DomainEvent], None]


class EventBus:
    def __init__(self):
        self._lock = threading.Lock()
        self._handlers: Dict[int, Handler] = {}
        self._ids = itertools.count()

    def publish(self, event: DomainEvent):
        with self._lock:
            handlers = list(self._handlers.items())

        for token, handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception(f"subscriber {token} failed on {event.type}")

    def subscribe(self, handler: Handler) -> Callable[[], None]:
        """Register ``handler``; the returned callable deregisters it (idempotent)"""
        with self._lock:
            token = next(self._ids)
            self._handlers[token] = handler

        def unsubscribe():
            with self._lock:
                self._handlers.pop(token, None)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._handlers)
