"""
RabbitMQ relay for domain events.

Subscribes to the in-process bus and republishes every event, as JSON, to a
durable fanout exchange keyed by event type. Consumers on other hosts bind
their own queues to the exchange. Delivery is best-effort like the bus
itself: if the broker is down the event is lost and the error is left to the
bus's per-subscriber boundary.
"""

import json
import logging
import threading
from typing import Callable, Optional

import pika
import pika.exceptions

from courier.bus import EventBus
from courier.events import DomainEvent

logger = logging.getLogger(__name__)


class BrokerRelay:
    def __init__(self, url: str, exchange: str = "courier.events"):
        self.url = url
        self.exchange = exchange
        self.published = 0
        # BlockingConnection is not thread safe; handlers run on request threads
        self._lock = threading.Lock()
        self._connection = None
        self._channel = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    def start(self, bus: EventBus):
        if self._unsubscribe is None:
            self._unsubscribe = bus.subscribe(self.forward)
            logger.info(f"broker relay publishing to exchange {self.exchange}")

    def stop(self):
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        with self._lock:
            self._close()

    def forward(self, event: DomainEvent):
        body = json.dumps(event.to_dict()).encode("utf-8")
        with self._lock:
            # one reconnect: an idle connection may have been dropped by the broker
            for attempt in (1, 2):
                try:
                    self._ensure_channel().basic_publish(
                        exchange=self.exchange,
                        routing_key=event.type,
                        body=body,
                        properties=pika.BasicProperties(
                            content_type="application/json",
                            delivery_mode=2,  # persistent
                        ),
                    )
                    self.published += 1
                    return
                except pika.exceptions.AMQPError as e:
                    logger.warning(f"broker publish failed (attempt {attempt}) for {event.type}: {e}")
                    self._close()
                    if attempt == 2:
                        raise

    def _ensure_channel(self):
        if self._connection is None or self._connection.is_closed or self._channel is None or self._channel.is_closed:
            params = pika.URLParameters(self.url)
            params.heartbeat = 30
            params.blocked_connection_timeout = 30
            self._connection = pika.BlockingConnection(params)
            self._channel = self._connection.channel()
            self._channel.exchange_declare(exchange=self.exchange, exchange_type="fanout", durable=True)
        return self._channel

    def _close(self):
        try:
            if self._connection is not None and not self._connection.is_closed:
                self._connection.close()
        except pika.exceptions.AMQPError as e:
            logger.debug(f"ignoring error while closing broker connection: {e}")
        self._connection = None
        self._channel = None
