import logging
from typing import Optional

from courier import config
from courier.bus import EventBus
from courier.clients import CMSClient, ROSClient, WMSClient
from courier.drivers import DriverActions
from courier.durable import DocumentStore, MemoryDocumentStore, PostgresDocumentStore
from courier.idempotency import IdempotencyCache
from courier.orchestrator import OrderOrchestrator
from courier.outbox import OutboxProcessor
from courier.relay import BrokerRelay
from courier.store import OutboxQueue, WorkingStore

logger = logging.getLogger(__name__)


class Services:
    """
    The service graph for one process.

    Everything is constructor-injected so tests can build an isolated graph
    per case; the app keeps one instance on ``app.state.services``.
    """

    def __init__(
        self,
        durable: DocumentStore,
        cms: CMSClient,
        wms: WMSClient,
        ros: ROSClient,
        bus: Optional[EventBus] = None,
        store: Optional[WorkingStore] = None,
        outbox: Optional[OutboxQueue] = None,
        idempotency: Optional[IdempotencyCache] = None,
        relay: Optional[BrokerRelay] = None,
        api_key: Optional[str] = None,
        outbox_max_attempts: int = 5,
    ):
        self.durable = durable
        self.bus = bus or EventBus()
        self.store = store or WorkingStore()
        self.outbox = outbox or OutboxQueue()
        self.idempotency = idempotency or IdempotencyCache()
        self.relay = relay
        self.api_key = api_key

        self.orchestrator = OrderOrchestrator(
            store=self.store,
            outbox=self.outbox,
            bus=self.bus,
            durable=durable,
            cms=cms,
            wms=wms,
            ros=ros,
            idempotency=self.idempotency,
        )
        self.drivers = DriverActions(store=self.store, bus=self.bus, durable=durable)
        self.outbox_processor = OutboxProcessor(self.outbox, self.orchestrator, max_attempts=outbox_max_attempts)

    def start(self):
        self.durable.init()
        if self.relay is not None:
            self.relay.start(self.bus)

    def stop(self):
        if self.relay is not None:
            self.relay.stop()


def build_services() -> Services:
    if config.DATABASE_URL:
        durable = PostgresDocumentStore(config.DATABASE_URL)
    else:
        logger.warning("DATABASE_URL not set, using the in-memory document store")
        durable = MemoryDocumentStore()

    relay = BrokerRelay(config.RABBIT_URL, config.RABBIT_EXCHANGE) if config.RABBIT_URL else None

    return Services(
        durable=durable,
        cms=CMSClient(config.CMS_URL, timeout=config.HTTP_TIMEOUT),
        wms=WMSClient(config.WMS_URL, timeout=config.HTTP_TIMEOUT),
        ros=ROSClient(config.ROS_URL, timeout=config.HTTP_TIMEOUT),
        idempotency=IdempotencyCache(config.IDEMPOTENCY_TTL_SECONDS, config.IDEMPOTENCY_MAX_KEYS),
        relay=relay,
        api_key=config.API_KEY,
        outbox_max_attempts=config.OUTBOX_MAX_ATTEMPTS,
    )
