"""
Order creation pipeline.

Flow:
1. Idempotency claim and request validation
2. Stock reservation (all-or-nothing, not undone later)
3. CMS registration
4. WMS registration (canonical package view)
5. Route planning (ROS)
6. Durable write-through

Unlike a compensating saga nothing is rolled back: a failed CMS/WMS/ROS step
is queued on the outbox and the pipeline carries on, so order creation stays
available when downstream systems are not. Only validation (including
duplicate keys and insufficient stock) fails the request.
"""

import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from courier.bus import EventBus
from courier.clients import CMSClient, ROSClient, WMSClient
from courier.durable import DocumentStore
from courier.events import order_updated, route_assigned, route_updated
from courier.exceptions import (
    DuplicateRequest,
    IntegrationError,
    OrderNotFound,
    OrderValidationError,
    RouteNotFound,
    StoreError,
)
from courier.idempotency import IdempotencyCache
from courier.models import (
    Order,
    OrderStatus,
    OutboxKind,
    OutboxTask,
    Package,
    PackageStatus,
    Route,
)
from courier.schemas import CreateOrderOut, CreateOrderReq
from courier.store import OutboxQueue, WorkingStore
from courier.utils.ids import gen_id

logger = logging.getLogger(__name__)


class RetryOutcome(Enum):
    DONE = "DONE"  # step succeeded or is no longer needed
    FAILED = "FAILED"  # downstream still unavailable
    DROPPED = "DROPPED"  # order not in the working store


def format_errors(e: ValidationError) -> List[str]:
    out = []
    for err in e.errors():
        path = ".".join(str(p) for p in err["loc"]) or "body"
        out.append(f"{path}: {err['msg']}")
    return out


class OrderOrchestrator:
    """
    Runs the creation pipeline against injected collaborators.

    The working store is the in-process view shared with driver handlers
    and the outbox processor; the durable store gets a best-effort copy once
    the pipeline is done.
    """

    def __init__(
        self,
        store: WorkingStore,
        outbox: OutboxQueue,
        bus: EventBus,
        durable: DocumentStore,
        cms: CMSClient,
        wms: WMSClient,
        ros: ROSClient,
        idempotency: IdempotencyCache,
    ):
        self.store = store
        self.outbox = outbox
        self.bus = bus
        self.durable = durable
        self.cms = cms
        self.wms = wms
        self.ros = ros
        self.idempotency = idempotency

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_order(self, payload: Dict[str, Any], idempotency_key: Optional[str] = None) -> CreateOrderOut:
        """
        Create an order and push it through CMS, WMS and ROS.

        Args:
            payload: request body (camelCase keys)
            idempotency_key: optional token; a token already seen is rejected

        Returns:
            CreateOrderOut with whatever status the pipeline reached

        Raises:
            DuplicateRequest: token already used
            OrderValidationError: bad shape, listing every violated field
            InsufficientStock: a stock item is missing or short
            StoreError: the durable store could not reserve stock
        """
        if idempotency_key and not self.idempotency.claim(idempotency_key):
            raise DuplicateRequest(idempotency_key)

        try:
            req = self._validate(payload)
            order = self._new_order(req)
            self._reserve_stock(order)
        except Exception:
            # nothing was created, so the key may be reused
            if idempotency_key:
                self.idempotency.release(idempotency_key)
            raise

        logger.info(f"order {order.id} created for client {order.client_id} ({len(order.packages)} packages)")
        self.store.put_order(order)
        self.bus.publish(order_updated(order))

        # CMS
        cms_order_id = self._call_cms(order)
        if cms_order_id:
            self._apply_cms(order, cms_order_id)
        else:
            self._defer(OutboxKind.CMS_REGISTER, order.id)

        # WMS
        packages = self._call_wms(order)
        if packages:
            self._apply_wms(order, packages)
        else:
            self._defer(OutboxKind.WMS_REGISTER, order.id)
        self.store.put_order(order)
        self.bus.publish(order_updated(order))

        # ROS
        route = self._call_ros(order)
        if route:
            self._apply_route(order, route)
            self.store.put_order(order)
            self.store.put_route(route)
            self.bus.publish(order_updated(order))
            self.bus.publish(route_updated(order.id, route))
            self.bus.publish(route_assigned(route))
        else:
            self._defer(OutboxKind.ROS_PLAN, order.id)

        self._persist(order)
        logger.info(f"order {order.id} finished pipeline with status {order.status.value}")
        return CreateOrderOut(order_id=order.id, status=order.status, route_id=order.route_id)

    def _validate(self, payload: Dict[str, Any]) -> CreateOrderReq:
        try:
            return CreateOrderReq.model_validate(payload)
        except ValidationError as e:
            errors = format_errors(e)
            raise OrderValidationError("; ".join(errors), errors) from e

    def _new_order(self, req: CreateOrderReq) -> Order:
        packages = []
        for p in req.packages:
            reserves = p.stock_item_id is not None
            packages.append(
                Package(
                    id=gen_id("PKG"),
                    description=p.description,
                    address=p.address,
                    status=PackageStatus.WAITING,
                    stock_item_id=p.stock_item_id,
                    quantity=(p.quantity or 1) if reserves else None,
                )
            )
        return Order(
            id=gen_id("ORD"),
            client_id=req.client_id,
            driver_id=req.driver_id,
            packages=packages,
            status=OrderStatus.PENDING,
        )

    def _reserve_stock(self, order: Order):
        requested: Dict[str, int] = {}
        for p in order.packages:
            if p.stock_item_id:
                requested[p.stock_item_id] = requested.get(p.stock_item_id, 0) + (p.quantity or 1)
        if not requested:
            return
        self.durable.reserve_stock(requested)
        logger.info(f"order {order.id} reserved stock {requested}")

    def _defer(self, kind: OutboxKind, order_id: str, attempts: int = 0):
        self.outbox.enqueue(OutboxTask(kind=kind, order_id=order_id, attempts=attempts))

    def _persist(self, order: Order):
        try:
            self.durable.upsert_order(order)
        except StoreError as e:
            logger.warning(f"durable write failed for order {order.id}, working store stays authoritative: {e}")

    # ------------------------------------------------------------------
    # Steps: the call half talks to the collaborator, the apply half
    # mutates the order; retries run the call outside the store lock.
    # ------------------------------------------------------------------

    def _call_cms(self, order: Order) -> Optional[str]:
        try:
            cms_order_id = self.cms.register(order.client_id, order.id)
        except IntegrationError as e:
            logger.warning(f"CMS registration failed for order {order.id}: {e}")
            return None
        logger.info(f"CMS registered order {order.id} as {cms_order_id}")
        return cms_order_id

    @staticmethod
    def _apply_cms(order: Order, cms_order_id: str):
        order.cms_order_id = cms_order_id
        order.touch()

    def _call_wms(self, order: Order) -> Optional[List[Package]]:
        try:
            packages = self.wms.register(order.packages)
        except IntegrationError as e:
            logger.warning(f"WMS registration failed for order {order.id}: {e}")
            return None
        logger.info(f"WMS registered {len(packages)} packages for order {order.id}")
        return packages

    @staticmethod
    def _apply_wms(order: Order, packages: List[Package]) -> bool:
        """Swap in the WMS package view; only valid before any package moved"""
        if order.route_id or any(p.status != PackageStatus.WAITING for p in order.packages):
            return False
        if len(packages) == len(order.packages):
            # stock references are ours, WMS does not echo them
            for theirs, ours in zip(packages, order.packages):
                theirs.stock_item_id = ours.stock_item_id
                theirs.quantity = ours.quantity
        order.packages = packages
        order.advance(OrderStatus.IN_WMS)
        order.touch()
        return True

    def _call_ros(self, order: Order) -> Optional[Route]:
        try:
            route = self.ros.plan(order.packages, order.driver_id or "")
        except IntegrationError as e:
            logger.warning(f"route planning failed for order {order.id}: {e}")
            return None
        logger.info(f"ROS planned route {route.id} for order {order.id} (driver {route.driver_id})")
        return route

    @staticmethod
    def _apply_route(order: Order, route: Route) -> bool:
        if order.route_id or order.is_terminal:
            return False
        order.route_id = route.id
        order.advance(OrderStatus.ROUTED)
        order.touch()
        return True

    # ------------------------------------------------------------------
    # Outbox retry
    # ------------------------------------------------------------------

    def retry(self, task: OutboxTask) -> RetryOutcome:
        """
        Re-run the downstream step behind an outbox task.

        Publishes the order's current state whenever the order is found,
        plus the route events when a retried planning call succeeds.
        """
        order = self.store.get_order(task.order_id)
        if order is None:
            logger.warning(f"outbox: order {task.order_id} not in working store, dropping {task.kind.value}")
            return RetryOutcome.DROPPED

        outcome = RetryOutcome.DONE
        route = None
        if task.kind == OutboxKind.CMS_REGISTER:
            outcome = self._retry_cms(order)
        elif task.kind == OutboxKind.WMS_REGISTER:
            outcome = self._retry_wms(order)
        elif task.kind == OutboxKind.ROS_PLAN:
            outcome, route = self._retry_ros(order)

        current = self.store.get_order(task.order_id) or order
        self.bus.publish(order_updated(current))
        if route is not None:
            self.bus.publish(route_updated(current.id, route))
            self.bus.publish(route_assigned(route))
        if outcome == RetryOutcome.DONE:
            self._persist(current)
        return outcome

    def _retry_cms(self, order: Order) -> RetryOutcome:
        if order.cms_order_id:
            return RetryOutcome.DONE
        cms_order_id = self._call_cms(order)
        if not cms_order_id:
            return RetryOutcome.FAILED
        self.store.update_order(order.id, lambda o: self._apply_cms(o, cms_order_id))
        return RetryOutcome.DONE

    def _retry_wms(self, order: Order) -> RetryOutcome:
        if order.status != OrderStatus.PENDING:
            return RetryOutcome.DONE
        packages = self._call_wms(order)
        if not packages:
            return RetryOutcome.FAILED
        applied = self.store.update_order(order.id, lambda o: self._apply_wms(o, packages))
        if not applied:
            logger.info(f"order {order.id} moved on before WMS answered, keeping current packages")
        return RetryOutcome.DONE

    def _retry_ros(self, order: Order):
        if order.route_id or order.is_terminal:
            return RetryOutcome.DONE, None
        route = self._call_ros(order)
        if route is None:
            return RetryOutcome.FAILED, None
        applied = self.store.update_order(order.id, lambda o: self._apply_route(o, route))
        if not applied:
            logger.info(f"order {order.id} already routed, discarding route {route.id}")
            return RetryOutcome.DONE, None
        self.store.put_route(route)
        return RetryOutcome.DONE, route

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_orders(self, client_id: Optional[str] = None, driver_id: Optional[str] = None) -> List[Order]:
        """
        Filtered reads go to the durable store and warm the working store;
        unfiltered reads return the working store's full set.
        """
        if not client_id and not driver_id:
            return self.store.list_orders()

        try:
            orders = self.durable.find_orders(client_id=client_id, driver_id=driver_id)
        except StoreError as e:
            logger.warning(f"durable scan failed, serving working store instead: {e}")
            return [
                o
                for o in self.store.list_orders()
                if (not client_id or o.client_id == client_id) and (not driver_id or o.driver_id == driver_id)
            ]

        return [self.store.warm(o) for o in orders]

    def get_order(self, order_id: str) -> Order:
        order = self.store.get_order(order_id)
        if order is not None:
            return order
        order = self.durable.get_order(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return self.store.warm(order)

    def get_route(self, route_id: str) -> Route:
        route = self.store.get_route(route_id)
        if route is None:
            raise RouteNotFound(route_id)
        return route
