"""
Driver actions on packages: pickup, deliver, fail.

Each action is a read-modify-write of the cached order under the working
store lock, followed by PACKAGE_UPDATED then ORDER_UPDATED (and
ROUTE_UPDATED when the route changes state), then a best-effort durable
write. A durable failure never rolls back the in-memory change.
"""

import logging
from typing import Optional, Tuple

from courier.bus import EventBus
from courier.durable import DocumentStore
from courier.events import order_updated, package_updated, route_updated
from courier.exceptions import OrderValidationError, PackageNotFound, StoreError
from courier.models import Order, Package, PackageStatus, Proof, Route, RouteStatus
from courier.store import WorkingStore

logger = logging.getLogger(__name__)


class DriverActions:
    def __init__(self, store: WorkingStore, bus: EventBus, durable: DocumentStore):
        self.store = store
        self.bus = bus
        self.durable = durable

    def pickup(self, package_id: str) -> Tuple[Order, Package]:
        return self._act(package_id, PackageStatus.IN_TRANSIT, None)

    def deliver(
        self,
        package_id: str,
        signature_data_url: Optional[str] = None,
        photo_url: Optional[str] = None,
    ) -> Tuple[Order, Package]:
        proof = Proof(signature_data_url=signature_data_url, photo_url=photo_url)
        return self._act(package_id, PackageStatus.DELIVERED, proof)

    def fail(self, package_id: str, reason: str) -> Tuple[Order, Package]:
        if not reason or not reason.strip():
            raise OrderValidationError("reason: required when failing a package")
        return self._act(package_id, PackageStatus.FAILED, Proof(reason=reason.strip()))

    def _act(self, package_id: str, status: PackageStatus, proof: Optional[Proof]) -> Tuple[Order, Package]:
        order_id = self._locate(package_id)

        def mutate(order: Order):
            pkg = order.package(package_id)
            if pkg is None:
                raise PackageNotFound(package_id)
            pkg.transition(status, proof)
            order.reconcile_packages()
            order.touch()
            return order.model_copy(deep=True), pkg.model_copy(deep=True)

        result = self.store.update_order(order_id, mutate)
        if result is None:
            raise PackageNotFound(package_id)
        order, pkg = result
        logger.info(f"package {pkg.id} of order {order.id} is now {pkg.status.value} (order {order.status.value})")

        self.bus.publish(package_updated(order.id, pkg))
        self.bus.publish(order_updated(order))

        route = self._progress_route(order)
        if route is not None:
            self.bus.publish(route_updated(order.id, route))

        try:
            self.durable.upsert_order(order)
        except StoreError as e:
            logger.warning(f"durable write failed for order {order.id}: {e}")
        return order, pkg

    def _locate(self, package_id: str) -> str:
        order_id = self.store.find_order_id_by_package(package_id)
        if order_id:
            return order_id

        # cold cache, e.g. after a restart
        try:
            order = self.durable.find_order_by_package(package_id)
        except StoreError as e:
            logger.warning(f"durable lookup for package {package_id} failed: {e}")
            order = None
        if order is None:
            raise PackageNotFound(package_id)
        self.store.warm(order)
        return order.id

    def _progress_route(self, order: Order) -> Optional[Route]:
        if not order.route_id:
            return None

        def mutate(route: Route):
            ids = set(route.package_ids)
            packages = [p for p in order.packages if not ids or p.id in ids] or order.packages
            if all(p.is_terminal for p in packages):
                changed = route.advance(RouteStatus.COMPLETED)
            elif any(p.status != PackageStatus.WAITING for p in packages):
                changed = route.advance(RouteStatus.IN_PROGRESS)
            else:
                changed = False
            return route.model_copy(deep=True) if changed else None

        return self.store.update_route(order.route_id, mutate)
