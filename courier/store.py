"""
Process-local working set shared by every request handler and the outbox
processor.

The store hands out copies: callers mutate their own copy and write it back
with ``put_order``, or do a read-modify-write under the store lock with
``update_order``. A ``packageId -> orderId`` index is kept alongside the
orders so driver actions do not scan every order.
"""

import logging
import threading
from collections import deque
from typing import Callable, Dict, List, Optional, TypeVar

from courier.models import Order, OutboxTask, Route

logger = logging.getLogger(__name__)

T = TypeVar("T")


class WorkingStore:
    def __init__(self):
        self._lock = threading.RLock()
        self._orders: Dict[str, Order] = {}
        self._routes: Dict[str, Route] = {}
        self._package_index: Dict[str, str] = {}

    # ---------------- orders ----------------
    def put_order(self, order: Order) -> Order:
        with self._lock:
            self._store(order.model_copy(deep=True))
        return order

    def get_order(self, order_id: str) -> Optional[Order]:
        with self._lock:
            order = self._orders.get(order_id)
            return order.model_copy(deep=True) if order else None

    def list_orders(self) -> List[Order]:
        with self._lock:
            return [o.model_copy(deep=True) for o in self._orders.values()]

    def warm(self, order: Order) -> Order:
        """Cache ``order`` unless a newer copy is already cached; returns the fresher one"""
        with self._lock:
            current = self._orders.get(order.id)
            if current is not None and current.updated_at > order.updated_at:
                return current.model_copy(deep=True)
            self._store(order.model_copy(deep=True))
            return order

    def find_order_id_by_package(self, package_id: str) -> Optional[str]:
        with self._lock:
            return self._package_index.get(package_id)

    def update_order(self, order_id: str, fn: Callable[[Order], T]) -> Optional[T]:
        """
        Run ``fn`` on a copy of the cached order while holding the lock.

        The copy replaces the cached order only if ``fn`` returns normally;
        if it raises, the cache is untouched and the error propagates.
        Returns ``None`` when the order is not cached.
        """
        with self._lock:
            current = self._orders.get(order_id)
            if current is None:
                return None
            draft = current.model_copy(deep=True)
            result = fn(draft)
            self._store(draft)
            return result

    def _store(self, order: Order):
        previous = self._orders.get(order.id)
        if previous is not None:
            for pkg in previous.packages:
                self._package_index.pop(pkg.id, None)
        self._orders[order.id] = order
        for pkg in order.packages:
            self._package_index[pkg.id] = order.id

    # ---------------- routes ----------------
    def put_route(self, route: Route) -> Route:
        with self._lock:
            self._routes[route.id] = route.model_copy(deep=True)
        return route

    def get_route(self, route_id: str) -> Optional[Route]:
        with self._lock:
            route = self._routes.get(route_id)
            return route.model_copy(deep=True) if route else None

    def update_route(self, route_id: str, fn: Callable[[Route], T]) -> Optional[T]:
        with self._lock:
            current = self._routes.get(route_id)
            if current is None:
                return None
            draft = current.model_copy(deep=True)
            result = fn(draft)
            self._routes[route_id] = draft
            return result

    def __len__(self):
        with self._lock:
            return len(self._orders)


class OutboxQueue:
    """
    Unbounded FIFO of integration tasks waiting for a retry.

    Enqueue never deduplicates: a step that fails twice yields two tasks.
    ``drain`` takes the whole queue in one step; it is safe against
    concurrent enqueues but assumes a single drainer.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._tasks = deque()

    def enqueue(self, task: OutboxTask):
        with self._lock:
            self._tasks.append(task)
        logger.warning(f"outbox: queued {task.kind.value} for order {task.order_id} (attempts={task.attempts})")

    def drain(self) -> List[OutboxTask]:
        with self._lock:
            batch = list(self._tasks)
            self._tasks.clear()
        return batch

    def pending(self) -> List[OutboxTask]:
        with self._lock:
            return list(self._tasks)

    def __len__(self):
        with self._lock:
            return len(self._tasks)
