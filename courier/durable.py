"""
Durable document store for orders and stock.

The orchestrator only relies on the ``DocumentStore`` contract: merge-upsert
and point/filtered reads of order documents, plus stock items with atomic
quantity changes. ``PostgresDocumentStore`` keeps each order as a JSONB
document; ``MemoryDocumentStore`` is the process-local stand-in used when no
``DATABASE_URL`` is configured.
"""

import copy
import json
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from courier.db import db_conn, init_db
from courier.exceptions import InsufficientStock
from courier.models import Order, StockItem
from courier.utils.ids import now_ms

logger = logging.getLogger(__name__)


def stock_shortfalls(requested: Dict[str, int], on_hand: Dict[str, int]) -> List[str]:
    problems = []
    for item_id in sorted(requested):
        if item_id not in on_hand:
            problems.append(f"stock item {item_id} not found")
        elif on_hand[item_id] < requested[item_id]:
            problems.append(
                f"stock item {item_id}: requested {requested[item_id]}, on hand {on_hand[item_id]}"
            )
    return problems


class DocumentStore(ABC):
    """Orders keyed by id, stock items keyed by item id"""

    @abstractmethod
    def upsert_order(self, order: Order) -> None:
        """Create or merge the order document"""
        pass

    @abstractmethod
    def get_order(self, order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    def find_orders(
        self,
        client_id: Optional[str] = None,
        driver_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[Order]:
        pass

    @abstractmethod
    def find_order_by_package(self, package_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    def get_stock(self, item_id: str) -> Optional[StockItem]:
        pass

    @abstractmethod
    def list_stock(self) -> List[StockItem]:
        pass

    @abstractmethod
    def put_stock(self, item: StockItem) -> StockItem:
        pass

    @abstractmethod
    def adjust_stock(self, item_id: str, delta: int) -> Optional[int]:
        """
        Atomically add ``delta`` (may be negative) to the on-hand quantity.

        Returns the new quantity, ``None`` if the item does not exist.
        Raises ``InsufficientStock`` if the result would go below zero.
        """
        pass

    @abstractmethod
    def reserve_stock(self, quantities: Dict[str, int]) -> None:
        """
        Check and decrement every item in one atomic step.

        Either all items have enough on hand and all are decremented, or
        nothing changes and ``InsufficientStock`` lists every shortfall.
        """
        pass

    def init(self):
        """Prepare the backing storage (tables, indexes)"""


class PostgresDocumentStore(DocumentStore):
    def __init__(self, dsn: str):
        self.dsn = dsn

    def init(self):
        init_db(self.dsn)
        logger.info("postgres document store ready")

    def upsert_order(self, order: Order) -> None:
        doc = order.to_dict()
        with db_conn(self.dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO orders (id, client_id, driver_id, status, payload, created_at)
                    VALUES (%s, %s, %s, %s, %s::jsonb, %s)
                    ON CONFLICT (id) DO UPDATE
                    SET payload = orders.payload || EXCLUDED.payload,
                        status = EXCLUDED.status,
                        driver_id = COALESCE(EXCLUDED.driver_id, orders.driver_id),
                        updated_at = NOW()
                    """,
                    (order.id, order.client_id, order.driver_id, order.status.value, json.dumps(doc), order.created_at),
                )

    def get_order(self, order_id: str) -> Optional[Order]:
        with db_conn(self.dsn) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT payload FROM orders WHERE id=%s", (order_id,))
                row = cur.fetchone()
        return Order.model_validate(row[0]) if row else None

    def find_orders(self, client_id=None, driver_id=None, status=None) -> List[Order]:
        q = "SELECT payload FROM orders"
        where, params = [], []
        if client_id:
            where.append("client_id=%s")
            params.append(client_id)
        if driver_id:
            where.append("driver_id=%s")
            params.append(driver_id)
        if status:
            where.append("status=%s")
            params.append(status)
        if where:
            q += " WHERE " + " AND ".join(where)
        q += " ORDER BY created_at DESC"

        with db_conn(self.dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(q, params)
                rows = cur.fetchall()
        return [Order.model_validate(r[0]) for r in rows]

    def find_order_by_package(self, package_id: str) -> Optional[Order]:
        with db_conn(self.dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT payload FROM orders WHERE payload->'packages' @> %s::jsonb LIMIT 1",
                    (json.dumps([{"id": package_id}]),),
                )
                row = cur.fetchone()
        return Order.model_validate(row[0]) if row else None

    def get_stock(self, item_id: str) -> Optional[StockItem]:
        with db_conn(self.dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT id, name, category, quantity, unit, price,
                           (extract(epoch from updated_at) * 1000)::bigint
                    FROM stock WHERE id=%s
                    """,
                    (item_id,),
                )
                row = cur.fetchone()
        return self._stock_row(row) if row else None

    def list_stock(self) -> List[StockItem]:
        with db_conn(self.dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT id, name, category, quantity, unit, price,
                           (extract(epoch from updated_at) * 1000)::bigint
                    FROM stock ORDER BY id
                    """
                )
                rows = cur.fetchall()
        return [self._stock_row(r) for r in rows]

    def put_stock(self, item: StockItem) -> StockItem:
        with db_conn(self.dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO stock (id, name, category, quantity, unit, price)
                    VALUES (%s, %s, %s, %s, %s, %s)
                    ON CONFLICT (id) DO UPDATE
                    SET name = EXCLUDED.name,
                        category = EXCLUDED.category,
                        quantity = EXCLUDED.quantity,
                        unit = EXCLUDED.unit,
                        price = EXCLUDED.price,
                        updated_at = NOW()
                    """,
                    (item.id, item.name, item.category, item.quantity, item.unit, item.price),
                )
        return item

    def adjust_stock(self, item_id: str, delta: int) -> Optional[int]:
        with db_conn(self.dsn) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT quantity FROM stock WHERE id=%s FOR UPDATE", (item_id,))
                row = cur.fetchone()
                if not row:
                    return None
                if row[0] + delta < 0:
                    raise InsufficientStock(
                        f"stock item {item_id}: on hand {row[0]}, change {delta}"
                    )
                cur.execute(
                    "UPDATE stock SET quantity = quantity + %s, updated_at = NOW() WHERE id=%s RETURNING quantity",
                    (delta, item_id),
                )
                return cur.fetchone()[0]

    def reserve_stock(self, quantities: Dict[str, int]) -> None:
        if not quantities:
            return
        ids = sorted(quantities)
        with db_conn(self.dsn) as conn:
            with conn.cursor() as cur:
                # lock rows in a fixed order so concurrent reservations cannot deadlock
                cur.execute(
                    "SELECT id, quantity FROM stock WHERE id = ANY(%s) ORDER BY id FOR UPDATE",
                    (ids,),
                )
                on_hand = {r[0]: r[1] for r in cur.fetchall()}
                problems = stock_shortfalls(quantities, on_hand)
                if problems:
                    raise InsufficientStock("Insufficient stock", problems)
                for item_id in ids:
                    cur.execute(
                        "UPDATE stock SET quantity = quantity - %s, updated_at = NOW() WHERE id=%s",
                        (quantities[item_id], item_id),
                    )

    @staticmethod
    def _stock_row(row) -> StockItem:
        return StockItem(
            id=row[0],
            name=row[1],
            category=row[2],
            quantity=int(row[3]),
            unit=row[4],
            price=float(row[5]),
            updated_at=int(row[6]) if row[6] is not None else None,
        )


class MemoryDocumentStore(DocumentStore):
    """Documents held as plain dicts, so reads never alias the caller's objects"""

    def __init__(self):
        self._lock = threading.Lock()
        self._orders: Dict[str, Dict[str, Any]] = {}
        self._stock: Dict[str, Dict[str, Any]] = {}

    def upsert_order(self, order: Order) -> None:
        doc = order.to_dict()
        with self._lock:
            existing = self._orders.get(order.id)
            if existing is None:
                self._orders[order.id] = doc
            else:
                existing.update(doc)

    def get_order(self, order_id: str) -> Optional[Order]:
        with self._lock:
            doc = copy.deepcopy(self._orders.get(order_id))
        return Order.model_validate(doc) if doc else None

    def find_orders(self, client_id=None, driver_id=None, status=None) -> List[Order]:
        with self._lock:
            docs = [
                copy.deepcopy(d)
                for d in self._orders.values()
                if (not client_id or d.get("clientId") == client_id)
                and (not driver_id or d.get("driverId") == driver_id)
                and (not status or d.get("status") == status)
            ]
        docs.sort(key=lambda d: d.get("createdAt", 0), reverse=True)
        return [Order.model_validate(d) for d in docs]

    def find_order_by_package(self, package_id: str) -> Optional[Order]:
        with self._lock:
            for doc in self._orders.values():
                if any(p.get("id") == package_id for p in doc.get("packages", [])):
                    return Order.model_validate(copy.deepcopy(doc))
        return None

    def get_stock(self, item_id: str) -> Optional[StockItem]:
        with self._lock:
            doc = self._stock.get(item_id)
            return StockItem.model_validate(doc) if doc else None

    def list_stock(self) -> List[StockItem]:
        with self._lock:
            return [StockItem.model_validate(self._stock[k]) for k in sorted(self._stock)]

    def put_stock(self, item: StockItem) -> StockItem:
        doc = item.to_dict()
        doc["updatedAt"] = now_ms()
        with self._lock:
            self._stock[item.id] = doc
        return StockItem.model_validate(doc)

    def adjust_stock(self, item_id: str, delta: int) -> Optional[int]:
        with self._lock:
            doc = self._stock.get(item_id)
            if doc is None:
                return None
            if doc["quantity"] + delta < 0:
                raise InsufficientStock(f"stock item {item_id}: on hand {doc['quantity']}, change {delta}")
            doc["quantity"] += delta
            doc["updatedAt"] = now_ms()
            return doc["quantity"]

    def reserve_stock(self, quantities: Dict[str, int]) -> None:
        if not quantities:
            return
        with self._lock:
            on_hand = {k: self._stock[k]["quantity"] for k in quantities if k in self._stock}
            problems = stock_shortfalls(quantities, on_hand)
            if problems:
                raise InsufficientStock("Insufficient stock", problems)
            stamp = now_ms()
            for item_id, qty in quantities.items():
                self._stock[item_id]["quantity"] -= qty
                self._stock[item_id]["updatedAt"] = stamp
