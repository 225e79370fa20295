import json
from unittest import mock

import psycopg2
import pytest

from courier.durable import MemoryDocumentStore, PostgresDocumentStore, stock_shortfalls
from courier.exceptions import InsufficientStock, StoreError
from courier.models import Order, OrderStatus, Package, StockItem


def test_stock_shortfalls():
    assert stock_shortfalls({"a": 1}, {"a": 1}) == []
    assert stock_shortfalls({"b": 3, "a": 1}, {"b": 2}) == [
        "stock item a not found",
        "stock item b: requested 3, on hand 2",
    ]


class TestMemoryDocumentStore:
    def test_upsert_merges(self):
        store = MemoryDocumentStore()
        store.upsert_order(Order(id="ORD-1", client_id="C1", cms_order_id="CMS-1"))
        store.upsert_order(Order(id="ORD-1", client_id="C1", status=OrderStatus.ROUTED))

        order = store.get_order("ORD-1")
        assert order.cms_order_id == "CMS-1"
        assert order.status == OrderStatus.ROUTED

    def test_find_by_package(self):
        store = MemoryDocumentStore()
        store.upsert_order(
            Order(id="ORD-1", client_id="C1", packages=[Package(id="PKG-1", description="Box")])
        )
        assert store.find_order_by_package("PKG-1").id == "ORD-1"
        assert store.find_order_by_package("PKG-2") is None

    def test_find_orders_by_status(self):
        store = MemoryDocumentStore()
        store.upsert_order(Order(id="ORD-1", client_id="C1", status=OrderStatus.FAILED))
        store.upsert_order(Order(id="ORD-2", client_id="C1"))
        assert [o.id for o in store.find_orders(status="FAILED")] == ["ORD-1"]

    def test_adjust_stock(self):
        store = MemoryDocumentStore()
        store.put_stock(StockItem(id="SKU-1", quantity=2))

        assert store.adjust_stock("SKU-1", 3) == 5
        assert store.adjust_stock("SKU-nope", 1) is None
        with pytest.raises(InsufficientStock):
            store.adjust_stock("SKU-1", -6)
        assert store.get_stock("SKU-1").quantity == 5

    def test_reserve_is_all_or_nothing(self):
        store = MemoryDocumentStore()
        store.put_stock(StockItem(id="SKU-1", quantity=2))
        store.put_stock(StockItem(id="SKU-2", quantity=1))

        with pytest.raises(InsufficientStock) as exc:
            store.reserve_stock({"SKU-1": 1, "SKU-2": 2})

        assert exc.value.errors == ["stock item SKU-2: requested 2, on hand 1"]
        assert [i.quantity for i in store.list_stock()] == [2, 1]


@pytest.fixture()
def pg():
    with mock.patch("courier.db.psycopg2.connect") as connect:
        conn = connect.return_value
        conn.__enter__.return_value = conn
        conn.__exit__.return_value = False
        cur = conn.cursor.return_value.__enter__.return_value
        yield connect, conn, cur


class TestPostgresDocumentStore:
    def test_upsert_merges_payload(self, pg):
        connect, conn, cur = pg

        PostgresDocumentStore("postgresql://db").upsert_order(Order(id="ORD-1", client_id="C1", driver_id="D1"))

        connect.assert_called_once_with("postgresql://db")
        sql, params = cur.execute.call_args.args
        assert "payload = orders.payload || EXCLUDED.payload" in sql
        assert params[:4] == ("ORD-1", "C1", "D1", "PENDING")
        assert json.loads(params[4])["clientId"] == "C1"
        conn.close.assert_called_once()

    def test_get_order(self, pg):
        _, _, cur = pg
        cur.fetchone.return_value = ({"id": "ORD-1", "clientId": "C1", "status": "ROUTED"},)

        order = PostgresDocumentStore("postgresql://db").get_order("ORD-1")

        assert order.status == OrderStatus.ROUTED

    def test_reserve_locks_rows_in_id_order(self, pg):
        _, _, cur = pg
        cur.fetchall.return_value = [("SKU-a", 5), ("SKU-b", 5)]

        PostgresDocumentStore("postgresql://db").reserve_stock({"SKU-b": 2, "SKU-a": 1})

        calls = cur.execute.call_args_list
        assert "FOR UPDATE" in calls[0].args[0]
        assert calls[0].args[1] == (["SKU-a", "SKU-b"],)
        assert [c.args[1] for c in calls[1:]] == [(1, "SKU-a"), (2, "SKU-b")]

    def test_reserve_shortfall_updates_nothing(self, pg):
        _, _, cur = pg
        cur.fetchall.return_value = [("SKU-a", 0)]

        with pytest.raises(InsufficientStock):
            PostgresDocumentStore("postgresql://db").reserve_stock({"SKU-a": 1})

        assert cur.execute.call_count == 1

    def test_driver_errors_become_store_errors(self, pg):
        connect, conn, _ = pg
        connect.side_effect = psycopg2.OperationalError("could not connect")

        with pytest.raises(StoreError):
            PostgresDocumentStore("postgresql://db").get_order("ORD-1")

    def test_query_errors_become_store_errors(self, pg):
        _, conn, cur = pg
        cur.execute.side_effect = psycopg2.ProgrammingError("relation \"orders\" does not exist")

        with pytest.raises(StoreError):
            PostgresDocumentStore("postgresql://db").find_orders(client_id="C1")
        conn.close.assert_called_once()
