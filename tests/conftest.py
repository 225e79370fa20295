import pytest
from fastapi.testclient import TestClient

from courier.durable import MemoryDocumentStore
from courier.exceptions import IntegrationError
from courier.main import create_app
from courier.models import Package, Route, RouteStatus, StockItem
from courier.services import Services


class FakeCMS:
    def __init__(self):
        self.fail = False
        self.calls = []

    def register(self, client_id, order_id):
        self.calls.append((client_id, order_id))
        if self.fail:
            raise IntegrationError("CMS", "500 Server Error")
        return f"CMS-{order_id}"


class FakeWMS:
    def __init__(self):
        self.fail = False
        self.calls = []

    def register(self, packages):
        self.calls.append(packages)
        if self.fail:
            raise IntegrationError("WMS", "connection refused")
        return [
            Package(id=f"WMS-{len(self.calls)}-{i}", description=p.description, address=p.address)
            for i, p in enumerate(packages)
        ]


class FakeROS:
    def __init__(self):
        self.fail = False
        self.calls = []

    def plan(self, packages, driver_id):
        self.calls.append((packages, driver_id))
        if self.fail:
            raise IntegrationError("ROS", "timed out after 5.0s")
        return Route(
            id=f"RT-{len(self.calls)}",
            driver_id=driver_id,
            waypoints=[p.address for p in packages],
            status=RouteStatus.ASSIGNED,
            package_ids=[p.id for p in packages],
        )


@pytest.fixture()
def cms():
    return FakeCMS()


@pytest.fixture()
def wms():
    return FakeWMS()


@pytest.fixture()
def ros():
    return FakeROS()


@pytest.fixture()
def durable():
    store = MemoryDocumentStore()
    store.put_stock(StockItem(id="SKU-1", name="Box", quantity=5))
    store.put_stock(StockItem(id="SKU-2", name="Crate", quantity=2))
    return store


@pytest.fixture()
def services(durable, cms, wms, ros):
    return Services(durable=durable, cms=cms, wms=wms, ros=ros)


@pytest.fixture()
def events(services):
    """Every event published on the bus, in order"""
    seen = []
    services.bus.subscribe(seen.append)
    return seen


@pytest.fixture()
def orchestrator(services):
    return services.orchestrator


@pytest.fixture()
def client(services):
    with TestClient(create_app(services)) as c:
        yield c


@pytest.fixture()
def order_payload():
    return {
        "clientId": "C1",
        "driverId": "D1",
        "packages": [{"description": "Box", "address": "123 Main St"}],
    }
