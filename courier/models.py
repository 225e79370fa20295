"""
Order, package and route documents.

Wire form is camelCase JSON (``clientId``, ``cmsOrderId``...), attributes are
snake_case. Status changes go through ``Order.advance`` and
``Package.transition`` so that ordering rules live in one place.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from courier.exceptions import InvalidTransition
from courier.utils.ids import now_ms


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ============================================================================
# Enums
# ============================================================================

class OrderStatus(str, Enum):
    PENDING = "PENDING"
    IN_WMS = "IN_WMS"
    ROUTED = "ROUTED"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"


class PackageStatus(str, Enum):
    WAITING = "WAITING"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"


class RouteStatus(str, Enum):
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class OutboxKind(str, Enum):
    CMS_REGISTER = "CMS_REGISTER"
    WMS_REGISTER = "WMS_REGISTER"
    ROS_PLAN = "ROS_PLAN"


ORDER_RANK = {
    OrderStatus.PENDING: 0,
    OrderStatus.IN_WMS: 1,
    OrderStatus.ROUTED: 2,
    OrderStatus.DELIVERED: 3,
}
TERMINAL_ORDER_STATUSES = (OrderStatus.DELIVERED, OrderStatus.FAILED)

PACKAGE_RANK = {
    PackageStatus.WAITING: 0,
    PackageStatus.IN_TRANSIT: 1,
    PackageStatus.DELIVERED: 2,
    PackageStatus.FAILED: 2,
}
TERMINAL_PACKAGE_STATUSES = (PackageStatus.DELIVERED, PackageStatus.FAILED)

ROUTE_RANK = {
    RouteStatus.ASSIGNED: 0,
    RouteStatus.IN_PROGRESS: 1,
    RouteStatus.COMPLETED: 2,
}


# ============================================================================
# Documents
# ============================================================================

class Proof(CamelModel):
    signature_data_url: Optional[str] = None
    photo_url: Optional[str] = None
    reason: Optional[str] = None
    timestamp: int = Field(default_factory=now_ms)


class Package(CamelModel):
    id: str
    description: str
    address: Optional[str] = None
    status: PackageStatus = PackageStatus.WAITING
    proof: Optional[Proof] = None
    stock_item_id: Optional[str] = None
    quantity: Optional[int] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_PACKAGE_STATUSES

    def transition(self, status: PackageStatus, proof: Optional[Proof] = None):
        """Move forward; leaving DELIVERED/FAILED or stepping back raises"""
        if self.is_terminal:
            raise InvalidTransition(f"package {self.id} is already {self.status.value}")
        if PACKAGE_RANK[status] <= PACKAGE_RANK[self.status]:
            raise InvalidTransition(
                f"package {self.id} cannot move from {self.status.value} to {status.value}"
            )
        self.status = status
        if proof is not None:
            self.proof = proof


class Route(CamelModel):
    id: str
    driver_id: str
    waypoints: List[str] = Field(default_factory=list)
    status: RouteStatus = RouteStatus.ASSIGNED
    package_ids: List[str] = Field(default_factory=list)

    def advance(self, status: RouteStatus) -> bool:
        if ROUTE_RANK[status] <= ROUTE_RANK[self.status]:
            return False
        self.status = status
        return True


class Order(CamelModel):
    id: str
    client_id: str
    driver_id: Optional[str] = None
    packages: List[Package] = Field(default_factory=list)
    status: OrderStatus = OrderStatus.PENDING
    route_id: Optional[str] = None
    cms_order_id: Optional[str] = None
    created_at: int = Field(default_factory=now_ms)
    updated_at: int = Field(default_factory=now_ms)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_ORDER_STATUSES

    def package(self, package_id: str) -> Optional[Package]:
        for pkg in self.packages:
            if pkg.id == package_id:
                return pkg
        return None

    def advance(self, status: OrderStatus) -> bool:
        """
        Apply ``status`` only if it moves the order forward.

        FAILED is accepted from any non-terminal state; nothing leaves
        DELIVERED or FAILED. Returns whether the status changed.
        """
        if self.is_terminal or status == self.status:
            return False
        if status == OrderStatus.FAILED or ORDER_RANK[status] > ORDER_RANK[self.status]:
            self.status = status
            self.touch()
            return True
        return False

    def reconcile_packages(self) -> bool:
        """Derive DELIVERED/FAILED from package states"""
        if any(p.status == PackageStatus.FAILED for p in self.packages):
            return self.advance(OrderStatus.FAILED)
        if self.packages and all(p.status == PackageStatus.DELIVERED for p in self.packages):
            return self.advance(OrderStatus.DELIVERED)
        return False

    def touch(self):
        self.updated_at = now_ms()


class OutboxTask(CamelModel):
    kind: OutboxKind
    order_id: str
    attempts: int = 0
    enqueued_at: int = Field(default_factory=now_ms)


class StockItem(CamelModel):
    id: str
    name: str = "Unnamed"
    category: str = "Uncategorized"
    quantity: int = 0
    unit: str = ""
    price: float = 0
    updated_at: Optional[int] = None
