from typing import List, Optional

from pydantic import Field

from courier.models import CamelModel, OrderStatus


class PackageReq(CamelModel):
    description: str = Field(min_length=1, max_length=200)
    address: str = Field(min_length=3, max_length=200)
    stock_item_id: Optional[str] = Field(default=None, min_length=1, max_length=100)
    quantity: Optional[int] = Field(default=None, ge=1, le=10000)


class CreateOrderReq(CamelModel):
    client_id: str = Field(min_length=3, max_length=100)
    driver_id: str = Field(min_length=1, max_length=50)
    packages: List[PackageReq] = Field(min_length=1, max_length=50)


class CreateOrderOut(CamelModel):
    order_id: str
    status: OrderStatus
    route_id: Optional[str] = None


class PickupReq(CamelModel):
    package_id: str = Field(min_length=1)


class DeliverReq(CamelModel):
    package_id: str = Field(min_length=1)
    signature_data_url: Optional[str] = None
    photo_url: Optional[str] = None


class FailReq(CamelModel):
    package_id: str = Field(min_length=1)
    reason: str = Field(min_length=1, max_length=500)


class StockPutReq(CamelModel):
    name: str = Field(default="Unnamed", min_length=1, max_length=200)
    category: str = "Uncategorized"
    quantity: int = Field(default=0, ge=0)
    unit: str = ""
    price: float = Field(default=0, ge=0)


class StockAdjustReq(CamelModel):
    delta: int
