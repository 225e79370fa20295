"""
Domain events published on the in-process bus.

Events are frozen and carry deep copies taken at publish time, so later
mutation of the live order never changes what a subscriber already saw.
Build them with the helper functions rather than the classes directly.
"""

from typing import Literal, Union

from pydantic import ConfigDict

from courier.models import CamelModel, Order, Package, Route


class DomainEvent(CamelModel):
    model_config = ConfigDict(frozen=True)

    type: str


class OrderUpdated(DomainEvent):
    type: Literal["ORDER_UPDATED"] = "ORDER_UPDATED"
    order: Order


class PackageUpdated(DomainEvent):
    type: Literal["PACKAGE_UPDATED"] = "PACKAGE_UPDATED"
    order_id: str
    package: Package


class RouteUpdated(DomainEvent):
    type: Literal["ROUTE_UPDATED"] = "ROUTE_UPDATED"
    order_id: str
    route: Route


class RouteAssigned(DomainEvent):
    type: Literal["ROUTE_ASSIGNED"] = "ROUTE_ASSIGNED"
    route_id: str
    driver_id: str


AnyEvent = Union[OrderUpdated, PackageUpdated, RouteUpdated, RouteAssigned]


def order_updated(order: Order) -> OrderUpdated:
    return OrderUpdated(order=order.model_copy(deep=True))


def package_updated(order_id: str, package: Package) -> PackageUpdated:
    return PackageUpdated(order_id=order_id, package=package.model_copy(deep=True))


def route_updated(order_id: str, route: Route) -> RouteUpdated:
    return RouteUpdated(order_id=order_id, route=route.model_copy(deep=True))


def route_assigned(route: Route) -> RouteAssigned:
    return RouteAssigned(route_id=route.id, driver_id=route.driver_id)
