import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Query

from courier.deps import bad_request, get_services, require_api_key
from courier.exceptions import OrderNotFound, OrderValidationError, RouteNotFound, StoreError
from courier.services import Services

logger = logging.getLogger(__name__)

router = APIRouter(tags=["orders"], dependencies=[Depends(require_api_key)])


@router.post("/orders")
def create_order(
    payload: Any = Body(...),
    idempotency_key: str | None = Header(None, alias="Idempotency-Key"),
    services: Services = Depends(get_services),
):
    try:
        result = services.orchestrator.create_order(payload, idempotency_key=idempotency_key)
    except OrderValidationError as e:
        raise bad_request(e)
    except StoreError as e:
        logger.error(f"order creation aborted, stock store unavailable: {e}")
        raise HTTPException(status_code=503, detail="Stock store unavailable")
    return result.to_dict()


@router.get("/orders")
def list_orders(
    client_id: str | None = Query(None, alias="clientId"),
    driver_id: str | None = Query(None, alias="driverId"),
    services: Services = Depends(get_services),
):
    orders = services.orchestrator.list_orders(client_id=client_id, driver_id=driver_id)
    return {"orders": [o.to_dict() for o in orders]}


@router.get("/orders/{order_id}")
def get_order(order_id: str, services: Services = Depends(get_services)):
    try:
        order = services.orchestrator.get_order(order_id)
    except OrderNotFound:
        raise HTTPException(status_code=404, detail="Order not found")
    except StoreError:
        raise HTTPException(status_code=503, detail="Order store unavailable")
    return order.to_dict()


@router.get("/routes/{route_id}")
def get_route(route_id: str, services: Services = Depends(get_services)):
    try:
        return services.orchestrator.get_route(route_id).to_dict()
    except RouteNotFound:
        raise HTTPException(status_code=404, detail="Route not found")
