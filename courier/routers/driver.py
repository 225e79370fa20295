from fastapi import APIRouter, Depends, HTTPException

from courier.deps import bad_request, get_services, require_api_key
from courier.exceptions import InvalidTransition, OrderValidationError, PackageNotFound
from courier.schemas import DeliverReq, FailReq, PickupReq
from courier.services import Services

router = APIRouter(prefix="/driver", tags=["driver"], dependencies=[Depends(require_api_key)])


def _run(action, package_id: str, *args):
    try:
        order, pkg = action(package_id, *args)
    except PackageNotFound:
        raise HTTPException(status_code=404, detail="Order not found for package")
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    except OrderValidationError as e:
        raise bad_request(e)
    return {"ok": True, "orderId": order.id, "orderStatus": order.status.value, "package": pkg.to_dict()}


@router.post("/pickup")
def pickup(body: PickupReq, services: Services = Depends(get_services)):
    return _run(services.drivers.pickup, body.package_id)


@router.post("/deliver")
def deliver(body: DeliverReq, services: Services = Depends(get_services)):
    return _run(services.drivers.deliver, body.package_id, body.signature_data_url, body.photo_url)


@router.post("/fail")
def fail(body: FailReq, services: Services = Depends(get_services)):
    return _run(services.drivers.fail, body.package_id, body.reason)
