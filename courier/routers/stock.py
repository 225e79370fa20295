from fastapi import APIRouter, Depends, HTTPException

from courier.deps import bad_request, get_services, require_api_key
from courier.exceptions import InsufficientStock, StoreError
from courier.models import StockItem
from courier.schemas import StockAdjustReq, StockPutReq
from courier.services import Services

router = APIRouter(prefix="/stock", tags=["stock"], dependencies=[Depends(require_api_key)])


@router.get("")
def list_stock(services: Services = Depends(get_services)):
    try:
        items = services.durable.list_stock()
    except StoreError:
        raise HTTPException(status_code=503, detail="Stock store unavailable")
    return {"stock": [i.to_dict() for i in items]}


@router.put("/{item_id}")
def put_stock(item_id: str, body: StockPutReq, services: Services = Depends(get_services)):
    item = StockItem(id=item_id, **body.model_dump())
    try:
        saved = services.durable.put_stock(item)
    except StoreError:
        raise HTTPException(status_code=503, detail="Stock store unavailable")
    return saved.to_dict()


@router.post("/{item_id}/adjust")
def adjust_stock(item_id: str, body: StockAdjustReq, services: Services = Depends(get_services)):
    try:
        quantity = services.durable.adjust_stock(item_id, body.delta)
    except InsufficientStock as e:
        raise bad_request(e)
    except StoreError:
        raise HTTPException(status_code=503, detail="Stock store unavailable")
    if quantity is None:
        raise HTTPException(status_code=404, detail="Stock item not found")
    return {"id": item_id, "quantity": quantity}
