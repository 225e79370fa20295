from collections import Counter

from fastapi import APIRouter, Depends

from courier.deps import get_services, require_api_key
from courier.models import OrderStatus
from courier.services import Services

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_api_key)])


@router.get("/stats")
def stats(services: Services = Depends(get_services)):
    counts = Counter(o.status for o in services.store.list_orders())
    return {
        "total": sum(counts.values()),
        **{s.value.lower(): counts.get(s, 0) for s in OrderStatus},
        "outbox": len(services.outbox),
        "subscribers": services.bus.subscriber_count,
    }


@router.get("/outbox")
def outbox_pending(services: Services = Depends(get_services)):
    return {"tasks": [t.to_dict() for t in services.outbox.pending()]}


# Meant for a scheduler or an operator, not end users
@router.post("/outbox/drain")
def outbox_drain(services: Services = Depends(get_services)):
    processed = services.outbox_processor.process()
    return {"processed": processed, "pending": len(services.outbox)}
