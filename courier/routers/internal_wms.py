from datetime import datetime, timezone

from fastapi import APIRouter

from courier.utils.ids import gen_id

router = APIRouter(prefix="/internal/wms", tags=["internal-wms"])

LAST = {
    "seen_at": None,
    "request_json": None,
    "response_json": None,
}


@router.post("")
def wms_register(payload: dict):
    packages = [
        {
            "id": gen_id("PKG"),
            "description": p.get("description") or "Item",
            "address": p.get("address") or "Address TBD",
            "status": "WAITING",
        }
        for p in payload.get("packages") or []
    ]
    resp = {"packages": packages}
    LAST.update({
        "seen_at": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "request_json": payload,
        "response_json": resp,
    })
    return resp


@router.get("/last")
def wms_last():
    return LAST
