from datetime import datetime, timezone

from fastapi import APIRouter

from courier.utils.ids import gen_id

router = APIRouter(prefix="/internal/cms", tags=["internal-cms"])

LAST = {
    "seen_at": None,
    "request_json": None,
    "response_json": None,
}


# Stand-in for the CMS adapter: a real one would speak SOAP
@router.post("")
def cms_register(payload: dict):
    resp = {
        "cmsOrderId": gen_id("CMS"),
        "message": f"CMS registered order for client {payload.get('clientId')}",
    }
    LAST.update({
        "seen_at": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "request_json": payload,
        "response_json": resp,
    })
    return resp


@router.get("/last")
def cms_last():
    return LAST
