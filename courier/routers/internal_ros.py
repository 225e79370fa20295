from datetime import datetime, timezone

from fastapi import APIRouter

from courier.utils.ids import gen_id

router = APIRouter(prefix="/internal/ros", tags=["internal-ros"])

LAST = {
    "seen_at": None,
    "request_json": None,
    "response_json": None,
}


@router.post("")
def ros_plan(payload: dict):
    packages = payload.get("packages") or []
    resp = {
        "routeId": gen_id("RT"),
        "driverId": payload.get("driverId"),
        # line-of-travel order is just submission order here
        "waypoints": [p.get("address") or f"Address for {p.get('id')}" for p in packages],
        "status": "ASSIGNED",
        "packageIds": [p["id"] for p in packages if p.get("id")],
    }
    LAST.update({
        "seen_at": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "request_json": payload,
        "response_json": resp,
    })
    return resp


@router.get("/last")
def ros_last():
    return LAST
