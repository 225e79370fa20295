"""
HTTP clients for the three downstream systems.

All three are unreliable by assumption. Every call carries a timeout, and a
timeout, transport error, non-2xx status or unusable body is reported as
``IntegrationError`` so the orchestrator can defer the step to the outbox.
"""

import logging
from abc import ABC
from typing import Any, Dict, List

import requests
from pydantic import ValidationError

from courier.exceptions import IntegrationError
from courier.models import Package, Route, RouteStatus

logger = logging.getLogger(__name__)


class ServiceClient(ABC):
    """Base for a JSON-over-HTTP collaborator"""

    system = "SERVICE"

    def __init__(self, url: str, timeout: float = 5.0):
        self.url = url
        self.timeout = timeout

    def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        logger.debug(f"{self.system}: POST {self.url}")
        try:
            r = requests.post(self.url, json=payload, timeout=self.timeout)
            r.raise_for_status()
            data = r.json()
        except requests.Timeout as e:
            raise IntegrationError(self.system, f"timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise IntegrationError(self.system, str(e)) from e
        except ValueError as e:
            raise IntegrationError(self.system, f"invalid JSON body: {e}") from e

        if not isinstance(data, dict):
            raise IntegrationError(self.system, "response body is not an object")
        return data


class CMSClient(ServiceClient):
    """Customer-management system: registers the order for the client"""

    system = "CMS"

    def register(self, client_id: str, order_id: str) -> str:
        data = self._post({"clientId": client_id, "orderId": order_id})
        cms_order_id = data.get("cmsOrderId")
        if not cms_order_id:
            raise IntegrationError(self.system, "response has no cmsOrderId")
        return str(cms_order_id)


class WMSClient(ServiceClient):
    """Warehouse system: assigns canonical package ids and initial status"""

    system = "WMS"

    def register(self, packages: List[Package]) -> List[Package]:
        data = self._post(
            {"packages": [{"description": p.description, "address": p.address} for p in packages]}
        )
        raw = data.get("packages")
        if not isinstance(raw, list) or not raw:
            raise IntegrationError(self.system, "response has no packages")
        try:
            return [Package.model_validate(p) for p in raw]
        except ValidationError as e:
            raise IntegrationError(self.system, f"bad package in response: {e}") from e


class ROSClient(ServiceClient):
    """Route optimization: computes waypoints for the driver"""

    system = "ROS"

    def plan(self, packages: List[Package], driver_id: str) -> Route:
        data = self._post({"packages": [p.to_dict() for p in packages], "driverId": driver_id})
        route_id = data.get("routeId")
        if not route_id:
            raise IntegrationError(self.system, "response has no routeId")
        try:
            return Route(
                id=str(route_id),
                driver_id=str(data.get("driverId") or driver_id),
                waypoints=data.get("waypoints") or [],
                status=RouteStatus.ASSIGNED,
                package_ids=data.get("packageIds") or [],
            )
        except ValidationError as e:
            raise IntegrationError(self.system, f"bad route in response: {e}") from e
