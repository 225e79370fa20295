from unittest import mock

import pytest
import requests

from courier.clients import CMSClient, ROSClient, WMSClient
from courier.exceptions import IntegrationError
from courier.models import Package, RouteStatus


def response(json_body=None, status=200, json_error=None):
    r = mock.Mock()
    r.status_code = status
    if status >= 400:
        r.raise_for_status.side_effect = requests.HTTPError(f"{status} Server Error")
    if json_error:
        r.json.side_effect = json_error
    else:
        r.json.return_value = json_body
    return r


PACKAGES = [Package(id="PKG-1", description="Box", address="1 Main St")]


@mock.patch("courier.clients.requests.post")
def test_cms_register(post):
    post.return_value = response({"cmsOrderId": "CMS-42"})

    assert CMSClient("http://cms", timeout=2).register("C1", "ORD-1") == "CMS-42"
    post.assert_called_once_with("http://cms", json={"clientId": "C1", "orderId": "ORD-1"}, timeout=2)


@mock.patch("courier.clients.requests.post")
def test_timeout_is_integration_error(post):
    post.side_effect = requests.Timeout()
    with pytest.raises(IntegrationError) as exc:
        CMSClient("http://cms", timeout=0.5).register("C1", "ORD-1")
    assert exc.value.system == "CMS"
    assert "timed out" in str(exc.value)


@mock.patch("courier.clients.requests.post")
def test_non_2xx_is_integration_error(post):
    post.return_value = response(status=503)
    with pytest.raises(IntegrationError):
        WMSClient("http://wms").register(PACKAGES)


@mock.patch("courier.clients.requests.post")
def test_invalid_json_is_integration_error(post):
    post.return_value = response(json_error=ValueError("Expecting value"))
    with pytest.raises(IntegrationError):
        ROSClient("http://ros").plan(PACKAGES, "D1")


@mock.patch("courier.clients.requests.post")
def test_missing_fields_are_integration_errors(post):
    post.return_value = response({"message": "ok"})
    with pytest.raises(IntegrationError):
        CMSClient("http://cms").register("C1", "ORD-1")
    with pytest.raises(IntegrationError):
        WMSClient("http://wms").register(PACKAGES)
    with pytest.raises(IntegrationError):
        ROSClient("http://ros").plan(PACKAGES, "D1")

    post.return_value = response(["not", "an", "object"])
    with pytest.raises(IntegrationError):
        CMSClient("http://cms").register("C1", "ORD-1")


@mock.patch("courier.clients.requests.post")
def test_wms_register_returns_canonical_packages(post):
    post.return_value = response(
        {"packages": [{"id": "WMS-9", "description": "Box", "address": "1 Main St", "status": "WAITING"}]}
    )

    [pkg] = WMSClient("http://wms").register(PACKAGES)

    assert pkg.id == "WMS-9"
    sent = post.call_args.kwargs["json"]
    assert sent == {"packages": [{"description": "Box", "address": "1 Main St"}]}


@mock.patch("courier.clients.requests.post")
def test_ros_plan(post):
    post.return_value = response(
        {"routeId": "RT-7", "waypoints": ["1 Main St"], "status": "ASSIGNED", "packageIds": ["PKG-1"]}
    )

    route = ROSClient("http://ros").plan(PACKAGES, "D1")

    assert route.id == "RT-7"
    assert route.driver_id == "D1"
    assert route.status == RouteStatus.ASSIGNED
    assert route.package_ids == ["PKG-1"]
