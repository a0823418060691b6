"""Packet API client against a mocked HTTP transport."""

import json

import httpx
import pytest

from packetrun.providers import PacketProvider, build_create_request, sos_host

DEVICE_RESPONSE = {
    "id": "e1b2c3d4",
    "hostname": "tester-linuxkit",
    "state": "queued",
    "facility": {"code": "ewr1", "name": "Parsippany, NJ"},
}


def make_provider(handler) -> tuple[PacketProvider, list[httpx.Request]]:
    requests = []

    def record(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    return PacketProvider("secret-key", transport=httpx.MockTransport(record)), requests


def test_build_create_request(settings):
    body = build_create_request(settings, "#!ipxe\n\ndhcp\nboot")
    assert body == {
        "hostname": "tester-linuxkit",
        "plan": "baremetal_0",
        "facility": "ams1",
        "operating_system": "custom_ipxe",
        "billing_cycle": "hourly",
        "project_id": "proj-123",
        "userdata": "#!ipxe\n\ndhcp\nboot",
        "tags": [],
        "always_pxe": True,
    }


def test_create_device(settings):
    p, requests = make_provider(lambda r: httpx.Response(201, json=DEVICE_RESPONSE))
    device = p.create_device(build_create_request(settings, "#!ipxe"))

    assert device == {
        "id": "e1b2c3d4",
        "hostname": "tester-linuxkit",
        "state": "queued",
        "facility": "ewr1",
    }
    (request,) = requests
    assert request.method == "POST"
    assert request.url == "https://api.packet.net/projects/proj-123/devices"
    assert request.headers["X-Auth-Token"] == "secret-key"
    sent = json.loads(request.content)
    assert sent["operating_system"] == "custom_ipxe"
    assert sent["userdata"] == "#!ipxe"
    assert sent["always_pxe"] is True


def test_create_device_api_error_exits(settings, caplog):
    p, _ = make_provider(
        lambda r: httpx.Response(422, json={"errors": ["plan is not available in facility"]})
    )
    with pytest.raises(SystemExit):
        p.create_device(build_create_request(settings, "#!ipxe"))
    assert "plan is not available in facility" in caplog.text


def test_create_device_transport_error_exits(settings):
    def handler(request):
        raise httpx.ConnectError("no route to host", request=request)

    p, _ = make_provider(handler)
    with pytest.raises(SystemExit):
        p.create_device(build_create_request(settings, "#!ipxe"))


def test_create_is_not_retried(settings):
    p, requests = make_provider(lambda r: httpx.Response(503, text="unavailable"))
    with pytest.raises(SystemExit):
        p.create_device(build_create_request(settings, "#!ipxe"))
    assert len(requests) == 1


def test_delete_device():
    p, requests = make_provider(lambda r: httpx.Response(204))
    p.delete_device("e1b2c3d4")
    (request,) = requests
    assert request.method == "DELETE"
    assert request.url == "https://api.packet.net/devices/e1b2c3d4"


def test_delete_device_failure_exits(caplog):
    p, _ = make_provider(lambda r: httpx.Response(404, json={"errors": ["Not found"]}))
    with pytest.raises(SystemExit):
        p.delete_device("e1b2c3d4")
    assert "Unable to delete device" in caplog.text


def test_sos_host():
    assert sos_host({"id": "x", "facility": "ams1"}) == "sos.ams1.packet.net"
