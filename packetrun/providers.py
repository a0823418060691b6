"""Cloud provider abstraction and the Packet (Equinix Metal) API client."""

import json
from typing import Protocol

import httpx

from .config import Settings
from .types import Device, DeviceCreateRequest
from .utils import debug, error, log

PACKET_API_URL = "https://api.packet.net"
OS_TYPE = "custom_ipxe"
BILLING_CYCLE = "hourly"
API_TIMEOUT = 60


class Provider(Protocol):
    def create_device(self, request: DeviceCreateRequest) -> Device: ...

    def delete_device(self, device_id: str) -> None: ...


def build_create_request(settings: Settings, userdata: str) -> DeviceCreateRequest:
    """Device-create body for a network-booted, hourly billed device."""
    return {
        "hostname": settings.hostname,
        "plan": settings.machine,
        "facility": settings.zone,
        "operating_system": OS_TYPE,
        "billing_cycle": BILLING_CYCLE,
        "project_id": settings.project_id,
        "userdata": userdata,
        "tags": [],
        "always_pxe": settings.always_pxe,
    }


def sos_host(device: Device) -> str:
    """:return: Serial-over-SSH gateway host for the device's facility"""
    return f"sos.{device['facility']}.packet.net"


def _api_errors(response: httpx.Response) -> str:
    """Extract the 'errors' list from a Packet API error response."""
    try:
        body = response.json()
    except ValueError:
        return response.text.strip() or response.reason_phrase
    if isinstance(body, dict) and body.get("errors"):
        return "; ".join(str(e) for e in body["errors"])
    return json.dumps(body)


class PacketProvider:
    """Packet REST API client for device create/delete."""

    def __init__(
        self,
        api_key: str,
        api_url: str = PACKET_API_URL,
        transport: httpx.BaseTransport | None = None,
    ):
        self.client = httpx.Client(
            base_url=api_url,
            headers={
                "X-Auth-Token": api_key,
                "Accept": "application/json",
                "User-Agent": "packet-run",
            },
            timeout=API_TIMEOUT,
            transport=transport,
        )

    def _request(self, method: str, path: str, action: str, **kwargs) -> httpx.Response:
        try:
            response = self.client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            error(f"{action}: {e}")
        if response.is_error:
            error(
                f"{action}: {response.status_code} {response.reason_phrase}: "
                f"{_api_errors(response)}"
            )
        return response

    def create_device(self, request: DeviceCreateRequest) -> Device:
        """Create a device in the request's project.

        :param request: Device-create body, see build_create_request()
        :return: Device with 'id' and facility code
        :raises SystemExit: On transport error or API error
        """
        log(
            f"Creating device '{request['hostname']}' ('{request['plan']}') "
            f"in '{request['facility']}'..."
        )
        response = self._request(
            "POST",
            f"/projects/{request['project_id']}/devices",
            "Device create failed",
            json=request,
        )
        data = response.json()
        debug(json.dumps(data, indent=4))

        facility = data.get("facility") or {}
        device: Device = {
            "id": data["id"],
            "hostname": data.get("hostname", request["hostname"]),
            "state": data.get("state", ""),
            "facility": facility.get("code", request["facility"])
            if isinstance(facility, dict)
            else str(facility),
        }
        log(f"Created device '{device['id']}' in '{device['facility']}'")
        return device

    def delete_device(self, device_id: str) -> None:
        """Delete a device by ID.

        :raises SystemExit: If deletion fails
        """
        log(f"Deleting device '{device_id}'...")
        self._request("DELETE", f"/devices/{device_id}", "Unable to delete device")
        log("Device deleted")

    def close(self) -> None:
        self.client.close()
