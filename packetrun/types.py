"""Type definitions for packet-run."""

from typing import TypedDict


class DeviceCreateRequest(TypedDict):
    """Body of the Packet device-create call."""

    hostname: str
    plan: str
    facility: str
    operating_system: str
    billing_cycle: str
    project_id: str
    userdata: str
    tags: list[str]
    always_pxe: bool


class Device(TypedDict, total=False):
    """Device handle returned by the provider after creation."""

    id: str
    hostname: str
    state: str
    facility: str  # facility code, e.g. 'ams1'
