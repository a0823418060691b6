"""packet-run - Boot Packet bare-metal devices over iPXE."""

from .boot import asset_urls, build_boot_script, read_cmdline, validate_assets
from .cli import app
from .config import Settings, default_hostname, resolve_settings, resolve_value
from .console import SOSConsole, attach_console, find_host_key
from .fileserver import FileServer, ServeFiles, serve_files_for
from .providers import PacketProvider, Provider, build_create_request, sos_host
from .run import run_packet
from .types import Device, DeviceCreateRequest
from .utils import error, log, setup_logging, warn

__all__ = [
    "app",
    "Settings",
    "default_hostname",
    "resolve_settings",
    "resolve_value",
    "asset_urls",
    "build_boot_script",
    "read_cmdline",
    "validate_assets",
    "FileServer",
    "ServeFiles",
    "serve_files_for",
    "PacketProvider",
    "Provider",
    "build_create_request",
    "sos_host",
    "SOSConsole",
    "attach_console",
    "find_host_key",
    "run_packet",
    "Device",
    "DeviceCreateRequest",
    "log",
    "warn",
    "error",
    "setup_logging",
]
