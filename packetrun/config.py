"""Configuration resolution: command line flags, environment variables, defaults."""

import getpass
import os
from dataclasses import dataclass

from dotenv import load_dotenv

from .utils import error

BASE_URL_VAR = "PACKET_BASE_URL"
ZONE_VAR = "PACKET_ZONE"
MACHINE_VAR = "PACKET_MACHINE"
API_KEY_VAR = "PACKET_API_KEY"
PROJECT_ID_VAR = "PACKET_PROJECT_ID"
HOSTNAME_VAR = "PACKET_HOSTNAME"
NAME_VAR = "PACKET_NAME"

DEFAULT_ZONE = "ams1"
DEFAULT_MACHINE = "baremetal_0"
DEFAULT_PREFIX = "packet"
HOSTNAME_SUFFIX = "linuxkit"


@dataclass(frozen=True)
class Settings:
    """Effective settings for one run. Created once, read-only afterwards."""

    base_url: str
    zone: str
    machine: str
    api_key: str
    project_id: str
    hostname: str
    prefix: str
    img_name: str
    always_pxe: bool = True
    keep: bool = False
    console: bool = True
    serve: str = ""


def default_hostname() -> str:
    """:return: '<username>-linuxkit', or 'linuxkit' if the user is unknown"""
    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        return HOSTNAME_SUFFIX
    return f"{user}-{HOSTNAME_SUFFIX}" if user else HOSTNAME_SUFFIX


def resolve_value(env_key: str, flag_value: str | None, default: str = "") -> str:
    """Pick the effective value for one setting.

    An explicit flag wins unless it merely repeats the default; then the
    environment variable, then the default.

    :param env_key: Environment variable consulted as fallback
    :param flag_value: Value given on the command line (None if not given)
    :param default: Hard-coded default
    :return: Effective value (may be empty if nothing is set)
    """
    if flag_value and flag_value != default:
        return flag_value
    env_value = os.getenv(env_key)
    if env_value:
        return env_value
    return default


def resolve_settings(
    prefix: str = DEFAULT_PREFIX,
    *,
    base_url: str | None = None,
    zone: str | None = None,
    machine: str | None = None,
    api_key: str | None = None,
    project_id: str | None = None,
    hostname: str | None = None,
    img_name: str | None = None,
    always_pxe: bool = True,
    serve: str = "",
    console: bool = True,
    keep: bool = False,
    hostname_default: str | None = None,
) -> Settings:
    """Merge flags, environment (including .env) and defaults into Settings.

    :param hostname_default: Default hostname, see default_hostname()
    :raises SystemExit: If a mandatory setting is missing or keep/console conflict
    """
    load_dotenv()
    prefix = prefix or DEFAULT_PREFIX
    if hostname_default is None:
        hostname_default = default_hostname()

    url = resolve_value(BASE_URL_VAR, base_url).rstrip("/")
    if not url:
        error(
            "Need to specify a value for --base-url where the images are hosted. "
            f"This URL should contain <url>/{prefix}-kernel and <url>/{prefix}-initrd.img "
            f"(or set {BASE_URL_VAR})"
        )
    key = resolve_value(API_KEY_VAR, api_key)
    if not key:
        error(f"Must specify a Packet.net API key with --api-key (or {API_KEY_VAR})")
    project = resolve_value(PROJECT_ID_VAR, project_id)
    if not project:
        error(
            f"Must specify a Packet.net Project ID with --project-id (or {PROJECT_ID_VAR})"
        )

    if not keep and not console:
        error(f"Combination of keep={keep} and console={console} makes little sense")

    return Settings(
        base_url=url,
        zone=resolve_value(ZONE_VAR, zone, DEFAULT_ZONE),
        machine=resolve_value(MACHINE_VAR, machine, DEFAULT_MACHINE),
        api_key=key,
        project_id=project,
        hostname=resolve_value(HOSTNAME_VAR, hostname, hostname_default),
        prefix=prefix,
        img_name=resolve_value(NAME_VAR, img_name, prefix),
        always_pxe=always_pxe,
        keep=keep,
        console=console,
        serve=serve,
    )
