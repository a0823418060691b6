#!/usr/bin/env python3
"""Boot a Packet bare-metal device over iPXE.

Prerequisites: a Packet API key and project, '<name>-cmdline' in the current
directory, kernel and initrd hosted at the base URL (or served with --serve),
ssh-agent running and the SOS gateway host key in ~/.ssh/known_hosts.

Usage: uv run packet-run [options] [name]

Examples:
    uv run packet-run --base-url https://example.com/images linuxkit
    uv run packet-run --serve :8080 --base-url http://203.0.113.7:8080 --keep --no-console demo
"""

import logging

import cyclopts

from .config import DEFAULT_PREFIX, default_hostname, resolve_settings
from .providers import PacketProvider
from .run import run_packet
from .utils import setup_logging

app = cyclopts.App(
    name="packet-run", help="Boot a Packet bare-metal device over iPXE", sort_key=None
)


@app.default
def run(
    name: str = DEFAULT_PREFIX,
    /,
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
    verbose: bool = False,
):
    """Provision a device, boot it from <base-url>/<name>-kernel and -initrd.img.

    :param name: Prefix of the local '<name>-cmdline' file and default image name
    :param base_url: Base URL that the kernel and initrd are served from (or PACKET_BASE_URL)
    :param zone: Packet zone (or PACKET_ZONE, default: ams1)
    :param machine: Packet machine type (or PACKET_MACHINE, default: baremetal_0)
    :param api_key: Packet API key (or PACKET_API_KEY)
    :param project_id: Packet project ID (or PACKET_PROJECT_ID)
    :param hostname: Hostname of new instance (or PACKET_HOSTNAME, default: <user>-linuxkit)
    :param img_name: Overrides the prefix used to identify the files (or PACKET_NAME, default: name)
    :param always_pxe: Reboot from PXE every time
    :param serve: Serve local files via the http address specified, e.g. ':8080'
    :param console: Provide interactive access on the console
    :param keep: Keep the machine after exiting/poweroff
    :param verbose: Log debug output (boot script, API responses)
    """
    setup_logging(logging.DEBUG if verbose else logging.INFO)

    settings = resolve_settings(
        name,
        base_url=base_url,
        zone=zone,
        machine=machine,
        api_key=api_key,
        project_id=project_id,
        hostname=hostname,
        img_name=img_name,
        always_pxe=always_pxe,
        serve=serve,
        console=console,
        keep=keep,
        hostname_default=default_hostname(),
    )

    provider = PacketProvider(settings.api_key)
    try:
        run_packet(settings, provider=provider)
    finally:
        provider.close()


if __name__ == "__main__":
    app()
