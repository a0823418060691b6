"""The packet run: build the boot script, provision, attach, tear down."""

import time
from collections.abc import Callable
from contextlib import ExitStack

import httpx
from rich import print

from .boot import build_boot_script, read_cmdline, validate_assets
from .config import Settings
from .console import attach_console
from .fileserver import FileServer, serve_files_for
from .providers import Provider, build_create_request, sos_host
from .types import Device
from .utils import debug, log


def wait_for_interrupt() -> None:
    """Block until Ctrl-C."""
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        log("Interrupted")


def release_device(provider: Provider, device: Device) -> None:
    provider.delete_device(device["id"])


def run_packet(
    settings: Settings,
    *,
    provider: Provider,
    console: Callable[[str, str], None] = attach_console,
    http_client: httpx.Client | None = None,
    wait: Callable[[], None] = wait_for_interrupt,
) -> Device:
    """Provision a network-booted device and keep it for the console session.

    Teardown runs on every exit path once the resource exists: the console
    restores the terminal itself, then the HTTP listener is stopped, then the
    device is deleted unless settings.keep is set.

    :param settings: Resolved settings
    :param provider: Device create/delete backend
    :param console: Called as console(user, host) to attach the serial console
    :param http_client: Client for the asset HEAD checks
    :param wait: Blocks while serving files without a console
    :return: The created device
    :raises SystemExit: On any failure
    """
    cmdline = read_cmdline(settings.prefix)
    userdata = build_boot_script(settings.base_url, cmdline, settings.img_name)
    debug(f"Using userData of:\n{userdata}")

    with ExitStack() as device_scope:
        with ExitStack() as server_scope:
            if settings.serve:
                files = serve_files_for(settings.img_name)
                server_scope.enter_context(FileServer(settings.serve, files))

            validate_assets(settings.base_url, settings.img_name, client=http_client)

            device = provider.create_device(build_create_request(settings, userdata))
            if not settings.keep:
                device_scope.callback(release_device, provider, device)

            host = sos_host(device)
            if settings.console:
                console(device["id"], host)
            else:
                log("Machine booting")
                log(f"Access the console with: ssh {device['id']}@{host}")
                if settings.serve:
                    # the device still needs the files, keep serving
                    log("Hit ctrl-c to stop http server")
                    wait()

    if settings.keep:
        print(f"Device '{device['id']}' kept. Console: ssh {device['id']}@{host}")
    return device
