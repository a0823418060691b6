"""iPXE boot script and asset availability check."""

from pathlib import Path

import httpx

from .utils import error, log

KERNEL_PARAMS = "ip=dhcp nomodeset ro serial console=ttyS1,115200"
HEAD_TIMEOUT = 30


def kernel_name(name: str) -> str:
    return f"{name}-kernel"


def initrd_name(name: str) -> str:
    return f"{name}-initrd.img"


def read_cmdline(prefix: str, directory: Path | None = None) -> str:
    """Read the kernel command line from '<prefix>-cmdline'.

    :param prefix: Artifact prefix
    :param directory: Directory holding the file (default: working directory)
    :return: File content with surrounding whitespace removed
    :raises SystemExit: If the file cannot be read
    """
    path = (directory or Path.cwd()) / f"{prefix}-cmdline"
    try:
        return path.read_text().strip()
    except OSError as e:
        error(f"Cannot open cmdline file: {e}")


def build_boot_script(base_url: str, cmdline: str, name: str) -> str:
    """Render the iPXE script handed to the device as user data.

    The file's command line is appended to the fixed parameters iPXE booting
    needs, so images don't have to repeat them.
    """
    lines = [
        "#!ipxe",
        "",
        "dhcp",
        f"set base-url {base_url}",
        f"set kernel-params {KERNEL_PARAMS} {cmdline}".rstrip(),
        f"kernel ${{base-url}}/{kernel_name(name)} ${{kernel-params}}",
        f"initrd ${{base-url}}/{initrd_name(name)}",
        "boot",
    ]
    return "\n".join(lines)


def asset_urls(base_url: str, name: str) -> tuple[str, str]:
    """:return: (kernel_url, initrd_url)"""
    base = base_url.rstrip("/")
    return f"{base}/{kernel_name(name)}", f"{base}/{initrd_name(name)}"


def check_http_status(url: str, client: httpx.Client) -> tuple[int | None, str]:
    """:return: (status_code, status_line) or (None, error_message)"""
    try:
        response = client.head(url, follow_redirects=True, timeout=HEAD_TIMEOUT)
    except httpx.HTTPError as e:
        return None, f"{type(e).__name__}: {e}"
    return (
        response.status_code,
        f"{response.http_version} {response.status_code} {response.reason_phrase}",
    )


def validate_http_url(url: str, client: httpx.Client) -> None:
    """Check that a URL answers a HEAD request with a 2xx or 3xx status.

    :raises SystemExit: On transport error or status >= 400
    """
    log(f"Validating URL: '{url}'")
    status, detail = check_http_status(url, client)
    if status is None:
        error(f"Unable to reach '{url}': {detail}")
    if status >= 400:
        error(f"Got a non 200- or 300- HTTP response code for '{url}': {detail}")
    log(f"OK: {status} response code")


def validate_assets(base_url: str, name: str, client: httpx.Client | None = None) -> None:
    """HEAD-check the kernel, then the initrd."""
    own_client = client is None
    if own_client:
        client = httpx.Client()
    try:
        for url in asset_urls(base_url, name):
            validate_http_url(url, client)
    finally:
        if own_client:
            client.close()
