"""Shared fixtures: hermetic environment, artifact directory, fake backends.

The live fixture at the bottom creates a real Packet device; it is only used
by tests marked 'integration'.
"""

import os

import httpx
import pytest

from packetrun import config
from packetrun.config import Settings
from packetrun.providers import PacketProvider, build_create_request

KERNEL_BYTES = b"\x7fELF-fake-kernel"
INITRD_BYTES = b"070701-fake-initrd"
CMDLINE = "console=ttyS1 root=/dev/ram0"


def pytest_addoption(parser):
    parser.addoption(
        "--zone",
        default="ams1",
        help="Packet facility for integration tests (default: ams1)",
    )


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """No PACKET_* variables and no .env file leak into tests."""
    for key in list(os.environ):
        if key.startswith("PACKET_"):
            monkeypatch.delenv(key)
    monkeypatch.setattr(config, "load_dotenv", lambda *a, **kw: False)


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    """Working directory holding demo-cmdline, demo-kernel and demo-initrd.img."""
    (tmp_path / "demo-cmdline").write_text(CMDLINE + "\n")
    (tmp_path / "demo-kernel").write_bytes(KERNEL_BYTES)
    (tmp_path / "demo-initrd.img").write_bytes(INITRD_BYTES)
    monkeypatch.chdir(tmp_path)
    return tmp_path.resolve()


@pytest.fixture
def settings():
    return Settings(
        base_url="https://images.example.com/boot",
        zone="ams1",
        machine="baremetal_0",
        api_key="secret-key",
        project_id="proj-123",
        hostname="tester-linuxkit",
        prefix="demo",
        img_name="demo",
        always_pxe=True,
        keep=False,
        console=True,
        serve="",
    )


class FakeProvider:
    """Records device create/delete calls."""

    def __init__(self, device_id: str = "dev-1", facility: str = "ams1"):
        self.device_id = device_id
        self.facility = facility
        self.created = []
        self.deleted = []

    def create_device(self, request):
        self.created.append(request)
        return {
            "id": self.device_id,
            "hostname": request["hostname"],
            "state": "provisioning",
            "facility": self.facility,
        }

    def delete_device(self, device_id):
        self.deleted.append(device_id)


class FakeConsole:
    """Records console attach calls, optionally failing."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []

    def __call__(self, user, host):
        self.calls.append((user, host))
        if self.fail:
            raise SystemExit(1)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def fake_console():
    return FakeConsole()


def make_head_client(status_for=lambda url: 200) -> tuple[httpx.Client, list[str]]:
    """httpx client answering every request with status_for(url); returns seen URLs."""
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(status_for(str(request.url)))

    return httpx.Client(transport=httpx.MockTransport(handler)), seen


@pytest.fixture
def head_client():
    client, seen = make_head_client()
    yield client
    client.close()


@pytest.fixture(scope="session")
def zone(request):
    return request.config.getoption("--zone")


@pytest.fixture(scope="session")
def live_device(zone):
    """Create a real device, yield it, delete it on teardown."""
    api_key = os.getenv("PACKET_API_KEY")
    project_id = os.getenv("PACKET_PROJECT_ID")
    if not api_key or not project_id:
        pytest.skip("PACKET_API_KEY and PACKET_PROJECT_ID are required")

    live_settings = Settings(
        base_url=os.getenv("PACKET_BASE_URL", "https://images.example.com"),
        zone=zone,
        machine=os.getenv("PACKET_MACHINE", config.DEFAULT_MACHINE),
        api_key=api_key,
        project_id=project_id,
        hostname=f"{config.default_hostname()}-test",
        prefix="packet",
        img_name="packet",
    )
    p = PacketProvider(api_key)
    device = p.create_device(build_create_request(live_settings, "#!ipxe\n\ndhcp\nboot"))
    try:
        yield device
    finally:
        try:
            p.delete_device(device["id"])
        except SystemExit:
            pass
        p.close()
