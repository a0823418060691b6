"""Serial-over-SSH (SOS) console bridge.

Connects to the provider's SOS gateway as the device ID, authenticates with
the local ssh-agent, checks the gateway's host key against ~/.ssh/known_hosts
and relays an interactive shell through the local terminal until the remote
side closes it.
"""

import enum
import os
import select
import sys
import termios
import tty
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager
from pathlib import Path

import paramiko
from fabric import Config, Connection
from paramiko.hostkeys import HostKeyEntry, InvalidHostKey

from .utils import error, log, warn

KNOWN_HOSTS = Path.home() / ".ssh" / "known_hosts"
SSH_PORT = 22
TERM = "vt100"
DEFAULT_SIZE = (80, 40)
BUFFER_SIZE = 4096
# agent-only auth against the looked-up host, whatever ~/.ssh/config says
SSH_CONFIG_OVERRIDES = {"load_ssh_configs": False}


class ConsoleState(enum.Enum):
    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    SESSION_OPEN = "session-open"
    INTERACTIVE = "interactive"
    CLOSED = "closed"


def find_host_key(host: str, known_hosts: Path | str = KNOWN_HOSTS) -> paramiko.PKey:
    """Look up the host key for `host` by substring match on the host field.

    Only plain 'hosts keytype key' lines are considered; the first match wins.

    :raises SystemExit: If the file is unreadable, the line unparsable or no key matches
    """
    try:
        lines = Path(known_hosts).read_text().splitlines()
    except OSError as e:
        error(f"Host key not found. Maybe need to add it? Can't open known_hosts file: {e}")

    for line in lines:
        fields = line.split(" ")
        if len(fields) != 3 or host not in fields[0]:
            continue
        try:
            entry = HostKeyEntry.from_line(line)
        except InvalidHostKey as e:
            error(f"Host key not found. Maybe need to add it? Error parsing {fields[2]!r}: {e}")
        if entry is None:
            error(f"Host key not found. Maybe need to add it? Error parsing {fields[2]!r}")
        return entry.key

    error(f"Host key not found. Maybe need to add it? No hostkey for {host}")


def agent_identities() -> list[paramiko.AgentKey]:
    """:raises SystemExit: If no ssh-agent is reachable or it holds no keys"""
    if not os.getenv("SSH_AUTH_SOCK"):
        error("Failed to dial ssh-agent: SSH_AUTH_SOCK is not set")
    try:
        agent = paramiko.Agent()
    except paramiko.SSHException as e:
        error(f"Failed to dial ssh-agent: {e}")
    try:
        keys = list(agent.get_keys())
    finally:
        agent.close()
    if not keys:
        error("Failed to dial ssh-agent: no identities available")
    return keys


def terminal_size(fd: int) -> tuple[int, int]:
    """:return: (width, height) of the terminal on fd, or DEFAULT_SIZE"""
    try:
        size = os.get_terminal_size(fd)
    except OSError as e:
        warn(f"Error getting terminal size. Ignored. {e}")
        return DEFAULT_SIZE
    if not size.columns or not size.lines:
        return DEFAULT_SIZE
    return size.columns, size.lines


@contextmanager
def raw_terminal(fd: int) -> Iterator[None]:
    """Put the terminal on fd into raw mode, always restoring the old mode."""
    if not os.isatty(fd):
        yield
        return
    old_state = termios.tcgetattr(fd)
    try:
        tty.setraw(fd)
        yield
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, old_state)


class SOSConsole:
    """One interactive SSH session to a SOS gateway."""

    def __init__(
        self,
        user: str,
        host: str,
        *,
        known_hosts: Path | str = KNOWN_HOSTS,
        connection_factory=Connection,
        stdin=None,
        stdout=None,
        stderr=None,
    ):
        self.user = user
        self.host = host
        self.known_hosts = known_hosts
        self.connection_factory = connection_factory
        self.stdin = stdin if stdin is not None else sys.stdin
        self.stdout = stdout if stdout is not None else sys.stdout
        self.stderr = stderr if stderr is not None else sys.stderr
        self.state = ConsoleState.CONNECTING
        self.connection = None
        self.channel = None
        # released in reverse: terminal mode, channel, connection
        self._resources = ExitStack()

    def _expect(self, state: ConsoleState) -> None:
        if self.state is not state:
            raise RuntimeError(f"console is '{self.state.value}', expected '{state.value}'")

    def connect(self) -> None:
        """Dial the gateway, verify its host key and authenticate via ssh-agent."""
        self._expect(ConsoleState.CONNECTING)
        host_key = find_host_key(self.host, self.known_hosts)
        agent_identities()

        log(f"console: ssh {self.user}@{self.host}")
        conn = self.connection_factory(
            self.host,
            user=self.user,
            port=SSH_PORT,
            connect_kwargs={"allow_agent": True, "look_for_keys": False},
            config=Config(overrides=SSH_CONFIG_OVERRIDES),
        )
        conn.client.set_missing_host_key_policy(paramiko.RejectPolicy())
        conn.client.get_host_keys().add(self.host, host_key.get_name(), host_key)
        self.connection = conn
        self._resources.callback(conn.close)
        try:
            conn.open()
        except (paramiko.SSHException, OSError) as e:
            error(f"Failed to dial: {e}")
        self.state = ConsoleState.AUTHENTICATED

    def open_session(self) -> None:
        self._expect(ConsoleState.AUTHENTICATED)
        try:
            self.channel = self.connection.create_session()
        except (paramiko.SSHException, OSError) as e:
            error(f"Failed to create session: {e}")
        self._resources.callback(self.channel.close)
        self.state = ConsoleState.SESSION_OPEN

    def start_shell(self) -> None:
        """Request a PTY sized like the local terminal, go raw, start the shell."""
        self._expect(ConsoleState.SESSION_OPEN)
        width, height = terminal_size(self.stdin.fileno())
        try:
            self.channel.get_pty(term=TERM, width=width, height=height)
        except (paramiko.SSHException, OSError) as e:
            error(f"Request for PTY failed: {e}")

        self._resources.enter_context(raw_terminal(self.stdin.fileno()))
        try:
            self.channel.invoke_shell()
        except (paramiko.SSHException, OSError) as e:
            error(f"Failed to start shell: {e}")
        self.state = ConsoleState.INTERACTIVE

    def wait(self) -> None:
        """Relay the terminal until the remote shell closes the channel."""
        self._expect(ConsoleState.INTERACTIVE)
        channel = self.channel
        in_fd = self.stdin.fileno()
        out_fd = self.stdout.fileno()
        err_fd = self.stderr.fileno()
        sources = [channel, in_fd]

        while True:
            readable, _, _ = select.select(sources, [], [])
            if channel in readable:
                while channel.recv_stderr_ready():
                    os.write(err_fd, channel.recv_stderr(BUFFER_SIZE))
                while channel.recv_ready():
                    os.write(out_fd, channel.recv(BUFFER_SIZE))
                if channel.eof_received or channel.closed:
                    break
            if in_fd in readable:
                data = os.read(in_fd, BUFFER_SIZE)
                if data:
                    channel.sendall(data)
                else:
                    # local EOF, the remote side decides when to close
                    channel.shutdown_write()
                    sources.remove(in_fd)
        self.close()

    def close(self) -> None:
        """Restore the terminal and release the channel and connection."""
        if self.state is ConsoleState.CLOSED:
            return
        self.state = ConsoleState.CLOSED
        self._resources.close()

    def __enter__(self) -> "SOSConsole":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def attach_console(user: str, host: str, **kwargs) -> None:
    """Run a full SOS console session; the terminal is restored on every path."""
    with SOSConsole(user, host, **kwargs) as console:
        console.connect()
        console.open_session()
        console.start_shell()
        console.wait()
