"""Restricted HTTP file server for the kernel and initrd.

Only two pre-registered files can ever be returned. Requested paths are
cleaned as absolute POSIX paths rooted at '/', re-anchored under the serving
directory and compared byte for byte with the registered paths, so '../'
sequences and absolute-path tricks cannot reach anything else.
"""

import os
import posixpath
import shutil
import threading
import time
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import BinaryIO
from urllib.parse import unquote, urlsplit

from .boot import initrd_name, kernel_name
from .utils import debug, error, log, warn

SHUTDOWN_GRACE = 5.0


def clean_path(root: str, requested: str) -> str:
    """Normalize a requested path and anchor it under root."""
    cleaned = posixpath.normpath("/" + requested)
    # normpath keeps a leading '//', a plain path clean does not
    cleaned = "/" + cleaned.lstrip("/")
    return os.path.normpath(os.path.join(root, *cleaned.split("/")[1:]))


class ServeFiles:
    """Allow-list of the files the HTTP server may return."""

    def __init__(self, names: list[str], root: str | None = None):
        self.root = os.path.abspath(root or os.getcwd())
        self.files = tuple(clean_path(self.root, name) for name in names)

    def resolve(self, requested: str) -> str | None:
        """:return: Registered absolute path matching the request, or None"""
        path = clean_path(self.root, requested)
        for allowed in self.files:
            if path == allowed:
                return allowed
        return None

    def open(self, requested: str) -> BinaryIO:
        """Open an allow-listed file.

        :raises FileNotFoundError: If the request does not match a registered file
        """
        path = self.resolve(requested)
        if path is None:
            raise FileNotFoundError(f"File {requested} not found")
        f = open(path, "rb")
        log(f"Serving: '{path}'")
        return f


def serve_files_for(name: str, root: str | None = None) -> ServeFiles:
    return ServeFiles([kernel_name(name), initrd_name(name)], root=root)


class ServeFilesHandler(BaseHTTPRequestHandler):
    """Answers GET/HEAD for allow-listed paths, 404 for everything else."""

    files: ServeFiles

    def do_GET(self):
        self._send(body=True)

    def do_HEAD(self):
        self._send(body=False)

    def _send(self, body: bool) -> None:
        requested = unquote(urlsplit(self.path).path)
        try:
            f = self.files.open(requested)
        except OSError:
            self.send_error(HTTPStatus.NOT_FOUND, "File not found")
            return
        with f:
            size = os.fstat(f.fileno()).st_size
            self.send_response(HTTPStatus.OK)
            self.send_header("Content-Type", "application/octet-stream")
            self.send_header("Content-Length", str(size))
            self.end_headers()
            if body:
                shutil.copyfileobj(f, self.wfile)

    def log_message(self, format, *args):
        debug(f"HTTP {self.address_string()}: {format % args}")


def parse_address(address: str) -> tuple[str, int]:
    """Parse a listen address like ':8080' or '127.0.0.1:8080'.

    :raises SystemExit: If the port is missing or not a number
    """
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        error(f"Invalid serve address '{address}', expected [host]:port")
    return host.strip("[]"), int(port)


class FileServer:
    """Background HTTP listener serving a ServeFiles allow-list."""

    def __init__(self, address: str | tuple[str, int], files: ServeFiles):
        self.address = parse_address(address) if isinstance(address, str) else address
        self.files = files
        self.httpd: ThreadingHTTPServer | None = None
        self.thread: threading.Thread | None = None

    @property
    def port(self) -> int:
        return self.httpd.server_address[1]

    def start(self) -> "FileServer":
        handler = type("BoundServeFilesHandler", (ServeFilesHandler,), {"files": self.files})
        try:
            self.httpd = ThreadingHTTPServer(self.address, handler)
        except OSError as e:
            error(f"Unable to listen on '{self.address[0]}:{self.address[1]}': {e}")
        self.httpd.daemon_threads = True
        self.thread = threading.Thread(
            target=self.httpd.serve_forever, name="packetrun-http", daemon=True
        )
        self.thread.start()
        host, port = self.httpd.server_address[:2]
        log(f"Listening on http://{self.address[0] or host}:{port}")
        return self

    def shutdown(self, grace: float = SHUTDOWN_GRACE) -> None:
        """Stop the listener, waiting at most `grace` seconds for it to exit."""
        if self.httpd is None:
            return
        log("Shutting down http server...")
        deadline = time.monotonic() + grace
        stopper = threading.Thread(target=self.httpd.shutdown, daemon=True)
        stopper.start()
        stopper.join(grace)
        self.thread.join(max(0.0, deadline - time.monotonic()))
        if self.thread.is_alive():
            # the daemon thread still owns the socket, leave it to process exit
            warn("http server did not stop in time, abandoning it")
        else:
            self.httpd.server_close()
            log("http server exited")
        self.httpd = None

    def __enter__(self) -> "FileServer":
        return self.start()

    def __exit__(self, *exc) -> None:
        self.shutdown()
