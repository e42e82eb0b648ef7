"""
pytest configuration and fixtures.
"""

import os
import socket
import stat
import threading
import time
from typing import Generator
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gemserve import GeminiServer, ServerConfig, FilesystemConfig
from gemserve.gemini import GeminiResponse, success
from gemserve.handlers import FilesystemHandler


PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 24

CGI_SCRIPT = """#!/bin/sh
printf '20 text/gemini\\r\\n'
printf '# Hello from CGI\\r\\n'
printf 'query=%s\\r\\n' "$QUERY_STRING"
"""


def make_executable(path: Path) -> None:
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


@pytest.fixture
def capsule(tmp_path: Path) -> Path:
    """
    A small capsule:

        index.gemini
        docs/a.gemini
        docs/b.txt
        docs/img/cat.png
        docs/.git/config
        empty/
        cgi/hello          (executable)
    """
    root = tmp_path / "capsule"
    root.mkdir()

    (root / "index.gemini").write_text("# Welcome\r\n")

    docs = root / "docs"
    docs.mkdir()
    (docs / "a.gemini").write_text("# A\r\n")
    (docs / "b.txt").write_text("plain b\n")
    (docs / "img").mkdir()
    (docs / "img" / "cat.png").write_bytes(PNG_BYTES)
    (docs / ".git").mkdir()
    (docs / ".git" / "config").write_text("[core]\n")

    (root / "empty").mkdir()

    (root / "cgi").mkdir()
    script = root / "cgi" / "hello"
    script.write_text(CGI_SCRIPT)
    make_executable(script)

    return root


class FakeCGI:
    """Records CGI invocations instead of running anything."""

    def __init__(self, response: GeminiResponse = None):
        self.response = response or GeminiResponse(20, "text/x-cgi", b"cgi output")
        self.calls = []

    def __call__(self, identity, file_path, location):
        self.calls.append((identity, file_path, location))
        return self.response


@pytest.fixture
def fake_cgi() -> FakeCGI:
    return FakeCGI()


@pytest.fixture
def fake_detect():
    """MIME detector returning a fixed, recognizable type."""
    calls = []

    def detect(path):
        calls.append(path)
        return "application/x-test"

    detect.calls = calls
    return detect


@pytest.fixture
def deny_access(monkeypatch):
    """
    Make os.access() refuse modes for chosen paths.

    Permission bits don't stop root, so this is how the access checks
    get exercised under any user:

        deny_access(capsule / "docs", os.X_OK)
    """
    real_access = os.access
    denied = {}

    def access(path, mode, *args, **kwargs):
        if mode & denied.get(os.fspath(path), 0):
            return False
        return real_access(path, mode, *args, **kwargs)

    monkeypatch.setattr(os, "access", access)

    def deny(path, mode: int):
        denied[os.fspath(path)] = denied.get(os.fspath(path), 0) | mode

    return deny


@pytest.fixture
def fs_config(capsule: Path) -> FilesystemConfig:
    """Filesystem configuration for the capsule with a fixed version tag."""
    return FilesystemConfig(directory=str(capsule), version_tag="gemserve-test")


@pytest.fixture
def handler(fs_config, fake_cgi, fake_detect) -> FilesystemHandler:
    """Filesystem handler with fake CGI and MIME detection."""
    return FilesystemHandler(fs_config, cgi=fake_cgi, detect=fake_detect)


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class ServerThread:
    """Runs a GeminiServer (plain TCP) in a background thread."""

    def __init__(self, server: GeminiServer, port: int):
        self.server = server
        self.port = port
        self._thread: threading.Thread = None

    def start(self):
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()

        for _ in range(50):  # 5 seconds max
            if self.server._socket_server.is_running:
                return
            time.sleep(0.1)

        raise RuntimeError("Server failed to start")

    def request(self, line: bytes) -> bytes:
        """Send raw bytes, return everything the server sends back."""
        with socket.create_connection(("127.0.0.1", self.port), timeout=5.0) as s:
            s.sendall(line)
            chunks = []
            while True:
                chunk = s.recv(4096)
                if not chunk:
                    break
                chunks.append(chunk)
        return b"".join(chunks)

    def stop(self):
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)


@pytest.fixture
def live_server(capsule: Path, free_port: int) -> Generator[ServerThread, None, None]:
    """A running server serving the capsule on 127.0.0.1 without TLS."""
    server = GeminiServer(ServerConfig(
        host="127.0.0.1",
        port=free_port,
        hostname="localhost",
        workers=2,
        timeout=2.0,
        log_level="WARNING",
    ))

    @server.route("/status")
    def status(request):
        return success("# OK\r\n")

    server.mount("/", str(capsule), version_tag="gemserve-test")

    thread = ServerThread(server, free_port)
    thread.start()

    yield thread

    thread.stop()
