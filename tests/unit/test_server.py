"""
Unit tests for the Gemini server: dispatch without sockets, and a few
requests against a live server over plain TCP.
"""

import json
import logging

import pytest

from gemserve import GeminiServer, ServerConfig
from gemserve.gemini import GeminiStatus, success
from gemserve.middleware import FunctionMiddleware, LoggingMiddleware


@pytest.fixture
def server(capsule) -> GeminiServer:
    server = GeminiServer(ServerConfig(hostname="localhost", port=1965))
    server.mount("/", str(capsule), version_tag="gemserve-test")
    return server


def ask(server: GeminiServer, url: str):
    return server.handle_request_line(url.encode() + b"\r\n", ("127.0.0.1", 50000)).as_tuple()


class TestDispatch:
    """Tests for handle_request_line()."""

    def test_serves_file(self, server):
        assert ask(server, "gemini://localhost/docs/a.gemini") == (20, "text/gemini", b"# A\r\n")

    def test_root_index(self, server):
        assert ask(server, "gemini://localhost/") == (20, "text/gemini", b"# Welcome\r\n")
        assert ask(server, "gemini://localhost") == (20, "text/gemini", b"# Welcome\r\n")

    def test_directory_redirect(self, server):
        assert ask(server, "gemini://localhost/docs") == (31, "/docs/", b"")

    def test_listing(self, server):
        status, meta, body = ask(server, "gemini://localhost/docs/")

        assert (status, meta) == (20, "text/gemini")
        assert body.startswith(b"Index of docs/\r\n")
        assert body.endswith(b"gemserve-test\r\n")

    def test_hidden_not_found(self, server):
        assert ask(server, "gemini://localhost/docs/.git/config") == (51, "Not found", b"")

    def test_traversal_stays_inside(self, server):
        """Test that '..' in the URL can't leave the served directory."""
        assert ask(server, "gemini://localhost/docs/../../../etc/passwd")[0] == 51

    def test_encoded_path(self, server, capsule):
        (capsule / "my notes.gemini").write_text("# Notes\n")
        assert ask(server, "gemini://localhost/my%20notes.gemini")[2] == b"# Notes\n"

    def test_mount_prefix(self, capsule):
        server = GeminiServer(ServerConfig(hostname="localhost"))
        server.mount("/files", str(capsule / "docs"))

        assert ask(server, "gemini://localhost/files/a.gemini")[0] == 20
        assert ask(server, "gemini://localhost/files") == (31, "/files/", b"")
        assert ask(server, "gemini://localhost/a.gemini")[0] == 51

    def test_route_before_mount(self, capsule):
        server = GeminiServer(ServerConfig(hostname="localhost"))

        @server.route("/status")
        def status(request):
            return success("# OK\n")

        server.mount("/", str(capsule))

        assert ask(server, "gemini://localhost/status") == (20, "text/gemini", b"# OK\n")

    def test_bad_request(self, server):
        response = server.handle_request_line(b"not a url\r\n")
        assert response.status == GeminiStatus.BAD_REQUEST

    def test_foreign_host(self, server):
        assert ask(server, "gemini://elsewhere.org/")[0] == 53

    def test_handler_exception(self, server, caplog):
        @server.route("/boom")
        def boom(request):
            raise RuntimeError("kaboom")

        # Registered after the catch-all, so move it to the front
        server.router._routes.insert(0, server.router._routes.pop())

        with caplog.at_level(logging.ERROR):
            assert ask(server, "gemini://localhost/boom") == (40, "Temporary failure", b"")
        assert "kaboom" in caplog.text


class TestMiddleware:
    """Tests for middleware around dispatch."""

    def test_order(self, server):
        calls = []

        def outer(request, next):
            calls.append("outer")
            return next(request)

        def inner(request, next):
            calls.append("inner")
            return next(request)

        server.use(FunctionMiddleware(outer)).use(FunctionMiddleware(inner))
        ask(server, "gemini://localhost/")

        assert calls == ["outer", "inner"]

    def test_short_circuit(self, server):
        def deny(request, next):
            return success("# Denied\n")

        server.use(FunctionMiddleware(deny))
        assert ask(server, "gemini://localhost/docs/a.gemini")[2] == b"# Denied\n"

    def test_access_log(self, server, caplog):
        server.use(LoggingMiddleware())

        with caplog.at_level(logging.INFO, logger="gemserve.access"):
            ask(server, "gemini://localhost/docs/a.gemini")

        record = [r for r in caplog.records if r.name == "gemserve.access"][0]
        assert '"gemini://localhost/docs/a.gemini" 20 text/gemini 5' in record.getMessage()
        assert record.getMessage().startswith("127.0.0.1 ")

    def test_access_log_json(self, server, caplog):
        server.use(LoggingMiddleware(log_format="json"))

        with caplog.at_level(logging.INFO, logger="gemserve.access"):
            ask(server, "gemini://localhost/missing")

        record = [r for r in caplog.records if r.name == "gemserve.access"][0]
        entry = json.loads(record.getMessage())
        assert entry["status"] == 51
        assert entry["url"] == "gemini://localhost/missing"


class TestLiveServer:
    """End-to-end requests over TCP."""

    def test_file(self, live_server):
        assert live_server.request(b"gemini://localhost/\r\n") == b"20 text/gemini\r\n# Welcome\r\n"

    def test_not_found_has_no_body(self, live_server):
        assert live_server.request(b"gemini://localhost/docs/.git/config\r\n") == b"51 Not found\r\n"

    def test_route(self, live_server):
        assert live_server.request(b"gemini://localhost/status\r\n") == b"20 text/gemini\r\n# OK\r\n"

    def test_cgi(self, live_server):
        response = live_server.request(b"gemini://localhost/cgi/hello?x=1\r\n")

        assert response.startswith(b"20 text/gemini\r\n# Hello from CGI\r\n")
        assert b"query=x=1" in response

    def test_request_too_long(self, live_server):
        response = live_server.request(b"gemini://localhost/" + b"a" * 1100)
        assert response.startswith(b"59 ")
