"""
Unit tests for the command line.
"""

import pytest

from gemserve.__main__ import build_parser, main
from gemserve.config import ServerConfig
from gemserve.server import GeminiServer


@pytest.fixture
def started(monkeypatch):
    """Replace GeminiServer.run and collect the servers it was called on."""
    servers = []
    monkeypatch.setattr(GeminiServer, "run", lambda self: servers.append(self))
    return servers


class TestParser:
    """Tests for argument parsing."""

    def test_defaults_from_config(self):
        args = build_parser(ServerConfig(port=1966, workers=3)).parse_args([])

        assert args.port == 1966
        assert args.workers == 3
        assert args.root == "."
        assert args.no_cgi is False

    def test_flags(self):
        args = build_parser(ServerConfig()).parse_args(
            ["-r", "/srv/gemini", "--no-cgi", "--index", "home.gmi", "-l", "DEBUG"]
        )

        assert args.root == "/srv/gemini"
        assert args.no_cgi is True
        assert args.index == "home.gmi"
        assert args.log_level == "DEBUG"


class TestMain:
    """Tests for main()."""

    def test_mounts_root(self, capsule, started):
        main(["--root", str(capsule), "--hostname", "localhost", "--no-cgi"])

        (server,) = started
        response = server.handle_request_line(b"gemini://localhost/docs/a.gemini\r\n")
        assert response.as_tuple() == (20, "text/gemini", b"# A\r\n")

    def test_no_cgi_serves_scripts_as_files(self, capsule, started):
        main(["--root", str(capsule), "--hostname", "localhost", "--no-cgi"])

        response = started[0].handle_request_line(b"gemini://localhost/cgi/hello\r\n")
        assert response.body.startswith(b"#!/bin/sh")

    def test_missing_root(self, tmp_path, started, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["--root", str(tmp_path / "nope")])

        assert exc.value.code == 1
        assert "not a directory" in capsys.readouterr().err
        assert started == []

    def test_invalid_options(self, capsule, started, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["--root", str(capsule), "--cert", "cert.pem"])

        assert exc.value.code == 2
        assert started == []

    def test_bad_extension(self, capsule, started):
        with pytest.raises(SystemExit) as exc:
            main(["--root", str(capsule), "--extension", ""])

        assert exc.value.code == 2
