"""
Unit tests for CGI execution.
"""

import logging
import sys

import pytest

from gemserve.gemini import ClientIdentity, Location
from gemserve.handlers.cgi import CGIOutputError, CGIRunner, parse_cgi_output


posix_only = pytest.mark.skipif(sys.platform == "win32", reason="needs executable scripts")


def write_script(path, body: str):
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(0o755)
    return str(path)


class TestParseCgiOutput:
    """Tests for interpreting script output."""

    def test_gemini_header(self):
        response = parse_cgi_output(b"20 text/gemini\r\n# Hi\r\n")
        assert response.as_tuple() == (20, "text/gemini", b"# Hi\r\n")

    def test_gemini_header_lf_only(self):
        assert parse_cgi_output(b"51 Gone fishing\nignored").as_tuple()[:2] == (51, "Gone fishing")

    def test_status_header(self):
        response = parse_cgi_output(b"Status: 20\r\nContent-Type: text/plain\r\n\r\nbody")
        assert response.as_tuple() == (20, "text/plain", b"body")

    def test_status_header_with_meta(self):
        response = parse_cgi_output(b"Status: 10 Your name?\n\n")
        assert response.as_tuple() == (10, "Your name?", b"")

    def test_status_header_default_message(self):
        assert parse_cgi_output(b"Status: 51\n\n").meta == "Not found"

    def test_content_type_only(self):
        response = parse_cgi_output(b"Content-Type: text/gemini\n\n# Page\n")
        assert response.as_tuple() == (20, "text/gemini", b"# Page\n")

    def test_location_only(self):
        response = parse_cgi_output(b"Location: /elsewhere\n\n")
        assert response.as_tuple() == (31, "/elsewhere", b"")

    @pytest.mark.parametrize("output", [
        b"",
        b"no newline at all",
        b"Content-Type: text/plain\r\n",          # no blank line
        b"garbage line\n\nbody",
        b"X-Other: 1\n\nbody",
        b"Status: abc\n\n",
    ])
    def test_invalid_output(self, output):
        with pytest.raises(CGIOutputError):
            parse_cgi_output(output)


class TestEnvironment:
    """Tests for the CGI environment."""

    def test_basic_variables(self):
        runner = CGIRunner(server_name="gemserve/test", hostname="example.org", port=1965)
        env = runner.environment(None, "/srv/cgi/hello", Location("/cgi/hello", "a%20b"))

        assert env["GATEWAY_INTERFACE"] == "CGI/1.1"
        assert env["SERVER_PROTOCOL"] == "GEMINI"
        assert env["SERVER_SOFTWARE"] == "gemserve/test"
        assert env["SCRIPT_NAME"] == "/cgi/hello"
        assert env["SCRIPT_FILENAME"] == "/srv/cgi/hello"
        assert env["QUERY_STRING"] == "a%20b"
        assert env["GEMINI_URL"] == "gemini://example.org/cgi/hello?a%20b"
        assert "AUTH_TYPE" not in env

    def test_identity_variables(self):
        runner = CGIRunner()
        identity = ClientIdentity(fingerprint="ab" * 32, subject="alice")

        env = runner.environment(identity, "/x", Location("/x"))

        assert env["AUTH_TYPE"] == "Certificate"
        assert env["REMOTE_USER"] == "alice"
        assert env["TLS_CLIENT_HASH"] == "SHA256:" + "ab" * 32

    def test_url_with_port(self):
        runner = CGIRunner(hostname="example.org", port=1966)
        assert runner.url_for(Location("/a b")) == "gemini://example.org:1966/a%20b"


@posix_only
class TestExecute:
    """Tests running real scripts."""

    def test_runs_script(self, tmp_path):
        script = write_script(tmp_path / "hello", 'printf "20 text/gemini\\r\\nq=%s" "$QUERY_STRING"\n')

        response = CGIRunner().execute(None, script, Location("/hello", "x=1"))

        assert response.as_tuple() == (20, "text/gemini", b"q=x=1")

    def test_working_directory(self, tmp_path):
        script = write_script(tmp_path / "pwd", 'printf "20 text/plain\\r\\n"; pwd\n')

        response = CGIRunner().execute(None, script, Location("/pwd"))

        assert response.body.decode().strip() == str(tmp_path.resolve())

    def test_timeout(self, tmp_path, caplog):
        script = write_script(tmp_path / "slow", "exec sleep 5\n")

        with caplog.at_level(logging.ERROR):
            response = CGIRunner(timeout=0.2).execute(None, script, Location("/slow"))

        assert response.status == 42
        assert "timed out" in caplog.text

    def test_failure_without_output(self, tmp_path):
        script = write_script(tmp_path / "fail", "exit 3\n")
        assert CGIRunner().execute(None, script, Location("/fail")).status == 42

    def test_bad_output(self, tmp_path):
        script = write_script(tmp_path / "bad", "echo oops\n")
        assert CGIRunner().execute(None, script, Location("/bad")).status == 42

    def test_cannot_start(self, tmp_path):
        path = tmp_path / "broken"
        path.write_text("#!/nonexistent/interpreter\n")
        path.chmod(0o755)

        assert CGIRunner().execute(None, str(path), Location("/broken")).status == 42
