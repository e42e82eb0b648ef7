"""
=============================================================================
CGI SCRIPTS
=============================================================================

Executable files under a served directory are not sent to the client,
they are RUN, and whatever they print becomes the response.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   gemini://example.org/cgi/guestbook?hello                           │
    │        │                                                             │
    │        ▼                                                             │
    │   /srv/gemini/cgi/guestbook  (mode 0755)                             │
    │        │                                                             │
    │        │  env: QUERY_STRING=hello                                    │
    │        │       SCRIPT_NAME=/cgi/guestbook                            │
    │        │       TLS_CLIENT_HASH=SHA256:ab12...  (if a client cert)    │
    │        ▼                                                             │
    │   stdout: "20 text/gemini\\r\\n# Guestbook\\r\\n..."                    │
    │        │                                                             │
    │        ▼                                                             │
    │   GeminiResponse(20, "text/gemini", b"# Guestbook\\r\\n...")            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
WHAT A SCRIPT MAY PRINT
=============================================================================

1. A Gemini response, header line first:

       20 text/gemini\\r\\n
       # Hello\\r\\n

2. CGI headers, a blank line, then the body:

       Status: 51 Nothing here\\n          → 51 Nothing here
       Content-Type: text/plain\\n         → 20 text/plain  (no Status)
       Location: /elsewhere\\n             → 31 /elsewhere  (no Status)
       \\n
       body...

Anything else (no output, a crash before any output, a timeout, garbage
headers) is answered with 42 CGI ERROR.

=============================================================================
"""

import logging
import os
import re
import subprocess
from typing import Dict, Optional

from ..config import DEFAULT_SERVER_NAME
from ..gemini.request import ClientIdentity, Location
from ..gemini.response import GeminiResponse, cgi_error
from ..gemini.status_codes import GeminiStatus
from ..gemini.url import escape


logger = logging.getLogger(__name__)


GEMINI_HEADER = re.compile(rb"^([1-6][0-9])(?: (.*))?$")


class CGIOutputError(ValueError):
    """Raised when a script's output is not a usable response."""


def parse_cgi_output(data: bytes) -> GeminiResponse:
    """
    Turn a script's stdout into a GeminiResponse.

    Raises:
        CGIOutputError: If the output has no recognizable header.
    """
    first_end = data.find(b"\n")
    if first_end < 0:
        raise CGIOutputError("No header line")

    first_line = data[:first_end].rstrip(b"\r")

    # ─────────────────────────────────────────────────────────────────────
    # Native Gemini header
    # ─────────────────────────────────────────────────────────────────────
    match = GEMINI_HEADER.match(first_line)
    if match:
        status = int(match.group(1))
        meta = _decode(match.group(2) or b"")
        return GeminiResponse(status, meta, data[first_end + 1:])

    # ─────────────────────────────────────────────────────────────────────
    # CGI headers
    # ─────────────────────────────────────────────────────────────────────
    headers: Dict[str, str] = {}
    pos = 0
    while True:
        end = data.find(b"\n", pos)
        if end < 0:
            raise CGIOutputError("Headers not terminated by a blank line")

        line = data[pos:end].rstrip(b"\r")
        pos = end + 1
        if not line:
            break

        name, sep, value = line.partition(b":")
        if not sep:
            raise CGIOutputError(f"Malformed header line: {line[:80]!r}")
        headers[_decode(name).strip().lower()] = _decode(value).strip()

    body = data[pos:]
    content_type = headers.get("content-type", "")
    location = headers.get("location", "")

    if "status" in headers:
        code, _, meta = headers["status"].partition(" ")
        if not re.fullmatch(r"[1-6][0-9]", code):
            raise CGIOutputError(f"Invalid status: {headers['status']!r}")
        status = int(code)
        if not meta:
            if 20 <= status < 30:
                meta = content_type
            elif 30 <= status < 40:
                meta = location
            else:
                meta = _default_message(status)
        return GeminiResponse(status, meta.strip(), body)

    if location:
        return GeminiResponse(GeminiStatus.REDIRECT_PERMANENT, location)

    if content_type:
        return GeminiResponse(GeminiStatus.SUCCESS, content_type, body)

    raise CGIOutputError("Neither Status, Location nor Content-Type given")


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace")


def _default_message(status: int) -> str:
    try:
        return GeminiStatus(status).message
    except ValueError:
        return ""


class CGIRunner:
    """
    Runs executable files as CGI scripts.

    One process per request, no pooling. The script's working directory
    is its own directory, stdin is closed, and it gets `timeout` seconds
    to finish.

    Usage:
        runner = CGIRunner(hostname="example.org", port=1965)
        response = runner.execute(identity, "/srv/gemini/cgi/hello", location)
    """

    def __init__(
        self,
        server_name: str = DEFAULT_SERVER_NAME,
        hostname: str = "localhost",
        port: int = 1965,
        timeout: Optional[float] = 10.0,
    ):
        self.server_name = server_name
        self.hostname = hostname
        self.port = port
        self.timeout = timeout

    def __call__(
        self,
        identity: Optional[ClientIdentity],
        file_path: str,
        location: Location,
    ) -> GeminiResponse:
        return self.execute(identity, file_path, location)

    def execute(
        self,
        identity: Optional[ClientIdentity],
        file_path: str,
        location: Location,
    ) -> GeminiResponse:
        """
        Run a script and return its response.

        Failures are logged and answered with 42; nothing is raised.
        """
        env = self.environment(identity, file_path, location)

        try:
            result = subprocess.run(
                [file_path],
                cwd=os.path.dirname(file_path) or None,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            logger.error(f"CGI {file_path!r} timed out after {self.timeout}s")
            return cgi_error()
        except OSError as e:
            logger.error(f"CGI {file_path!r} could not be started: {e}")
            return cgi_error()

        if result.stderr:
            logger.warning(f"CGI {file_path!r} stderr: {_decode(result.stderr).strip()}")

        if result.returncode != 0 and not result.stdout:
            logger.error(f"CGI {file_path!r} exited with status {result.returncode}")
            return cgi_error()

        try:
            return parse_cgi_output(result.stdout)
        except CGIOutputError as e:
            logger.error(f"CGI {file_path!r} produced invalid output: {e}")
            return cgi_error()

    def environment(
        self,
        identity: Optional[ClientIdentity],
        file_path: str,
        location: Location,
    ) -> Dict[str, str]:
        """
        Build the CGI/1.1 environment for one request.

        Only PATH is inherited from the server process.
        """
        env = {
            "GATEWAY_INTERFACE": "CGI/1.1",
            "SERVER_PROTOCOL": "GEMINI",
            "SERVER_SOFTWARE": self.server_name,
            "SERVER_NAME": self.hostname,
            "SERVER_PORT": str(self.port),
            "REQUEST_METHOD": "",
            "SCRIPT_NAME": location.path,
            "SCRIPT_FILENAME": file_path,
            "PATH_INFO": "",
            "QUERY_STRING": location.query,
            "GEMINI_URL": self.url_for(location),
            "PATH": os.environ.get("PATH", os.defpath),
        }

        if identity is not None:
            env["AUTH_TYPE"] = "Certificate"
            env["REMOTE_USER"] = identity.subject or ""
            env["TLS_CLIENT_HASH"] = f"SHA256:{identity.fingerprint}"

        return env

    def url_for(self, location: Location) -> str:
        """The absolute URL a location was requested under."""
        port = "" if self.port == 1965 else f":{self.port}"
        query = f"?{location.query}" if location.query else ""
        return f"gemini://{self.hostname}{port}{escape(location.path)}{query}"
