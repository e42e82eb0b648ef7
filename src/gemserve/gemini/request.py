"""
=============================================================================
GEMINI REQUEST PARSING
=============================================================================

A Gemini request is a single line: an absolute URL followed by CRLF.

    gemini://example.org/docs/notes.gemini?draft\r\n
    ──────   ───────────  ──────────────────  ─────
    scheme   host         path                query

That's it. No method, no headers, no body. The client's identity (if
any) comes from the TLS layer, as a client certificate.

=============================================================================
WHAT CAN GO WRONG
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  Problem                                    Status                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │  missing CRLF, > 1024 bytes, bad UTF-8      59 BAD REQUEST           │
    │  relative URL, userinfo, fragment           59 BAD REQUEST           │
    │  other scheme (https://...)                 53 PROXY REQUEST REFUSED │
    │  other host or port                         53 PROXY REQUEST REFUSED │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PATH NORMALIZATION
=============================================================================

The path is percent-decoded and cleaned of "." and ".." segments before
any handler sees it:

    /docs/%2e%2e/../etc/passwd   →   /etc/passwd

Handlers therefore never receive a path that climbs above "/".

=============================================================================
"""

import hashlib
from dataclasses import dataclass, field
from typing import Dict, Optional
from urllib.parse import urlsplit

from .status_codes import GeminiStatus
from .url import remove_dot_segments, unescape


# Maximum URL length in bytes, not counting the CRLF
MAX_REQUEST_SIZE = 1024


class GeminiParseError(Exception):
    """
    Raised when a request line can't be accepted.

    Carries the Gemini status that should be returned to the client
    (59 for malformed requests, 53 for requests meant for someone else).
    """

    def __init__(self, message: str, status: GeminiStatus = GeminiStatus.BAD_REQUEST):
        super().__init__(message)
        self.status = status


@dataclass(frozen=True)
class ClientIdentity:
    """
    The client certificate presented during the TLS handshake.

    The filesystem handler never looks inside this; it only forwards it
    to CGI scripts (REMOTE_USER, TLS_CLIENT_HASH).
    """

    fingerprint: str                 # SHA-256 hex digest of the DER certificate
    subject: Optional[str] = None    # Common name, when the certificate was verified

    @classmethod
    def from_certificate(cls, der: bytes, info: Optional[dict] = None) -> "ClientIdentity":
        """
        Build an identity from ssl.SSLSocket.getpeercert() results.

        Args:
            der: getpeercert(binary_form=True)
            info: getpeercert(), only filled in for verified certificates
        """
        subject = None
        for rdn in (info or {}).get("subject", ()):
            for key, value in rdn:
                if key == "commonName":
                    subject = value
        return cls(fingerprint=hashlib.sha256(der).hexdigest(), subject=subject)


@dataclass(frozen=True)
class Location:
    """Path and raw query string of a request."""

    path: str
    query: str = ""

    @property
    def is_directory_path(self) -> bool:
        """True when the path ends in '/'."""
        return self.path.endswith("/")


@dataclass
class GeminiRequest:
    """
    Represents a parsed Gemini request.

    =========================================================================
    ATTRIBUTES
    =========================================================================

        url:            The request line exactly as received (minus CRLF)

        location:       Decoded, normalized path + raw query string

        identity:       ClientIdentity, or None without a client certificate

        client_address: (ip, port) of the client, for logging and CGI

        path_params:    Named captures set by the router
                        Route "/users/:name" with "/users/sean" → {"name": "sean"}

        match:          The same captures, in pattern order
                        Route "/docs/*path" with "/docs/a/b" → ("a/b",)

    =========================================================================
    """

    url: str
    location: Location
    identity: Optional[ClientIdentity] = None
    client_address: tuple[str, int] = ("", 0)
    host: str = ""
    port: Optional[int] = None

    # Router-injected parameters
    path_params: Dict[str, str] = field(default_factory=dict)
    match: tuple = ()

    @property
    def path(self) -> str:
        return self.location.path

    @property
    def query(self) -> str:
        return self.location.query

    @property
    def client_ip(self) -> str:
        return self.client_address[0]


class RequestParser:
    """
    Parser for Gemini request lines.

    Usage:
        parser = RequestParser(hostname="example.org", port=1965)
        request = parser.parse(b"gemini://example.org/\\r\\n", ("10.0.0.1", 40000))

    Args:
        hostname: Host this server answers for. None accepts any host.
        port: Port this server answers on. None accepts any port.
        max_request_size: URL length limit in bytes (protocol fixes 1024).
    """

    def __init__(
        self,
        hostname: Optional[str] = None,
        port: Optional[int] = None,
        max_request_size: int = MAX_REQUEST_SIZE,
    ):
        self.hostname = hostname.lower() if hostname else None
        self.port = port
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0),
        identity: Optional[ClientIdentity] = None,
    ) -> GeminiRequest:
        """
        Parse a raw request line into a GeminiRequest.

        Args:
            data: Raw bytes from the socket, including the CRLF.
            client_address: Client's (ip, port) tuple.
            identity: Client certificate identity from the TLS layer.

        Raises:
            GeminiParseError: If the request must be refused.
        """
        # ─────────────────────────────────────────────────────────────────
        # STEP 1: Framing
        # ─────────────────────────────────────────────────────────────────
        if not data.endswith(b"\r\n"):
            raise GeminiParseError("Request must end with CRLF")

        line = data[:-2]
        if len(line) > self.max_request_size:
            raise GeminiParseError(f"Request too long: {len(line)} bytes")
        if b"\r" in line or b"\n" in line:
            raise GeminiParseError("Request contains a line break")
        if not line:
            raise GeminiParseError("Empty request")

        try:
            url = line.decode("utf-8")
        except UnicodeDecodeError:
            raise GeminiParseError("Request is not valid UTF-8")

        # ─────────────────────────────────────────────────────────────────
        # STEP 2: URL structure
        # ─────────────────────────────────────────────────────────────────
        try:
            parts = urlsplit(url)
            port = parts.port
        except ValueError as e:
            raise GeminiParseError(f"Malformed URL: {e}")

        if not parts.scheme or not parts.netloc:
            raise GeminiParseError("Absolute URL required")
        if parts.scheme.lower() != "gemini":
            raise GeminiParseError(
                f"Scheme not served: {parts.scheme}",
                GeminiStatus.PROXY_REQUEST_REFUSED,
            )
        if "@" in parts.netloc:
            raise GeminiParseError("URL must not contain userinfo")
        if parts.fragment or url.endswith("#"):
            raise GeminiParseError("URL must not contain a fragment")

        host = (parts.hostname or "").lower()
        if not host:
            raise GeminiParseError("URL has no host")

        # ─────────────────────────────────────────────────────────────────
        # STEP 3: Is this request for us?
        # ─────────────────────────────────────────────────────────────────
        if self.hostname and host != self.hostname:
            raise GeminiParseError(
                f"Host not served: {host}",
                GeminiStatus.PROXY_REQUEST_REFUSED,
            )
        if port is not None and self.port is not None and port != self.port:
            raise GeminiParseError(
                f"Port not served: {port}",
                GeminiStatus.PROXY_REQUEST_REFUSED,
            )

        # ─────────────────────────────────────────────────────────────────
        # STEP 4: Normalize the path
        # ─────────────────────────────────────────────────────────────────
        path = remove_dot_segments(unescape(parts.path)) or "/"
        if "\x00" in path:
            raise GeminiParseError("Path contains a NUL character")

        return GeminiRequest(
            url=url,
            location=Location(path=path, query=parts.query),
            identity=identity,
            client_address=client_address,
            host=host,
            port=port,
        )


def parse_request(
    data: bytes,
    client_address: tuple[str, int] = ("", 0),
    identity: Optional[ClientIdentity] = None,
) -> GeminiRequest:
    """
    Parse a request line with a default parser (any host, any port).

    Convenience function for simple use cases and tests.
    """
    return RequestParser().parse(data, client_address, identity)
