"""
=============================================================================
GEMINI RESPONSE
=============================================================================

A Gemini response is the simplest thing a protocol can send back:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      GEMINI RESPONSE FORMAT                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   20 text/gemini\r\n          ← Header: <STATUS><SPACE><META><CRLF> │
    │   # Hello\r\n                  ← Body (only for 2x responses)        │
    │   => docs/\tdocs/\r\n                                                │
    │                                                                      │
    │   (connection closes: end of body)                                   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

No headers, no Content-Length, no keep-alive. The server closes the
connection when the body is done, which is how the client knows it
has everything.

=============================================================================
THE (STATUS, META, BODY) TRIPLE
=============================================================================

Every handler in this package returns the same immutable triple:

    GeminiResponse(status=51, meta="Not found", body=b"")
    GeminiResponse(status=31, meta="/docs/", body=b"")
    GeminiResponse(status=20, meta="text/gemini", body=b"# Hi\r\n")

Internally, handlers build up a smaller tagged result first:

    Content(mime, body)        → success, becomes (20, mime, body)
    Failure(status, message)   → anything else, becomes (status, message, b"")

to_response() normalizes both into the triple, so the code that decides
WHAT happened never has to know HOW it goes on the wire.

=============================================================================
"""

from dataclasses import dataclass
from typing import Optional, Union

from .status_codes import GeminiStatus


CRLF = "\r\n"

# Meta is limited to 1024 bytes by the protocol
MAX_META_LENGTH = 1024


@dataclass(frozen=True)
class GeminiResponse:
    """
    Represents a Gemini response to be sent to the client.

    Frozen: once a handler has produced a response nothing downstream
    can alter it. Middleware that wants to change a response has to
    build a new one.
    """

    status: int
    meta: str = ""
    body: bytes = b""

    @property
    def header(self) -> str:
        """
        The response header line (without CRLF).

        Example: "20 text/gemini"
        """
        return f"{int(self.status):02d} {self.meta}"

    @property
    def is_success(self) -> bool:
        return 20 <= int(self.status) < 30

    def as_tuple(self) -> tuple:
        """The plain (status, meta, body) triple."""
        return (int(self.status), self.meta, self.body)

    def to_bytes(self) -> bytes:
        """
        Serialize the response for socket.sendall().

        The body is only sent for 2x responses; for every other status
        the header line is the whole response.

        Raises:
            ValueError: If meta is longer than the protocol allows.
        """
        meta_length = len(self.meta.encode("utf-8", errors="surrogateescape"))
        if meta_length > MAX_META_LENGTH:
            raise ValueError(f"Meta too long: {meta_length} bytes")

        header = (self.header + CRLF).encode("utf-8", errors="surrogateescape")

        if self.is_success:
            return header + self.body
        return header


# =============================================================================
# TAGGED RESULTS
# =============================================================================

@dataclass(frozen=True)
class Content:
    """Successful outcome: a content type and the bytes to send."""

    mime: str
    body: bytes

    def to_response(self) -> GeminiResponse:
        return GeminiResponse(GeminiStatus.SUCCESS, self.mime, self.body)


@dataclass(frozen=True)
class Failure:
    """Failed outcome: a non-success status and the meta message."""

    status: GeminiStatus
    message: str = ""

    @classmethod
    def of(cls, status: GeminiStatus) -> "Failure":
        """Failure carrying the status's default message."""
        return cls(status, status.message)

    def to_response(self) -> GeminiResponse:
        return GeminiResponse(self.status, self.message or self.status.message)


Outcome = Union[Content, Failure, GeminiResponse]


def to_response(outcome: Outcome) -> GeminiResponse:
    """
    Normalize any handler outcome into a GeminiResponse.

    GeminiResponse values (e.g. from a CGI script) pass through as-is.
    """
    if isinstance(outcome, GeminiResponse):
        return outcome
    return outcome.to_response()


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def success(body: Union[str, bytes], mime: str = "text/gemini") -> GeminiResponse:
    """
    Create a 20 SUCCESS response.

    String bodies are encoded as UTF-8.
    """
    if isinstance(body, str):
        body = body.encode("utf-8")
    return GeminiResponse(GeminiStatus.SUCCESS, mime, body)


def redirect(url: str, permanent: bool = False) -> GeminiResponse:
    """Create a 30 (temporary) or 31 (permanent) redirect."""
    status = GeminiStatus.REDIRECT_PERMANENT if permanent else GeminiStatus.REDIRECT_TEMPORARY
    return GeminiResponse(status, url)


def failure(status: GeminiStatus, message: Optional[str] = None) -> GeminiResponse:
    """Create a failure response, defaulting to the status's own message."""
    return GeminiResponse(status, message or status.message)


def not_found(message: Optional[str] = None) -> GeminiResponse:
    return failure(GeminiStatus.NOT_FOUND, message)


def temporary_failure(message: Optional[str] = None) -> GeminiResponse:
    return failure(GeminiStatus.TEMPORARY_FAILURE, message)


def bad_request(message: Optional[str] = None) -> GeminiResponse:
    return failure(GeminiStatus.BAD_REQUEST, message)


def cgi_error(message: Optional[str] = None) -> GeminiResponse:
    return failure(GeminiStatus.CGI_ERROR, message)
