"""
=============================================================================
GEMINI PROTOCOL IMPLEMENTATION
=============================================================================

Gemini is a deliberately small request-response protocol over TLS:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                  Gemini Request-Response Cycle                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   CLIENT                                         SERVER              │
    │      │                                              │                │
    │      │   TLS handshake (optional client cert)       │                │
    │      │  ◄────────────────────────────────────────►  │                │
    │      │                                              │                │
    │      │   gemini://example.org/docs/\r\n              │                │
    │      │  ─────────────────────────────────────────►  │                │
    │      │                                              │                │
    │      │                     20 text/gemini\r\n        │                │
    │      │                     # Index of docs ...       │                │
    │      │  ◄─────────────────────────────────────────  │                │
    │      │                                              │                │
    │      │                        (server closes)       │                │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
MODULE COMPONENTS
=============================================================================

    request.py       Request line → GeminiRequest (Location, ClientIdentity)
    response.py      GeminiResponse triple, Content/Failure results
    status_codes.py  GeminiStatus enum with default messages
    router.py        Path patterns → handlers, captured `match`
    mime_types.py    Content type detection for served files
    url.py           Percent-escaping for generated links and redirects

=============================================================================
"""

from .request import (
    GeminiRequest,
    RequestParser,
    GeminiParseError,
    ClientIdentity,
    Location,
    parse_request,
)
from .response import (
    GeminiResponse,
    Content,
    Failure,
    to_response,
    success,
    redirect,
    failure,
    not_found,
    temporary_failure,
    bad_request,
    cgi_error,
)
from .router import Router, Route
from .status_codes import GeminiStatus
from .mime_types import detect, get_mime_type
from .url import escape, unescape

__all__ = [
    # Request parsing
    "GeminiRequest",
    "RequestParser",
    "GeminiParseError",
    "ClientIdentity",
    "Location",
    "parse_request",

    # Responses
    "GeminiResponse",
    "Content",
    "Failure",
    "to_response",
    "success",
    "redirect",
    "failure",
    "not_found",
    "temporary_failure",
    "bad_request",
    "cgi_error",

    # Routing
    "Router",
    "Route",

    # Status codes
    "GeminiStatus",

    # Content types and escaping
    "detect",
    "get_mime_type",
    "escape",
    "unescape",
]
