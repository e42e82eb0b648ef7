"""
=============================================================================
GEMINI STATUS CODES
=============================================================================

Every Gemini response starts with a two-digit status code. Unlike HTTP there
are no headers: the status is followed by a single "meta" string whose
meaning depends on the status class.

=============================================================================
STATUS CODE CATEGORIES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  1x INPUT                                                           │
    │  ─────────────────────────────────────────────────────────────────  │
    │  The server wants a line of user input. Meta is the prompt.         │
    │  The client re-requests the URL with the input as query string.     │
    ├─────────────────────────────────────────────────────────────────────┤
    │  2x SUCCESS                                                         │
    │  ─────────────────────────────────────────────────────────────────  │
    │  Meta is a MIME type, a body follows.                               │
    │  The only class that ever carries a body!                           │
    ├─────────────────────────────────────────────────────────────────────┤
    │  3x REDIRECT                                                        │
    │  ─────────────────────────────────────────────────────────────────  │
    │  Meta is the new URL (absolute or relative).                        │
    ├─────────────────────────────────────────────────────────────────────┤
    │  4x TEMPORARY FAILURE                                               │
    │  ─────────────────────────────────────────────────────────────────  │
    │  Try again later, the same request may succeed.                     │
    ├─────────────────────────────────────────────────────────────────────┤
    │  5x PERMANENT FAILURE                                               │
    │  ─────────────────────────────────────────────────────────────────  │
    │  Don't retry. 51 is the Gemini "404".                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │  6x CLIENT CERTIFICATE                                              │
    │  ─────────────────────────────────────────────────────────────────  │
    │  The resource needs (a different) client certificate.               │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
STATUS 51: NOT FOUND *OR* DENIED
=============================================================================

The filesystem handler answers 51 both for a path that doesn't exist and
for one it refuses to show (hidden segment, no permission). A client can't
tell "there is no .git here" from "you may not see .git", which is
exactly what we want.

=============================================================================
"""

from enum import IntEnum


class GeminiStatus(IntEnum):
    """
    Gemini status codes.

    IntEnum allows these to be used as integers while providing
    meaningful names:

        >>> GeminiStatus.NOT_FOUND == 51
        True
        >>> GeminiStatus.NOT_FOUND.message
        'Not found'
    """

    # 1x INPUT
    INPUT = 10
    SENSITIVE_INPUT = 11            # Like 10, but the client should mask input

    # 2x SUCCESS
    SUCCESS = 20

    # 3x REDIRECT
    REDIRECT_TEMPORARY = 30
    REDIRECT_PERMANENT = 31         # Client should update links/bookmarks

    # 4x TEMPORARY FAILURE
    TEMPORARY_FAILURE = 40
    SERVER_UNAVAILABLE = 41         # Overload or maintenance
    CGI_ERROR = 42
    PROXY_ERROR = 43
    SLOW_DOWN = 44                  # Rate limited, meta is seconds to wait

    # 5x PERMANENT FAILURE
    PERMANENT_FAILURE = 50
    NOT_FOUND = 51
    GONE = 52
    PROXY_REQUEST_REFUSED = 53      # Request for a host we don't serve
    BAD_REQUEST = 59

    # 6x CLIENT CERTIFICATE
    CLIENT_CERTIFICATE_REQUIRED = 60
    CERTIFICATE_NOT_AUTHORISED = 61
    CERTIFICATE_NOT_VALID = 62

    @property
    def message(self) -> str:
        """
        Default meta text for this status.

        Used whenever a handler fails without a more specific message.
        """
        return _STATUS_MESSAGES.get(self, "Unknown")

    @property
    def category(self) -> int:
        """First digit of the status (1-6)."""
        return self // 10

    @property
    def is_input(self) -> bool:
        return self.category == 1

    @property
    def is_success(self) -> bool:
        return self.category == 2

    @property
    def is_redirect(self) -> bool:
        return self.category == 3

    @property
    def is_temporary_failure(self) -> bool:
        return self.category == 4

    @property
    def is_permanent_failure(self) -> bool:
        return self.category == 5

    @property
    def is_certificate(self) -> bool:
        return self.category == 6

    @property
    def is_error(self) -> bool:
        """
        Check if this status reports a failure (4x or 5x).

        Certificate requests (6x) are not counted as errors, they are
        part of a normal authentication exchange.
        """
        return self.category in (4, 5)


_STATUS_MESSAGES = {
    GeminiStatus.INPUT: "Input",
    GeminiStatus.SENSITIVE_INPUT: "Sensitive input",
    GeminiStatus.SUCCESS: "Success",
    GeminiStatus.REDIRECT_TEMPORARY: "Redirect",
    GeminiStatus.REDIRECT_PERMANENT: "Permanent redirect",
    GeminiStatus.TEMPORARY_FAILURE: "Temporary failure",
    GeminiStatus.SERVER_UNAVAILABLE: "Server unavailable",
    GeminiStatus.CGI_ERROR: "CGI error",
    GeminiStatus.PROXY_ERROR: "Proxy error",
    GeminiStatus.SLOW_DOWN: "Slow down",
    GeminiStatus.PERMANENT_FAILURE: "Permanent failure",
    GeminiStatus.NOT_FOUND: "Not found",
    GeminiStatus.GONE: "Gone",
    GeminiStatus.PROXY_REQUEST_REFUSED: "Proxy request refused",
    GeminiStatus.BAD_REQUEST: "Bad request",
    GeminiStatus.CLIENT_CERTIFICATE_REQUIRED: "Client certificate required",
    GeminiStatus.CERTIFICATE_NOT_AUTHORISED: "Certificate not authorised",
    GeminiStatus.CERTIFICATE_NOT_VALID: "Certificate not valid",
}
