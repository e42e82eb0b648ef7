"""
Unit tests for Gemini request parsing.
"""

import hashlib

import pytest

from gemserve.gemini.request import (
    ClientIdentity,
    GeminiParseError,
    Location,
    RequestParser,
    parse_request,
)
from gemserve.gemini.status_codes import GeminiStatus


@pytest.fixture
def parser() -> RequestParser:
    return RequestParser(hostname="example.org", port=1965)


class TestRequestParser:
    """Tests for RequestParser."""

    def test_parse_simple_request(self, parser):
        """Test parsing a plain request line."""
        request = parser.parse(b"gemini://example.org/docs/notes.gemini\r\n", ("10.0.0.1", 40000))

        assert request.url == "gemini://example.org/docs/notes.gemini"
        assert request.path == "/docs/notes.gemini"
        assert request.query == ""
        assert request.host == "example.org"
        assert request.client_ip == "10.0.0.1"

    def test_query_kept_raw(self, parser):
        """Test that the query string is not decoded."""
        request = parser.parse(b"gemini://example.org/search?hello%20world\r\n")
        assert request.location == Location("/search", "hello%20world")

    def test_empty_path_is_root(self, parser):
        """Test that a bare host requests '/'."""
        assert parser.parse(b"gemini://example.org\r\n").path == "/"

    def test_path_is_decoded(self, parser):
        """Test percent-decoding of the path."""
        assert parser.parse(b"gemini://example.org/my%20notes\r\n").path == "/my notes"

    def test_invalid_utf8_in_path(self, parser):
        """Test that undecodable escapes survive as surrogates."""
        request = parser.parse(b"gemini://example.org/caf%E9\r\n")
        assert request.path == "/caf\udce9"

    def test_dot_segments_removed(self, parser):
        """Test that '..' can't climb above the root."""
        request = parser.parse(b"gemini://example.org/docs/%2e%2e/../../etc/passwd\r\n")
        assert request.path == "/etc/passwd"

    def test_trailing_slash_kept(self, parser):
        """Test that '/docs/' and '/docs' stay distinct."""
        assert parser.parse(b"gemini://example.org/docs/\r\n").path == "/docs/"
        assert parser.parse(b"gemini://example.org/docs\r\n").path == "/docs"

    def test_host_case_insensitive(self, parser):
        """Test that the host comparison ignores case."""
        assert parser.parse(b"gemini://EXAMPLE.org/\r\n").host == "example.org"

    def test_explicit_default_port(self, parser):
        """Test that the served port may be spelled out."""
        assert parser.parse(b"gemini://example.org:1965/\r\n").port == 1965

    def test_identity_attached(self, parser):
        """Test that the TLS identity is carried on the request."""
        identity = ClientIdentity(fingerprint="00" * 32)
        assert parser.parse(b"gemini://example.org/\r\n", identity=identity).identity is identity

    def test_any_host_parser(self):
        """Test the default parser accepts any host."""
        assert parse_request(b"gemini://anything.test/x\r\n").host == "anything.test"


class TestParseErrors:
    """Tests for rejected request lines."""

    @pytest.mark.parametrize("raw", [
        b"gemini://example.org/",                 # no CRLF
        b"gemini://example.org/\n",               # bare LF
        b"\r\n",                                  # empty
        b"gemini://example.org/a\r\nb\r\n",       # embedded line break
        b"gemini://example.org/\xff\r\n",         # not UTF-8
        b"/docs/\r\n",                            # relative
        b"//example.org/\r\n",                    # no scheme
        b"gemini://user@example.org/\r\n",        # userinfo
        b"gemini://example.org/#top\r\n",         # fragment
        b"gemini://example.org:abc/\r\n",         # bad port
        b"gemini://example.org/a%00b\r\n",        # NUL
    ])
    def test_bad_request(self, parser, raw):
        """Test that malformed requests are answered with 59."""
        with pytest.raises(GeminiParseError) as exc_info:
            parser.parse(raw)
        assert exc_info.value.status == GeminiStatus.BAD_REQUEST

    def test_too_long(self, parser):
        """Test the 1024-byte limit on the URL."""
        prefix = b"gemini://example.org/"
        fits = prefix + b"a" * (1024 - len(prefix))

        assert parser.parse(fits + b"\r\n").path.startswith("/a")
        with pytest.raises(GeminiParseError):
            parser.parse(fits + b"a\r\n")

    @pytest.mark.parametrize("raw", [
        b"https://example.org/\r\n",
        b"gemini://other.org/\r\n",
        b"gemini://example.org:1966/\r\n",
    ])
    def test_proxy_refused(self, parser, raw):
        """Test that requests for other schemes, hosts or ports get 53."""
        with pytest.raises(GeminiParseError) as exc_info:
            parser.parse(raw)
        assert exc_info.value.status == GeminiStatus.PROXY_REQUEST_REFUSED


class TestClientIdentity:
    """Tests for certificate identities."""

    def test_from_certificate(self):
        """Test fingerprint and subject extraction."""
        der = b"not really a certificate"
        info = {"subject": ((("countryName", "NL"),), (("commonName", "alice"),))}

        identity = ClientIdentity.from_certificate(der, info)

        assert identity.fingerprint == hashlib.sha256(der).hexdigest()
        assert identity.subject == "alice"

    def test_unverified_certificate(self):
        """Test that an empty info dict leaves the subject unset."""
        assert ClientIdentity.from_certificate(b"der", {}).subject is None
