"""
Unit tests for Gemini responses and status codes.
"""

import dataclasses

import pytest

from gemserve.gemini.response import (
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
from gemserve.gemini.status_codes import GeminiStatus


class TestGeminiResponse:
    """Tests for GeminiResponse."""

    def test_header(self):
        """Test header line generation."""
        assert GeminiResponse(20, "text/gemini").header == "20 text/gemini"
        assert GeminiResponse(GeminiStatus.NOT_FOUND, "Not found").header == "51 Not found"

    def test_to_bytes_success_includes_body(self):
        """Test that 2x responses carry the body."""
        response = GeminiResponse(20, "text/plain", b"hello")
        assert response.to_bytes() == b"20 text/plain\r\nhello"

    def test_to_bytes_failure_drops_body(self):
        """Test that non-2x responses are the header line only."""
        response = GeminiResponse(51, "Not found", b"ignored")
        assert response.to_bytes() == b"51 Not found\r\n"

    def test_meta_too_long(self):
        """Test that meta over 1024 bytes is refused."""
        with pytest.raises(ValueError):
            GeminiResponse(31, "/" + "a" * 1024).to_bytes()

    def test_meta_limit_counts_bytes(self):
        """Test that the limit is in bytes, not characters."""
        GeminiResponse(31, "é" * 512).to_bytes()
        with pytest.raises(ValueError):
            GeminiResponse(31, "é" * 513).to_bytes()

    def test_frozen(self):
        """Test that responses can't be altered after creation."""
        response = GeminiResponse(20, "text/gemini")
        with pytest.raises(dataclasses.FrozenInstanceError):
            response.status = 51

    def test_as_tuple(self):
        """Test the plain triple."""
        assert GeminiResponse(GeminiStatus.SUCCESS, "text/gemini", b"x").as_tuple() == (
            20, "text/gemini", b"x",
        )


class TestTaggedResults:
    """Tests for Content/Failure normalization."""

    def test_content(self):
        """Test that Content becomes a 20 response."""
        assert to_response(Content("image/png", b"\x89PNG")).as_tuple() == (20, "image/png", b"\x89PNG")

    def test_failure_default_message(self):
        """Test that Failure.of uses the status message."""
        assert to_response(Failure.of(GeminiStatus.NOT_FOUND)).as_tuple() == (51, "Not found", b"")
        assert to_response(Failure(GeminiStatus.TEMPORARY_FAILURE)).meta == "Temporary failure"

    def test_failure_custom_message(self):
        """Test that a given message is kept."""
        assert to_response(Failure(GeminiStatus.GONE, "Moved away")).meta == "Moved away"

    def test_response_passes_through(self):
        """Test that an existing response is returned as-is."""
        response = GeminiResponse(42, "boom")
        assert to_response(response) is response


class TestConvenienceFunctions:
    """Tests for response helpers."""

    def test_success_encodes_text(self):
        assert success("# Hi\n").as_tuple() == (20, "text/gemini", b"# Hi\n")
        assert success(b"raw", mime="text/plain").meta == "text/plain"

    def test_redirect(self):
        assert redirect("/docs/").status == 30
        assert redirect("/docs/", permanent=True).as_tuple() == (31, "/docs/", b"")

    def test_failures(self):
        assert not_found().as_tuple() == (51, "Not found", b"")
        assert temporary_failure().as_tuple() == (40, "Temporary failure", b"")
        assert bad_request("No").as_tuple() == (59, "No", b"")
        assert cgi_error().status == 42
        assert failure(GeminiStatus.SLOW_DOWN, "5").meta == "5"


class TestGeminiStatus:
    """Tests for the status enum."""

    def test_messages(self):
        assert GeminiStatus.NOT_FOUND.message == "Not found"
        assert GeminiStatus.TEMPORARY_FAILURE.message == "Temporary failure"

    def test_categories(self):
        assert GeminiStatus.INPUT.is_input
        assert GeminiStatus.SUCCESS.is_success
        assert GeminiStatus.REDIRECT_PERMANENT.is_redirect
        assert GeminiStatus.CGI_ERROR.is_temporary_failure
        assert GeminiStatus.BAD_REQUEST.is_permanent_failure
        assert GeminiStatus.CERTIFICATE_NOT_VALID.is_certificate

    def test_is_error(self):
        assert GeminiStatus.NOT_FOUND.is_error
        assert GeminiStatus.SERVER_UNAVAILABLE.is_error
        assert not GeminiStatus.REDIRECT_TEMPORARY.is_error
        assert not GeminiStatus.CLIENT_CERTIFICATE_REQUIRED.is_error
