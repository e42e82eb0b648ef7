"""
Unit tests for content type detection.
"""

from gemserve.gemini.mime_types import (
    DEFAULT_MIME_TYPE,
    detect,
    get_mime_type,
    is_text_type,
    sniff,
)


class TestGetMimeType:
    """Tests for extension lookup."""

    def test_known_extensions(self):
        assert get_mime_type("index.gmi") == "text/gemini"
        assert get_mime_type("index.gemini") == "text/gemini"
        assert get_mime_type("photo.JPG") == "image/jpeg"

    def test_unknown_extension(self):
        assert get_mime_type("data.xyz") is None
        assert get_mime_type("data.xyz", DEFAULT_MIME_TYPE) == DEFAULT_MIME_TYPE


class TestSniff:
    """Tests for content sniffing."""

    def test_magic_signatures(self):
        assert sniff(b"\x89PNG\r\n\x1a\nrest") == "image/png"
        assert sniff(b"%PDF-1.7") == "application/pdf"

    def test_text(self):
        assert sniff("héllo\n".encode()) == "text/plain"

    def test_binary(self):
        assert sniff(b"\x00\x01\x02\x03") == DEFAULT_MIME_TYPE
        assert sniff(b"\xff\xfe\xfd\xfc\xfb\xfa") == DEFAULT_MIME_TYPE

    def test_truncated_multibyte_character(self):
        """Test that a sample cut inside a character is still text."""
        assert sniff("abcé".encode()[:-1]) == "text/plain"


class TestDetect:
    """Tests for detect()."""

    def test_gemtext_has_no_charset(self, tmp_path):
        path = tmp_path / "page.gmi"
        path.write_text("# Hi")
        assert detect(str(path)) == "text/gemini"

    def test_text_gets_charset(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("hi")
        assert detect(str(path)) == "text/plain; charset=utf-8"

    def test_unknown_extension_sniffed(self, tmp_path):
        path = tmp_path / "picture"
        path.write_bytes(b"GIF89a....")
        assert detect(str(path)) == "image/gif"

        path = tmp_path / "README"
        path.write_text("Read me\n")
        assert detect(str(path)) == "text/plain; charset=utf-8"

    def test_unreadable_is_binary(self, tmp_path):
        assert detect(str(tmp_path / "missing")) == DEFAULT_MIME_TYPE

    def test_is_text_type(self):
        assert is_text_type("text/gemini")
        assert is_text_type("application/json")
        assert not is_text_type("image/png")
