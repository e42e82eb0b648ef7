"""
=============================================================================
MIME TYPE DETECTION
=============================================================================

A Gemini success response carries the content type as its meta string:

    20 image/png\r\n
    <png bytes>

So every file we serve needs a MIME type. We find it in two steps:

    ┌────────────────────────────────────────────────────────────────────┐
    │                    detect("photos/cat.png")                         │
    ├────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │  1. EXTENSION TABLE                                                 │
    │     .png → image/png                        (fast, no I/O)          │
    │                                                                     │
    │  2. CONTENT SNIFFING (unknown or missing extension)                 │
    │     Read the first 512 bytes and look for:                          │
    │     - a known magic signature   \\x89PNG → image/png                 │
    │     - valid UTF-8 text          → text/plain                        │
    │     - anything else             → application/octet-stream          │
    │                                                                     │
    └────────────────────────────────────────────────────────────────────┘

Text types are returned with "; charset=utf-8" so clients don't have to
guess the encoding. text/gemini is the exception: Gemini defaults it to
UTF-8 already.

=============================================================================
"""

from pathlib import Path
from typing import Optional


# =============================================================================
# MIME TYPE DATABASE
# =============================================================================
#
# Maps file extensions (lowercase, with dot) to MIME types.
# Geared towards what actually lives in a Gemini capsule.
#
# =============================================================================

GEMINI_MIME_TYPE = "text/gemini"

MIME_TYPES = {
    # -------------------------------------------------------------------------
    # GEMTEXT AND OTHER TEXT
    # -------------------------------------------------------------------------
    ".gmi": GEMINI_MIME_TYPE,
    ".gemini": GEMINI_MIME_TYPE,
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".csv": "text/csv",
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".xml": "application/xml",
    ".atom": "application/atom+xml",
    ".rss": "application/rss+xml",
    ".json": "application/json",
    ".yaml": "text/yaml",
    ".yml": "text/yaml",
    ".toml": "text/x-toml",

    # -------------------------------------------------------------------------
    # SOURCE CODE (served as text for reading)
    # -------------------------------------------------------------------------
    ".py": "text/x-python",
    ".c": "text/x-c",
    ".h": "text/x-c",
    ".lua": "text/x-lua",
    ".sh": "text/x-shellscript",
    ".patch": "text/x-diff",
    ".diff": "text/x-diff",

    # -------------------------------------------------------------------------
    # IMAGES
    # -------------------------------------------------------------------------
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".webp": "image/webp",
    ".ico": "image/x-icon",
    ".bmp": "image/bmp",

    # -------------------------------------------------------------------------
    # AUDIO / VIDEO
    # -------------------------------------------------------------------------
    ".mp3": "audio/mpeg",
    ".ogg": "audio/ogg",
    ".opus": "audio/opus",
    ".flac": "audio/flac",
    ".wav": "audio/wav",
    ".mp4": "video/mp4",
    ".webm": "video/webm",

    # -------------------------------------------------------------------------
    # DOCUMENTS AND ARCHIVES
    # -------------------------------------------------------------------------
    ".pdf": "application/pdf",
    ".epub": "application/epub+zip",
    ".zip": "application/zip",
    ".tar": "application/x-tar",
    ".gz": "application/gzip",
    ".bz2": "application/x-bzip2",
    ".xz": "application/x-xz",
}

# "I don't know what this is, treat as binary"
DEFAULT_MIME_TYPE = "application/octet-stream"

# =============================================================================
# MAGIC SIGNATURES
# =============================================================================
#
# Leading bytes that identify common formats regardless of file name.
#
# =============================================================================

MAGIC_SIGNATURES = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"%PDF-", "application/pdf"),
    (b"PK\x03\x04", "application/zip"),
    (b"\x1f\x8b", "application/gzip"),
    (b"BZh", "application/x-bzip2"),
    (b"\xfd7zXZ\x00", "application/x-xz"),
    (b"OggS", "audio/ogg"),
    (b"fLaC", "audio/flac"),
    (b"ID3", "audio/mpeg"),
)

SNIFF_LENGTH = 512

# Control bytes that never show up in real text files
_BINARY_BYTES = frozenset(range(0x00, 0x09)) | frozenset(range(0x0E, 0x20)) - {0x1B}


# =============================================================================
# PUBLIC FUNCTIONS
# =============================================================================

def get_mime_type(path: str | Path, default: Optional[str] = None) -> Optional[str]:
    """
    Get the MIME type for a file based on its extension alone.

    Args:
        path: File path or name with extension
        default: Returned when the extension is unknown

    Examples:
        >>> get_mime_type("notes.gmi")
        'text/gemini'
        >>> get_mime_type("/path/to/image.PNG")
        'image/png'
        >>> get_mime_type("unknown.xyz") is None
        True
    """
    if isinstance(path, str):
        path = Path(path)

    extension = path.suffix.lower()
    return MIME_TYPES.get(extension, default)


def sniff(sample: bytes) -> str:
    """
    Guess a MIME type from the first bytes of a file.

    Examples:
        >>> sniff(b"\\x89PNG\\r\\n\\x1a\\n....")
        'image/png'
        >>> sniff(b"hello world\\n")
        'text/plain'
        >>> sniff(b"\\x00\\x01\\x02")
        'application/octet-stream'
    """
    for signature, mime_type in MAGIC_SIGNATURES:
        if sample.startswith(signature):
            return mime_type

    if any(byte in _BINARY_BYTES for byte in sample):
        return DEFAULT_MIME_TYPE

    try:
        sample.decode("utf-8")
    except UnicodeDecodeError as e:
        # The sample may end in the middle of a multi-byte character
        if e.start < len(sample) - 3:
            return DEFAULT_MIME_TYPE

    return "text/plain"


def is_text_type(mime_type: str) -> bool:
    """
    Check if a MIME type represents text content.

    Examples:
        >>> is_text_type("text/plain")
        True
        >>> is_text_type("application/rss+xml")
        True
        >>> is_text_type("image/png")
        False
    """
    if mime_type.startswith("text/"):
        return True

    text_types = {
        "application/json",
        "application/xml",
        "application/atom+xml",
        "application/rss+xml",
        "image/svg+xml",
    }

    return mime_type in text_types


def detect(path: str | Path, charset: str = "utf-8") -> str:
    """
    Detect the content type of a file: the MIME-detection collaborator
    used by the filesystem handler.

    Looks at the extension first and falls back to sniffing the file's
    first bytes. A file that can't be read for sniffing is reported as
    application/octet-stream; the caller reads it right after and deals
    with the error there.

    Args:
        path: File to inspect
        charset: Charset parameter added to text types

    Returns:
        Content type string suitable for a Gemini meta line

    Examples:
        >>> detect("index.gmi")
        'text/gemini'
        >>> detect("notes.txt")
        'text/plain; charset=utf-8'
    """
    mime_type = get_mime_type(path)

    if mime_type is None:
        try:
            with open(path, "rb") as f:
                mime_type = sniff(f.read(SNIFF_LENGTH))
        except OSError:
            mime_type = DEFAULT_MIME_TYPE

    if mime_type != GEMINI_MIME_TYPE and is_text_type(mime_type):
        return f"{mime_type}; charset={charset}"

    return mime_type
