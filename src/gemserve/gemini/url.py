"""
=============================================================================
URL PATH ESCAPING
=============================================================================

File names go straight into generated links and redirects:

    => my%20notes.gemini\tmy notes.gemini
       ────────────────── ───────────────
       escaped link        raw label (shown to humans)

A name may contain anything the filesystem allows: spaces, '%', '#', '?',
non-ASCII text, even bytes that aren't valid UTF-8 at all. escape() turns
any of those into a path that a client will resolve back to exactly the
same name, and unescape() is its exact inverse:

    unescape(escape(name)) == name      # for every name

=============================================================================
UNDECODABLE BYTES
=============================================================================

os.listdir() hands undecodable bytes back as lone surrogates
("surrogateescape"), e.g. b"caf\\xe9" → "caf\\udce9". We encode with the same
error handler, so the original byte comes back out as "%E9" and decodes
back to the same surrogate.

=============================================================================
"""

from urllib.parse import quote, unquote


# Characters left as-is besides the unreserved set (A-Z a-z 0-9 - . _ ~).
# ':' is escaped so a name like "a:b" can't be mistaken for a URL scheme
# when it appears as the first segment of a relative link.
SAFE_PATH_CHARS = "/!$&'()*+,;=@"


def escape(text: str) -> str:
    """
    Percent-encode a path (or a single name) for use in a link.

    Examples:
        >>> escape("my notes.gemini")
        'my%20notes.gemini'
        >>> escape("/docs/100%/")
        '/docs/100%25/'
    """
    return quote(text, safe=SAFE_PATH_CHARS, encoding="utf-8", errors="surrogateescape")


def unescape(text: str) -> str:
    """
    Decode a percent-encoded path.

    Invalid UTF-8 sequences decode to surrogates rather than U+FFFD,
    which keeps the round trip with escape() exact.
    """
    return unquote(text, encoding="utf-8", errors="surrogateescape")


def remove_dot_segments(path: str) -> str:
    """
    Remove "." and ".." segments from a path (RFC 3986 section 5.2.4).

    ".." never climbs above the root of an absolute path.

    Examples:
        >>> remove_dot_segments("/a/b/../c")
        '/a/c'
        >>> remove_dot_segments("/../../etc/passwd")
        '/etc/passwd'
        >>> remove_dot_segments("/docs/.")
        '/docs/'
    """
    segments = path.split("/")
    output: list[str] = []

    for segment in segments:
        if segment == ".":
            continue
        if segment == "..":
            # Keep the leading "" of an absolute path
            if len(output) > 1 or (output and output[0] != ""):
                output.pop()
            continue
        output.append(segment)

    # "/a/.." and "/a/." both name a directory: keep the trailing slash
    if segments[-1] in (".", ".."):
        output.append("")

    return "/".join(output)
