"""
=============================================================================
FILESYSTEM HANDLER
=============================================================================

Serves a directory tree over Gemini: files, CGI scripts, index files and
generated directory listings.

=============================================================================
HOW A REQUEST IS RESOLVED
=============================================================================

The matched path is walked ONE SEGMENT AT A TIME from the root directory.
Nothing is resolved in one go, so every intermediate directory gets
checked on its own:

    Request: /docs/img/cat.png     root: /srv/gemini

    ┌─────────────────────────────────────────────────────────────────────┐
    │  segment   excluded?   stat                      result              │
    ├─────────────────────────────────────────────────────────────────────┤
    │  docs      no          /srv/gemini/docs          dir, +x → continue  │
    │  img       no          /srv/gemini/docs/img      dir, +x → continue  │
    │  cat.png   no          .../img/cat.png           file → SERVE        │
    └─────────────────────────────────────────────────────────────────────┘

    SCANNING ──► SCANNING      (directory with execute permission)
        │
        ├──────► SERVE_FILE    (regular file: CGI or read it)
        ├──────► FAIL          (excluded, stat failed, no +x, other type)
        └──────► AT_DIRECTORY  (ran out of segments on a directory)

=============================================================================
SECURITY: EXCLUSIONS COME FIRST
=============================================================================

A segment matching an exclusion pattern (by default: any name starting
with '.') is rejected BEFORE the filesystem is touched:

    /.git/config          → 51 Not found     (no stat, no log line)
    /.well-known/x        → 51 Not found

The answer is the same whether .git exists or not, so a client can't
probe for hidden files. Likewise a missing file, a directory without
execute permission and an unreadable file all answer 51.

=============================================================================
WHAT A FILE BECOMES
=============================================================================

    executable?  ──yes──►  CGI script runs, its response is returned as-is
        │
        no
        │
    readable?    ──no───►  51 Not found
        │
        yes
        │
    *.gemini?    ──yes──►  20 text/gemini + file bytes
        │
        no
        │
    detect()     ───────►  20 <detected type> + file bytes

Execute permission wins over the extension: an executable "menu.gemini"
is run, never read.

=============================================================================
DIRECTORIES
=============================================================================

    /docs    → 31 /docs/                 (always redirect to the slash form,
                                           so relative links resolve)
    /docs/   → docs/index.gemini          (if present and readable)
    /docs/   → generated listing          (otherwise)

A generated listing:

    Index of docs
    ---------------------------

    => img/\timg/                  ← directories first, sorted
                                   ← blank line (only if any directory)
    => a.gemini\ta.gemini          ← then files, sorted
    => b.txt\tb.txt

    ---------------------------
    gemserve/1.0.0

Entries that are excluded or inaccessible are simply left out.

=============================================================================
"""

import errno
import logging
import os
import stat
from dataclasses import dataclass
from typing import Callable, Iterator, Optional, Union

from ..config import FilesystemConfig, FilesystemRules
from ..gemini.mime_types import GEMINI_MIME_TYPE, detect
from ..gemini.request import ClientIdentity, GeminiRequest, Location
from ..gemini.response import (
    CRLF,
    Content,
    Failure,
    GeminiResponse,
    Outcome,
    redirect,
    to_response,
)
from ..gemini.status_codes import GeminiStatus
from ..gemini.url import escape
from .cgi import CGIRunner


logger = logging.getLogger(__name__)


# Collaborator signatures
Detector = Callable[[str], str]
CGIExecutor = Callable[[Optional[ClientIdentity], str, Location], GeminiResponse]

LISTING_SEPARATOR = "---------------------------"

NOT_FOUND = Failure.of(GeminiStatus.NOT_FOUND)
TEMPORARY_FAILURE = Failure.of(GeminiStatus.TEMPORARY_FAILURE)


# =============================================================================
# RESOLUTION RESULTS
# =============================================================================

@dataclass(frozen=True)
class ServeFile:
    """The walk reached a regular file."""
    path: str


@dataclass(frozen=True)
class AtDirectory:
    """The walk ran out of segments while on a directory."""
    path: str


Resolution = Union[ServeFile, AtDirectory, Failure]


def _reason(error: Exception) -> str:
    """Errno name of an error, e.g. 'ENOENT'."""
    code = getattr(error, "errno", None)
    if code is None:
        # os.stat raises ValueError for an embedded NUL
        return "EINVAL"
    return errno.errorcode.get(code, str(code))


class PathWalk:
    """
    The segments of a matched path, paired with their cumulative paths.

        PathWalk("/srv/gemini", "docs//img/")

        → ("/srv/gemini/docs", "docs"), ("/srv/gemini/docs/img", "img")

    Empty segments are skipped. Every iteration starts over from the
    root, so a walk can be repeated and never shares state between
    requests.
    """

    def __init__(self, root: str, match: str):
        self.root = root
        self.segments = tuple(segment for segment in match.split("/") if segment)

    def __iter__(self) -> Iterator[tuple[str, str]]:
        path = self.root
        for segment in self.segments:
            path = os.path.join(path, segment)
            yield path, segment

    def __len__(self) -> int:
        return len(self.segments)


class FilesystemHandler:
    """
    Handler serving one directory tree.

    =========================================================================
    USAGE
    =========================================================================

        config = FilesystemConfig(directory="/srv/gemini")
        config.init()

        router.add_route("/*path", FilesystemHandler(config))

    The handler takes the first route capture (request.match[0]) as the
    path relative to the directory. Mounting at "/docs/*path" serves
    /srv/gemini/... under gemini://host/docs/....

    =========================================================================
    COLLABORATORS
    =========================================================================

        cgi:     (identity, file_path, location) → GeminiResponse
                 Runs executable files. Defaults to CGIRunner.

        detect:  (file_path) → content type
                 Classifies non-gemtext files. Defaults to mime_types.detect.

    Both are plain callables so tests (or a different server) can swap
    them out.

    =========================================================================
    """

    def __init__(
        self,
        config: Union[FilesystemConfig, FilesystemRules],
        cgi: Optional[CGIExecutor] = None,
        detect: Optional[Detector] = None,
    ):
        if isinstance(config, FilesystemConfig):
            config = config.compile()

        self.rules: FilesystemRules = config
        self.root = str(config.directory)
        self.cgi = cgi or CGIRunner(timeout=config.cgi_timeout)
        self.detect = detect or _default_detect

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    def __call__(self, request: GeminiRequest) -> GeminiResponse:
        return self.handle(request)

    def handle(self, request: GeminiRequest) -> GeminiResponse:
        """Router entry point."""
        match = request.match[0] if request.match else ""
        return self.respond(request.identity, request.location, match)

    def respond(
        self,
        identity: Optional[ClientIdentity],
        location: Location,
        match: str,
    ) -> GeminiResponse:
        """
        Produce the response for a matched path.

        Args:
            identity: Client certificate identity, forwarded to CGI.
            location: Request path and query. The path decides the
                      trailing-slash redirect.
            match: Path captured by the route, relative to the root.

        Returns:
            The (status, meta, body) response. Never raises for
            filesystem problems; those become 4x/5x responses.
        """
        resolution = self.resolve(match)

        if isinstance(resolution, Failure):
            return resolution.to_response()

        if isinstance(resolution, ServeFile):
            return to_response(self.serve(resolution.path, identity, location))

        # ─────────────────────────────────────────────────────────────────
        # AT A DIRECTORY
        # ─────────────────────────────────────────────────────────────────
        redirected = self.normalize(location)
        if redirected is not None:
            return redirected

        index_path = os.path.join(resolution.path, self.rules.index)
        if os.path.isfile(index_path) and os.access(index_path, os.R_OK):
            return to_response(self.serve(index_path, identity, location))

        return to_response(self.synthesize(resolution.path, match))

    # =========================================================================
    # PATH RESOLVER
    # =========================================================================

    def resolve(self, match: str) -> Resolution:
        """
        Walk the matched path segment by segment.

        Returns:
            ServeFile, AtDirectory, or a 51 Failure.
        """
        path = self.root

        for path, segment in PathWalk(self.root, match):
            # Checked before any stat: the answer must not depend on
            # what exists on disk
            if segment in (".", "..") or self.rules.is_excluded(segment):
                return NOT_FOUND

            try:
                info = os.stat(path)
            except (OSError, ValueError) as e:
                logger.error(f"stat({path!r}) = {_reason(e)}")
                return NOT_FOUND

            if stat.S_ISDIR(info.st_mode):
                if not os.access(path, os.X_OK):
                    logger.error(f"access({os.path.relpath(path, self.root)!r}) failed")
                    return NOT_FOUND

            elif stat.S_ISREG(info.st_mode):
                return ServeFile(path)

            else:
                # Socket, FIFO, device...
                return NOT_FOUND

        return AtDirectory(path)

    # =========================================================================
    # CONTENT SERVER
    # =========================================================================

    def serve(
        self,
        file_path: str,
        identity: Optional[ClientIdentity],
        location: Location,
    ) -> Outcome:
        """
        Serve a resolved regular file.

        Files that are both readable and executable are handed to the CGI
        collaborator and its response is returned untouched.
        """
        if self.rules.cgi and os.access(file_path, os.R_OK | os.X_OK):
            return self.cgi(identity, file_path, location)

        if not os.access(file_path, os.R_OK):
            return NOT_FOUND

        if self.rules.is_text(os.path.basename(file_path)):
            mime = GEMINI_MIME_TYPE
        else:
            mime = self.detect(file_path)

        try:
            with open(file_path, "rb") as f:
                body = f.read()
        except OSError:
            # Removed or changed between the access check and open()
            return TEMPORARY_FAILURE

        return Content(mime, body)

    # =========================================================================
    # TRAILING-SLASH NORMALIZER
    # =========================================================================

    def normalize(self, location: Location) -> Optional[GeminiResponse]:
        """
        Redirect "/docs" to "/docs/".

        Returns:
            A 31 redirect, or None if the path already ends in '/'.
        """
        if location.is_directory_path:
            return None
        return redirect(escape(location.path + "/"), permanent=True)

    # =========================================================================
    # INDEX SYNTHESIZER
    # =========================================================================

    def synthesize(self, directory: str, match: str) -> Outcome:
        """
        Generate a gemtext listing of a directory.

        Only entries passing the exclusion check and the access check
        (execute for directories, read for files) are listed. Names are
        sorted by their raw bytes, directories before files.
        """
        try:
            names = os.listdir(directory)
        except OSError as e:
            logger.error(f"listdir({directory!r}) = {_reason(e)}")
            return NOT_FOUND

        directories: list[str] = []
        files: list[str] = []

        for name in names:
            kind = self._classify(directory, name)
            if kind == "dir":
                directories.append(name)
            elif kind == "file":
                files.append(name)

        # os.fsencode gives back the on-disk bytes, including names that
        # aren't valid UTF-8
        directories.sort(key=os.fsencode)
        files.sort(key=os.fsencode)

        lines = [
            f"Index of {match}",
            LISTING_SEPARATOR,
            "",
        ]

        for name in directories:
            lines.append(f"=> {escape(name)}/\t{name}/")

        if directories:
            lines.append("")

        for name in files:
            lines.append(f"=> {escape(name)}\t{name}")

        lines.append("")
        lines.append(LISTING_SEPARATOR)
        lines.append(self.rules.version_tag)

        body = CRLF.join(lines) + CRLF
        return Content(GEMINI_MIME_TYPE, body.encode("utf-8", errors="surrogateescape"))

    def _classify(self, directory: str, name: str) -> Optional[str]:
        """
        Decide whether a directory entry is listed, and as what.

        Returns:
            "dir", "file", or None (left out of the listing).
        """
        if self.rules.is_excluded(name):
            return None

        path = os.path.join(directory, name)
        try:
            info = os.stat(path)
        except OSError:
            return None

        if stat.S_ISDIR(info.st_mode):
            return "dir" if os.access(path, os.X_OK) else None
        if stat.S_ISREG(info.st_mode):
            return "file" if os.access(path, os.R_OK) else None
        return None


def _default_detect(file_path: str) -> str:
    return detect(file_path)


# =============================================================================
# MODULE-LEVEL CONTRACT
# =============================================================================
#
# For callers that hold a FilesystemConfig rather than a handler object:
#
#     if not init(config):
#         sys.exit(1)
#     response = handle(config, identity, location, "docs/notes.gemini")
#
# =============================================================================

def init(config: FilesystemConfig) -> bool:
    """Fill in defaults and compile patterns. False if a pattern is invalid."""
    return config.init()


def handle(
    config: FilesystemConfig,
    identity: Optional[ClientIdentity],
    location: Location,
    match: str,
) -> tuple:
    """
    Handle one request against a configured directory.

    Returns:
        The (status, meta, body) triple.
    """
    return FilesystemHandler(config).respond(identity, location, match).as_tuple()


def serve_directory(directory: str, **kwargs) -> FilesystemHandler:
    """
    Create a filesystem handler for a directory.

    Factory function for convenient handler creation.

    Args:
        directory: Root directory to serve.
        **kwargs: Additional FilesystemConfig fields (index, extension,
                  no_access, version_tag, cgi, cgi_timeout).

    Example:
        router.add_route("/*path", serve_directory("/srv/gemini"))
    """
    return FilesystemHandler(FilesystemConfig(directory, **kwargs))
