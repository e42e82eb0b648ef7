"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the Gemini server and its filesystem
routes.

=============================================================================
TWO KINDS OF CONFIGURATION
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   ServerConfig                  FilesystemConfig                     │
    │   ────────────                  ────────────────                     │
    │   one per process               one per mounted directory            │
    │                                                                      │
    │   host, port, TLS files,        directory, index file,               │
    │   workers, log level            text extension, hidden names         │
    │                                                                      │
    │   validate() at startup         init() at startup                    │
    │                                   └──► FilesystemRules (frozen)     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

FilesystemConfig is what the user writes. FilesystemRules is what the
handler uses: defaults filled in, patterns compiled, frozen. It is built
once and shared by every request, which is safe precisely because nothing
can change it afterwards.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    Priority (highest to lowest):

    1. Command-line arguments      python -m gemserve --port 1966
    2. Environment variables       GEMINI_PORT=1966 python -m gemserve
    3. Default values (in these dataclasses)

=============================================================================
"""

import os
import re
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from . import __version__


logger = logging.getLogger(__name__)


DEFAULT_INDEX = "index.gemini"
DEFAULT_EXTENSION = ".gemini"
DEFAULT_NO_ACCESS = (r"^\.",)
DEFAULT_SERVER_NAME = f"gemserve/{__version__}"


class ConfigError(ValueError):
    """Raised when a configuration value can't be used."""


@dataclass
class ServerConfig:
    """
    Configuration for the Gemini server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, hostname, backlog, timeout

    TLS
    - certfile, keyfile, client_ca_file

    WORKERS
    - workers, queue_size

    LOGGING
    - log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """
    The IP address to bind to.
    - "127.0.0.1" - Localhost only (development)
    - "0.0.0.0" - All network interfaces
    """

    port: int = 1965
    """
    The port number to listen on. 1965 is the Gemini default
    (the year of the first crewed Gemini flight).
    """

    hostname: str = "localhost"
    """
    Host name this server answers for. Requests for any other host
    are refused with 53 PROXY REQUEST REFUSED.
    """

    backlog: int = 128
    """Maximum number of queued connections."""

    timeout: Optional[float] = 30.0
    """
    Socket timeout in seconds for reading the request line and
    writing the response. None = blocking forever.
    """

    max_request_size: int = 1024
    """Maximum URL length in bytes. Fixed at 1024 by the protocol."""

    # ─────────────────────────────────────────────────────────────────────
    # TLS
    # ─────────────────────────────────────────────────────────────────────

    certfile: Optional[str] = None
    """Server certificate (PEM). Gemini requires TLS."""

    keyfile: Optional[str] = None
    """Private key for certfile (PEM)."""

    client_ca_file: Optional[str] = None
    """
    CA bundle for client certificates. When set, clients are asked for a
    certificate and verified ones are passed on as ClientIdentity.
    """

    # ─────────────────────────────────────────────────────────────────────
    # WORKERS
    # ─────────────────────────────────────────────────────────────────────

    workers: int = 16
    """
    Number of worker threads. Each request is handled start to finish by
    one worker; filesystem calls block that worker only.
    """

    queue_size: int = 100
    """
    Connections waiting for a worker. When full, new connections get
    41 SERVER UNAVAILABLE right away.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""

    log_format: str = "text"
    """Access log format: 'text' or 'json'."""

    server_name: str = DEFAULT_SERVER_NAME
    """Server identity, passed to CGI scripts as SERVER_SOFTWARE."""

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        GEMINI_HOST        Bind address (default: 127.0.0.1)
        GEMINI_PORT        Port (default: 1965)
        GEMINI_HOSTNAME    Served host name (default: localhost)
        GEMINI_CERT        Server certificate file
        GEMINI_KEY         Server key file
        GEMINI_CLIENT_CA   Client certificate CA bundle
        GEMINI_WORKERS     Worker threads (default: 16)
        GEMINI_TIMEOUT     Socket timeout in seconds (default: 30)
        GEMINI_LOG_LEVEL   Logging level (default: INFO)

        =====================================================================
        """
        return cls(
            host=os.getenv("GEMINI_HOST", "127.0.0.1"),
            port=int(os.getenv("GEMINI_PORT", "1965")),
            hostname=os.getenv("GEMINI_HOSTNAME", "localhost"),
            certfile=os.getenv("GEMINI_CERT"),
            keyfile=os.getenv("GEMINI_KEY"),
            client_ca_file=os.getenv("GEMINI_CLIENT_CA"),
            workers=int(os.getenv("GEMINI_WORKERS", "16")),
            timeout=float(os.getenv("GEMINI_TIMEOUT", "30")),
            log_level=os.getenv("GEMINI_LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Called at startup so a typo fails immediately, not on the
        first request.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.workers < 1:
            raise ValueError("workers must be >= 1")

        if self.queue_size < 1:
            raise ValueError("queue_size must be >= 1")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if bool(self.certfile) != bool(self.keyfile):
            raise ValueError("certfile and keyfile must be given together")

        if self.log_format not in ("text", "json"):
            raise ValueError(f"Invalid log_format: {self.log_format}")


@dataclass(frozen=True)
class FilesystemRules:
    """
    Compiled, read-only configuration of one filesystem route.

    Built by FilesystemConfig.compile(); shared across all requests.
    """

    directory: Path
    index: str
    extension: re.Pattern
    no_access: tuple[re.Pattern, ...]
    version_tag: str = DEFAULT_SERVER_NAME
    cgi: bool = True
    cgi_timeout: float = 10.0

    def is_excluded(self, name: str) -> bool:
        """
        Check a single path segment against the exclusion patterns.

        Patterns are searched within the segment only, never across
        the whole path: r"^\\." hides ".git" but not "a.git".
        """
        return any(pattern.search(name) for pattern in self.no_access)

    def is_text(self, name: str) -> bool:
        """Check if a file name carries the text (gemtext) extension."""
        return self.extension.search(name) is not None


@dataclass
class FilesystemConfig:
    """
    Configuration for a directory served over Gemini.

    Unset fields are filled with defaults by init():

        FilesystemConfig(directory="/srv/gemini")

        index      → "index.gemini"
        extension  → ".gemini"
        no_access  → [r"^\\."]      (hide dot files and dot directories)

    The extension is a literal suffix, not a regex: ".gmi" matches
    "notes.gmi" but not "notesxgmi". Exclusions ARE regexes, each applied
    to one path segment at a time.
    """

    directory: str
    index: Optional[str] = None
    extension: Optional[str] = None
    no_access: Optional[List[str]] = None
    version_tag: str = DEFAULT_SERVER_NAME
    cgi: bool = True
    cgi_timeout: float = 10.0

    _rules: Optional[FilesystemRules] = field(default=None, init=False, repr=False, compare=False)

    def compile(self) -> FilesystemRules:
        """
        Fill in defaults and compile the patterns.

        The result is cached: calling compile() again returns the same
        FilesystemRules object.

        Raises:
            ConfigError: If a pattern doesn't compile.
        """
        if self._rules is not None:
            return self._rules

        if self.index is None:
            self.index = DEFAULT_INDEX
        if self.extension is None:
            self.extension = DEFAULT_EXTENSION
        if self.no_access is None:
            self.no_access = list(DEFAULT_NO_ACCESS)

        if not self.extension:
            raise ConfigError("extension must not be empty")
        if not self.index or "/" in self.index:
            raise ConfigError(f"Invalid index file name: {self.index!r}")

        # Magic characters in the suffix are taken literally
        extension = re.compile(re.escape(self.extension) + r"\Z")

        no_access = []
        for pattern in self.no_access:
            try:
                no_access.append(re.compile(pattern))
            except re.error as e:
                raise ConfigError(f"Invalid no_access pattern {pattern!r}: {e}") from e

        self._rules = FilesystemRules(
            directory=Path(self.directory),
            index=self.index,
            extension=extension,
            no_access=tuple(no_access),
            version_tag=self.version_tag,
            cgi=self.cgi,
            cgi_timeout=self.cgi_timeout,
        )
        return self._rules

    def init(self) -> bool:
        """
        Initialize the configuration once at startup.

        Same as compile(), but reports failure as False (and an error
        log line) instead of raising.
        """
        try:
            self.compile()
        except ConfigError as e:
            logger.error(f"Filesystem configuration for {self.directory}: {e}")
            return False
        return True

    @property
    def rules(self) -> FilesystemRules:
        """The compiled rules, compiling on first access."""
        return self.compile()
