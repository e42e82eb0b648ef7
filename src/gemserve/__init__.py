"""
=============================================================================
GEMSERVE - A Gemini Capsule Server
=============================================================================

Serves a directory tree over the Gemini protocol: files, CGI scripts,
index files and generated directory listings, behind TLS.

=============================================================================
PROJECT OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      GEMSERVE ARCHITECTURE                           │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   1. TLS SOCKET SERVER                                               │
    │      - TCP accept loop, TLS handshake, optional client certificates  │
    │      - One request line per connection, then close                   │
    │                                                                      │
    │   2. WORKER POOL                                                     │
    │      - Fixed number of worker threads, bounded queue                 │
    │      - Full queue → 41 SERVER UNAVAILABLE                            │
    │                                                                      │
    │   3. GEMINI PROTOCOL                                                 │
    │      - Request line parsing and validation                           │
    │      - (status, meta, body) responses                                │
    │                                                                      │
    │   4. ROUTING + MIDDLEWARE                                            │
    │      - Path patterns (:name, *wildcard)                              │
    │      - Access logging                                                │
    │                                                                      │
    │   5. FILESYSTEM HANDLER                                              │
    │      - Segment-by-segment path resolution with exclusions            │
    │      - CGI, gemtext, MIME detection, directory listings              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    gemserve/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m gemserve)
    ├── server.py            # Main GeminiServer class
    ├── config.py            # ServerConfig, FilesystemConfig
    ├── core/                # Low-level components
    │   ├── socket_server.py # TCP + TLS socket handling
    │   ├── connection.py    # Connection wrapper
    │   └── worker_pool.py   # Worker threads
    ├── gemini/              # Gemini protocol components
    │   ├── request.py       # Request line parsing
    │   ├── response.py      # Responses and tagged results
    │   ├── router.py        # URL routing
    │   ├── status_codes.py  # Gemini status enum
    │   ├── mime_types.py    # Content type detection
    │   └── url.py           # Percent-escaping
    ├── middleware/          # Middleware components
    │   ├── base.py          # Base middleware classes
    │   └── logging.py       # Access log
    └── handlers/            # Request handlers
        ├── filesystem.py    # Directory tree serving
        └── cgi.py           # CGI script execution

=============================================================================
QUICK START
=============================================================================

    from gemserve import GeminiServer, ServerConfig
    from gemserve.gemini import success
    from gemserve.middleware import LoggingMiddleware

    server = GeminiServer(ServerConfig(
        hostname="example.org",
        certfile="cert.pem",
        keyfile="key.pem",
    ))
    server.use(LoggingMiddleware())

    @server.route("/status")
    def status(request):
        return success("# All systems nominal\\n")

    server.mount("/", "/srv/gemini")
    server.run()

=============================================================================
"""

__version__ = "1.0.0"

from .server import GeminiServer
from .config import ServerConfig, FilesystemConfig

__all__ = ["GeminiServer", "ServerConfig", "FilesystemConfig", "__version__"]
