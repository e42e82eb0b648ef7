"""
=============================================================================
HANDLERS MODULE
=============================================================================

Built-in request handlers.

A handler takes a GeminiRequest and returns a GeminiResponse:

    ┌─────────────────────────────────────────────────────────────────────┐
    │ Type              │ Use Case                                        │
    ├─────────────────────────────────────────────────────────────────────┤
    │ Function Handler  │ Simple, stateless pages                         │
    │                   │ def hello(req): return success("# Hi\\n")       │
    ├─────────────────────────────────────────────────────────────────────┤
    │ Class Handler     │ Handlers with configuration                     │
    │                   │ FilesystemHandler, CGIRunner                    │
    ├─────────────────────────────────────────────────────────────────────┤
    │ Factory Function  │ Create configured handlers                      │
    │                   │ serve_directory("/srv/gemini")                  │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
BUILT-IN HANDLERS
=============================================================================

1. FilesystemHandler / serve_directory()
   - Serve a directory tree
   - Hidden names (exclusion patterns)
   - Index files and generated listings
   - Executable files run as CGI

2. CGIRunner
   - Runs one script per request with a CGI/1.1 environment
   - Accepts either a Gemini header line or CGI headers as output

=============================================================================
"""

from .cgi import CGIRunner, parse_cgi_output
from .filesystem import FilesystemHandler, serve_directory

__all__ = [
    "CGIRunner",
    "parse_cgi_output",
    "FilesystemHandler",
    "serve_directory",
]
