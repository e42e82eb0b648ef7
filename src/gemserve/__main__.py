"""
=============================================================================
COMMAND-LINE ENTRY POINT
=============================================================================

    python -m gemserve --root ./capsule --cert cert.pem --key key.pem

Environment variables (GEMINI_HOST, GEMINI_PORT, ...) provide the
defaults; command-line flags override them.

=============================================================================
"""

import argparse
import sys
import os

from . import __version__
from .server import GeminiServer
from .config import ServerConfig
from .middleware import LoggingMiddleware


def build_parser(defaults: ServerConfig) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gemserve",
        description="Serve a directory over the Gemini protocol",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m gemserve --root ./capsule --cert cert.pem --key key.pem
  python -m gemserve -r ./capsule --hostname example.org --host 0.0.0.0
  python -m gemserve -r ./capsule --no-cgi --extension .gmi --index index.gmi
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # Content
    # ─────────────────────────────────────────────────────────────────────
    parser.add_argument(
        "--root", "-r",
        default=os.getenv("GEMINI_ROOT", "."),
        help="Directory to serve at / (default: current directory)"
    )
    parser.add_argument(
        "--index",
        default=None,
        help="Index file name (default: index.gemini)"
    )
    parser.add_argument(
        "--extension",
        default=None,
        help="File name suffix served as text/gemini (default: .gemini)"
    )
    parser.add_argument(
        "--no-cgi",
        action="store_true",
        help="Serve executable files as plain files instead of running them"
    )

    # ─────────────────────────────────────────────────────────────────────
    # Network
    # ─────────────────────────────────────────────────────────────────────
    parser.add_argument(
        "--host", "-H",
        default=defaults.host,
        help=f"Address to bind to (default: {defaults.host})"
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=defaults.port,
        help=f"Port to listen on (default: {defaults.port})"
    )
    parser.add_argument(
        "--hostname",
        default=defaults.hostname,
        help=f"Host name requests must be addressed to (default: {defaults.hostname})"
    )

    # ─────────────────────────────────────────────────────────────────────
    # TLS
    # ─────────────────────────────────────────────────────────────────────
    parser.add_argument("--cert", default=defaults.certfile, help="Server certificate (PEM)")
    parser.add_argument("--key", default=defaults.keyfile, help="Server private key (PEM)")
    parser.add_argument(
        "--client-ca",
        default=defaults.client_ca_file,
        help="CA bundle for verifying client certificates"
    )

    # ─────────────────────────────────────────────────────────────────────
    # Runtime
    # ─────────────────────────────────────────────────────────────────────
    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=defaults.workers,
        help=f"Number of worker threads (default: {defaults.workers})"
    )
    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=defaults.log_level.upper(),
        help="Logging level (default: INFO)"
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"gemserve {__version__}"
    )

    return parser


def main(argv=None):
    defaults = ServerConfig.from_env()
    args = build_parser(defaults).parse_args(argv)

    if not os.path.isdir(args.root):
        print(f"Error: not a directory: {args.root}", file=sys.stderr)
        sys.exit(1)

    config = ServerConfig(
        host=args.host,
        port=args.port,
        hostname=args.hostname,
        certfile=args.cert,
        keyfile=args.key,
        client_ca_file=args.client_ca,
        workers=args.workers,
        timeout=defaults.timeout,
        log_level=args.log_level,
    )

    try:
        server = GeminiServer(config)
        server.use(LoggingMiddleware(log_format=config.log_format))
        server.mount(
            "/",
            args.root,
            index=args.index,
            extension=args.extension,
            cgi=not args.no_cgi,
        )
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    try:
        server.run()
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
