"""
=============================================================================
GEMINI SERVER
=============================================================================

The main server class: ties the socket server, worker pool, request
parser, router and middleware together.

=============================================================================
REQUEST LIFECYCLE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │  1. SocketServer accepts, wraps the socket for TLS                   │
    │  2. WorkerPool queues the connection       (queue full → 41)         │
    │  3. Worker: TLS handshake, client certificate → ClientIdentity       │
    │  4. Worker: read one request line          (too long → 59)           │
    │  5. RequestParser → GeminiRequest          (bad → 59, foreign → 53)  │
    │  6. Middleware → Router → handler          (exception → 40)          │
    │  7. Send "<status> <meta>\\r\\n" [+ body], close                       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Steps 5-6 are available without any sockets as handle_request_line(),
which is what the tests use.

=============================================================================
"""

import logging
from typing import Optional, Callable

from .config import ServerConfig, FilesystemConfig
from .core import SocketServer, Connection, RequestTooLarge, WorkerPool
from .gemini import (
    ClientIdentity,
    GeminiRequest,
    GeminiResponse,
    GeminiParseError,
    GeminiStatus,
    RequestParser,
    Router,
    failure,
    temporary_failure,
)
from .handlers import CGIRunner, FilesystemHandler
from .middleware import MiddlewarePipeline, Middleware


logger = logging.getLogger(__name__)


class GeminiServer:
    """
    Gemini server.

    =========================================================================
    USAGE
    =========================================================================

        server = GeminiServer(ServerConfig(
            hostname="example.org",
            certfile="cert.pem",
            keyfile="key.pem",
        ))

        server.use(LoggingMiddleware())

        @server.route("/status")
        def status(request):
            return success("# OK\\n")

        server.mount("/", "/srv/gemini")

        server.run()

    =========================================================================
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        self.config = config or ServerConfig()
        self.config.validate()

        self._socket_server = SocketServer(self.config)
        self._worker_pool = WorkerPool(
            workers=self.config.workers,
            queue_size=self.config.queue_size,
        )
        self._parser = RequestParser(
            hostname=self.config.hostname,
            port=self.config.port or None,
            max_request_size=self.config.max_request_size,
        )
        self._router = Router()
        self._middleware = MiddlewarePipeline()
        self._handler: Optional[Callable[[GeminiRequest], GeminiResponse]] = None

    # =========================================================================
    # CONFIGURATION
    # =========================================================================

    def use(self, middleware: Middleware) -> "GeminiServer":
        """Add middleware. First added runs outermost."""
        self._middleware.add(middleware)
        self._handler = None
        return self

    @property
    def router(self) -> Router:
        return self._router

    def route(self, path: str, **kwargs):
        """Decorator registering a handler for a path pattern."""
        return self._router.route(path, **kwargs)

    def add_route(self, path: str, handler, **kwargs):
        return self._router.add_route(path, handler, **kwargs)

    def mount(self, prefix: str, directory: str, **options) -> FilesystemHandler:
        """
        Serve a directory under a URL prefix.

            server.mount("/", "/srv/gemini")
            server.mount("/docs", "/usr/share/doc/capsule", cgi=False)

        Args:
            prefix: URL path prefix.
            directory: Directory to serve.
            **options: FilesystemConfig fields (index, extension, no_access, ...)

        Raises:
            ConfigError: If an option doesn't compile.
        """
        fs_config = FilesystemConfig(directory, **options)
        rules = fs_config.compile()

        cgi = CGIRunner(
            server_name=self.config.server_name,
            hostname=self.config.hostname,
            port=self.config.port,
            timeout=rules.cgi_timeout,
        )
        handler = FilesystemHandler(rules, cgi=cgi)

        pattern = prefix.rstrip("/") + "/*path"
        self._router.add_route(pattern, handler, name=f"filesystem:{directory}")
        logger.debug(f"Mounted {directory} at {pattern}")
        return handler

    # =========================================================================
    # REQUEST HANDLING
    # =========================================================================

    def _get_handler(self) -> Callable[[GeminiRequest], GeminiResponse]:
        if self._handler is None:
            self._handler = self._middleware.wrap(self._router.handle)
        return self._handler

    def handle_request_line(
        self,
        raw: bytes,
        client_address: tuple[str, int] = ("", 0),
        identity: Optional[ClientIdentity] = None,
    ) -> GeminiResponse:
        """
        Parse and dispatch one request line.

        Never raises: parse errors become 59/53 and handler exceptions 40.
        """
        try:
            request = self._parser.parse(raw, client_address, identity)
        except GeminiParseError as e:
            logger.info(f"Rejected request from {client_address[0] or '-'}: {e}")
            return failure(e.status, str(e))

        try:
            return self._get_handler()(request)
        except Exception as e:
            logger.exception(f"Handler error for {request.url}: {e}")
            return temporary_failure()

    def _handle_connection(self, conn: Connection):
        """Queue a connection for a worker (runs in the accept loop)."""
        submitted = self._worker_pool.submit(
            self._process_connection,
            args=(conn,),
            timeout=self.config.timeout,
            on_drop=self._reject_connection,
        )

        if not submitted:
            logger.warning(f"[{conn.id}] Worker queue full, rejecting connection")
            self._reject_connection(conn)

    def _reject_connection(self, conn: Connection):
        """Answer 41 and close, for connections no worker will serve."""
        with conn:
            try:
                conn.handshake()
            except OSError:
                return
            self._send(conn, failure(GeminiStatus.SERVER_UNAVAILABLE))

    def _process_connection(self, conn: Connection):
        """Handle one connection from handshake to close (runs in a worker)."""
        with conn:
            try:
                conn.handshake()
            except OSError as e:
                # ssl.SSLError is an OSError
                logger.debug(f"[{conn.id}] TLS handshake failed: {e}")
                return

            try:
                raw = conn.read_request()
            except TimeoutError:
                logger.debug(f"[{conn.id}] Timed out waiting for request")
                return
            except RequestTooLarge as e:
                self._send(conn, failure(GeminiStatus.BAD_REQUEST, str(e)))
                return
            except OSError as e:
                logger.debug(f"[{conn.id}] Read failed: {e}")
                return

            if raw is None:
                return

            response = self.handle_request_line(raw, conn.address, conn.identity)
            self._send(conn, response)

    def _send(self, conn: Connection, response: GeminiResponse) -> bool:
        try:
            data = response.to_bytes()
        except ValueError as e:
            logger.error(f"[{conn.id}] Unsendable response: {e}")
            data = temporary_failure().to_bytes()
        return conn.send_response(data)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def run(self, host: Optional[str] = None, port: Optional[int] = None):
        """Start the server. Blocks until SIGINT/SIGTERM or shutdown()."""
        if host:
            self.config.host = host
        if port:
            self.config.port = port

        self._setup_logging()
        self._get_handler()
        self._worker_pool.start()

        logger.info(
            f"Starting Gemini server for gemini://{self.config.hostname} "
            f"on {self.config.host}:{self.config.port} ({self.config.workers} workers)"
        )
        for route in self._router.routes():
            logger.info(f"Route {route.path} → {route.name or type(route.handler).__name__}")

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def shutdown(self):
        """Ask a running server to stop (safe from any thread)."""
        self._socket_server.shutdown()

    def _setup_logging(self):
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("gemserve").setLevel(level)

    def _shutdown(self):
        logger.info("Shutting down server...")
        self._worker_pool.shutdown(wait=True, timeout=self.config.timeout)
        logger.info("Server stopped")
