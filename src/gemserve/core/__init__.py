"""
Core networking components: the TLS socket server, the per-client
connection wrapper and the worker pool.

    SocketServer ──accept──► Connection ──submit──► WorkerPool
"""

from .socket_server import SocketServer, create_ssl_context
from .connection import Connection, ConnectionState, RequestTooLarge
from .worker_pool import WorkerPool

__all__ = [
    "SocketServer",
    "create_ssl_context",
    "Connection",
    "ConnectionState",
    "RequestTooLarge",
    "WorkerPool",
]
