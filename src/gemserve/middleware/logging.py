"""
=============================================================================
ACCESS LOGGING MIDDLEWARE
=============================================================================

One log line per request, on the "gemserve.access" logger:

    text:  10.0.0.7 [18/Oct/2026:14:02:11 +0000] "gemini://example.org/docs/" 20 text/gemini 412 1.83ms
    json:  {"client_ip": "10.0.0.7", "url": "gemini://...", "status": 20, ...}

Clients are identified by IP only; the certificate fingerprint is logged
as well when the client presented one.

=============================================================================
"""

import time
import json
import logging
from typing import Optional
from dataclasses import dataclass

from .base import Middleware, NextHandler
from ..gemini.request import GeminiRequest
from ..gemini.response import GeminiResponse


logger = logging.getLogger("gemserve.access")


@dataclass
class RequestLog:
    """Structured log entry for one request."""

    client_ip: str
    url: str
    status: int
    meta: str
    content_length: int
    duration_ms: float
    timestamp: str
    fingerprint: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "client_ip": self.client_ip,
            "url": self.url,
            "status": self.status,
            "meta": self.meta,
            "content_length": self.content_length,
            "duration_ms": round(self.duration_ms, 2),
            "timestamp": self.timestamp,
            "fingerprint": self.fingerprint,
        }

    def to_text(self) -> str:
        line = (
            f'{self.client_ip} [{self.timestamp}] "{self.url}" '
            f'{self.status:02d} {self.meta} {self.content_length} {self.duration_ms:.2f}ms'
        )
        if self.fingerprint:
            line += f" cert={self.fingerprint[:16]}"
        return line


class LoggingMiddleware(Middleware):
    """
    Request logging middleware.

    Should be FIRST in the pipeline so that it times (and logs) everything,
    including requests answered by other middleware.

    Usage:
        server.use(LoggingMiddleware())
        server.use(LoggingMiddleware(log_format="json"))
        server.use(LoggingMiddleware(skip_paths=["/robots.txt"]))
    """

    def __init__(
        self,
        log_format: str = "text",
        log_level: int = logging.INFO,
        skip_paths: Optional[list[str]] = None,
    ):
        """
        Args:
            log_format: "text" (one readable line) or "json".
            log_level: Level for access lines.
            skip_paths: Request paths not to log.
        """
        self.log_format = log_format
        self.log_level = log_level
        self.skip_paths = set(skip_paths or [])

    def __call__(self, request: GeminiRequest, next: NextHandler) -> GeminiResponse:
        start_time = time.time()

        try:
            response = next(request)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Request failed: {request.url} "
                f"- {type(e).__name__}: {e} ({duration_ms:.2f}ms)"
            )
            raise

        duration_ms = (time.time() - start_time) * 1000

        if request.path in self.skip_paths:
            return response

        log_entry = RequestLog(
            client_ip=request.client_ip or "-",
            url=request.url,
            status=int(response.status),
            meta=response.meta,
            content_length=len(response.body),
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
            fingerprint=request.identity.fingerprint if request.identity else None,
        )

        if self.log_format == "json":
            logger.log(self.log_level, json.dumps(log_entry.to_dict()))
        else:
            logger.log(self.log_level, log_entry.to_text())

        return response
