"""
=============================================================================
BASE MIDDLEWARE INTERFACE
=============================================================================

Defines the middleware protocol and the pipeline for chaining middleware
(Chain of Responsibility).

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   Request ─────────────────────────────────────────►                 │
    │                                                                      │
    │   ┌──────────┐    ┌──────────┐    ┌──────────────────┐               │
    │   │  Logging │───►│  Custom  │───►│  router.handle   │               │
    │   │    MW    │◄───│    MW    │◄───│                  │               │
    │   └──────────┘    └──────────┘    └──────────────────┘               │
    │                                                                      │
    │   ◄───────────────────────────────────────────────── Response        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Each middleware either passes the request on with next(request), or
answers it itself (short-circuit). Gemini responses are frozen, so a
middleware that wants a different response returns a new one.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, List, Optional
import logging

from ..gemini.request import GeminiRequest
from ..gemini.response import GeminiResponse


logger = logging.getLogger(__name__)


NextHandler = Callable[[GeminiRequest], GeminiResponse]


class Middleware(ABC):
    """
    Abstract base class for middleware.

    Every middleware implements:

        def __call__(self, request: GeminiRequest, next: NextHandler) -> GeminiResponse

    Example:
        class RequireCertificate(Middleware):
            def __call__(self, request, next):
                if request.identity is None:
                    return failure(GeminiStatus.CLIENT_CERTIFICATE_REQUIRED)
                return next(request)
    """

    @abstractmethod
    def __call__(self, request: GeminiRequest, next: NextHandler) -> GeminiResponse:
        """
        Process the request.

        Args:
            request: The incoming Gemini request
            next: The next handler in the chain

        Returns:
            Gemini response (either from next() or short-circuited)
        """
        pass

    @property
    def name(self) -> str:
        """Get the middleware name for logging."""
        return self.__class__.__name__


class MiddlewarePipeline:
    """
    Chains middleware around a final handler.

    First added = outermost:

        pipeline = MiddlewarePipeline()
        pipeline.add(LoggingMiddleware())     # sees every request first
        pipeline.add(RequireCertificate())

        handler = pipeline.wrap(router.handle)
        response = handler(request)
    """

    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        """Add middleware to the pipeline. Returns self for chaining."""
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def use(self, *middleware: Middleware) -> "MiddlewarePipeline":
        """Add several middleware at once."""
        for mw in middleware:
            self.add(mw)
        return self

    def wrap(self, handler: NextHandler) -> NextHandler:
        """
        Wrap a handler with all middleware in the pipeline.

        Wrapped in REVERSE order so that the first-added middleware
        ends up outermost:

            [MW1, MW2] + handler  →  MW1 → MW2 → handler
        """
        current = handler

        for middleware in reversed(self._middleware):
            current = self._create_wrapped_handler(middleware, current)

        return current

    def _create_wrapped_handler(
        self,
        middleware: Middleware,
        next_handler: NextHandler
    ) -> NextHandler:
        def wrapped(request: GeminiRequest) -> GeminiResponse:
            return middleware(request, next_handler)

        return wrapped

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self):
        return iter(self._middleware)


class FunctionMiddleware(Middleware):
    """
    Wraps a plain function as middleware.

        def deny_cgi(request, next):
            if request.path.startswith("/cgi/"):
                return not_found()
            return next(request)

        pipeline.add(FunctionMiddleware(deny_cgi))
    """

    def __init__(
        self,
        func: Callable[[GeminiRequest, NextHandler], GeminiResponse],
        name: Optional[str] = None
    ):
        self._func = func
        self._name = name or func.__name__

    def __call__(self, request: GeminiRequest, next: NextHandler) -> GeminiResponse:
        return self._func(request, next)

    @property
    def name(self) -> str:
        return self._name


def function_middleware(
    func: Callable[[GeminiRequest, NextHandler], GeminiResponse]
) -> FunctionMiddleware:
    """Decorator form of FunctionMiddleware."""
    return FunctionMiddleware(func)
