"""
=============================================================================
URL ROUTER
=============================================================================

Maps request paths to handlers. Gemini has no methods, so a route is just
a path pattern plus a handler:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        ROUTING FLOW                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   gemini://example.org/docs/notes.gemini                             │
    │        │                                                             │
    │        ▼                                                             │
    │   ┌─────────────────────────────────────────────────────────────┐   │
    │   │  ROUTER                                                      │   │
    │   │                                                              │   │
    │   │  /status         → status_page                               │   │
    │   │  /users/:name    → user_page                                 │   │
    │   │  /docs/*path     → FilesystemHandler("/srv/docs") ← MATCH!   │   │
    │   │  /*path          → FilesystemHandler("/srv/gemini")          │   │
    │   │                                                              │   │
    │   │  request.match       = ("notes.gemini",)                     │   │
    │   │  request.path_params = {"path": "notes.gemini"}              │   │
    │   └─────────────────────────────────────────────────────────────┘   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
ROUTE PATTERNS
=============================================================================

1. STATIC PATHS: exact match (a trailing slash is tolerated)

   Pattern: /status
   Matches: /status, /status/

2. PARAMETERS (:name): exactly one path segment

   Pattern: /users/:name
   Matches: /users/sean → {"name": "sean"}
   Doesn't match: /users/, /users/sean/posts

3. WILDCARDS (*name): the rest of the path, possibly empty

   Pattern: /docs/*path
   Matches: /docs          → {"path": ""}
            /docs/         → {"path": ""}
            /docs/a/b/     → {"path": "a/b/"}

   Trailing slashes are NOT stripped: the filesystem handler needs to know
   whether the client asked for "/docs" or "/docs/".

First registered route wins, so register specific routes before catch-alls.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Any
import re

from .request import GeminiRequest
from .response import GeminiResponse, not_found


# Handler: takes a request, returns a response
Handler = Callable[[GeminiRequest], GeminiResponse]


@dataclass
class Route:
    """
    A registered route: a path pattern bound to a handler.

        Route(
            path="/docs/*path",
            handler=<FilesystemHandler>,
            name="docs",
            _pattern=re.compile(r"^/docs(?:/(?P<path>.*))?$"),
            _param_names=["path"],
        )
    """

    path: str
    handler: Handler
    name: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    _pattern: Optional[re.Pattern] = field(default=None, repr=False)
    _param_names: List[str] = field(default_factory=list, repr=False)


@dataclass
class RouteMatch:
    """
    Result of a successful route match.

    Example:
        Pattern: /docs/*path
        Path:    /docs/a/b
        Result:  RouteMatch(route=<Route>, params={"path": "a/b"}, groups=("a/b",))
    """

    route: Route
    params: Dict[str, str]
    groups: tuple


class Router:
    """
    Gemini request router.

    Usage:
        router = Router()

        @router.route("/status")
        def status(request):
            return success("# All good\\n")

        router.add_route("/*path", FilesystemHandler(rules))
    """

    def __init__(self, prefix: str = ""):
        self.prefix = prefix.rstrip("/")
        self._routes: List[Route] = []
        self._sub_routers: List[tuple[str, "Router"]] = []

    # =========================================================================
    # ROUTE REGISTRATION
    # =========================================================================

    def add_route(
        self,
        path: str,
        handler: Handler,
        name: Optional[str] = None,
        **meta: Any
    ) -> Route:
        """
        Register a route.

        Args:
            path: Path pattern (e.g. /docs/*path)
            handler: Callable taking a request and returning a response
            name: Optional route name (shown by print_routes)
            **meta: Additional metadata (accessible via route.meta)

        Returns:
            The registered Route object
        """
        full_path = self.prefix + path
        pattern, param_names = self._compile_pattern(full_path)

        route = Route(
            path=full_path,
            handler=handler,
            name=name,
            meta=meta,
            _pattern=pattern,
            _param_names=param_names,
        )
        self._routes.append(route)
        return route

    def _compile_pattern(self, path: str) -> tuple[re.Pattern, List[str]]:
        """
        Compile a path pattern into an anchored regex.

        =====================================================================
        PATTERN COMPILATION
        =====================================================================

            "/users/:name"   →  ^/users/(?P<name>[^/]+)/?$
            "/docs/*path"    →  ^/docs(?:/(?P<path>.*))?$
            "/*path"         →  ^(?:/(?P<path>.*))?$

        The wildcard group is optional so that "/docs" (no slash) still
        reaches the handler, which can then redirect to "/docs/".

        =====================================================================
        """
        param_names: List[str] = []
        regex_parts = ["^"]
        wildcard = False

        for segment in path.split("/"):
            if not segment:
                continue

            if segment.startswith(":"):
                param_name = segment[1:]
                param_names.append(param_name)
                regex_parts.append(f"/(?P<{param_name}>[^/]+)")

            elif segment.startswith("*"):
                param_name = segment[1:] or "wildcard"
                param_names.append(param_name)
                regex_parts.append(f"(?:/(?P<{param_name}>.*))?")
                wildcard = True
                break  # Wildcard consumes everything

            else:
                regex_parts.append("/" + re.escape(segment))

        if not wildcard:
            regex_parts.append("/?")

        regex_parts.append("$")
        return re.compile("".join(regex_parts)), param_names

    # =========================================================================
    # ROUTE MATCHING
    # =========================================================================

    def match(self, path: str) -> Optional[RouteMatch]:
        """
        Find the first route matching the given path.

        Unmatched optional groups (the empty wildcard) come back as "".
        """
        for route in self._routes:
            if route._pattern is None:
                continue
            m = route._pattern.match(path)
            if m:
                return RouteMatch(
                    route=route,
                    params={k: v or "" for k, v in m.groupdict().items()},
                    groups=tuple(g or "" for g in m.groups()),
                )

        for prefix, sub_router in self._sub_routers:
            if path.startswith(sub_router.prefix):
                result = sub_router.match(path)
                if result:
                    return result

        return None

    def handle(self, request: GeminiRequest) -> GeminiResponse:
        """
        Route a request to its handler.

        The captures are injected into the request before the handler
        runs. No matching route → 51 Not found.
        """
        match = self.match(request.path)

        if match:
            request.path_params = match.params
            request.match = match.groups
            return match.route.handler(request)

        return not_found()

    # =========================================================================
    # DECORATOR-STYLE REGISTRATION
    # =========================================================================

    def route(
        self,
        path: str,
        name: Optional[str] = None,
        **meta: Any
    ) -> Callable[[Handler], Handler]:
        """
        Decorator for registering routes.

        Usage:
            @router.route("/users/:name")
            def user_page(request):
                return success(f"# {request.path_params['name']}\\n")
        """
        def decorator(handler: Handler) -> Handler:
            self.add_route(path, handler, name, **meta)
            return handler
        return decorator

    def group(self, prefix: str) -> "Router":
        """
        Create a route group under a common prefix.

            admin = router.group("/admin")

            @admin.route("/stats")      # Matches /admin/stats
            def stats(request):
                ...
        """
        sub_router = Router(self.prefix + prefix)
        self._sub_routers.append((prefix, sub_router))
        return sub_router

    # =========================================================================
    # UTILITY METHODS
    # =========================================================================

    def routes(self) -> List[Route]:
        """All registered routes, including those of route groups."""
        all_routes = list(self._routes)
        for _, sub_router in self._sub_routers:
            all_routes.extend(sub_router.routes())
        return all_routes

    def print_routes(self) -> None:
        """Print all registered routes (useful for debugging)."""
        print("\nRegistered Routes:")
        print("-" * 60)
        for route in self.routes():
            handler_name = getattr(route.handler, "__name__", type(route.handler).__name__)
            print(f"  {route.path:30} {handler_name}")
        print("-" * 60)
