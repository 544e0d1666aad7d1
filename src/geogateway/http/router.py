"""
=============================================================================
URL ROUTER
=============================================================================

Maps request paths to handler functions and extracts path parameters.

Template syntax:
- Static paths:        /                      exact match
- Brace parameters:    /geocode/{address}     may sit anywhere in a segment,
                       /geoloc/{lat},{lng}    several per segment
- Colon parameters:    /users/:id             whole segment
- Wildcards:           /files/*path           rest of the path, last segment

=============================================================================
ROUTING FLOW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │   Incoming Request                                                   │
    │   GET /geoloc/34.05,-118.24                                          │
    │        │                                                             │
    │        ▼                                                             │
    │   ┌─────────────────────────────────────────────────────────────┐   │
    │   │  ROUTER (most specific first)                                │   │
    │   │                                                              │   │
    │   │   ANY  /                      → home                         │   │
    │   │   ANY  /geocode/{address}     → geocode                      │   │
    │   │   ANY  /geoloc/{lat},{lng}    → geoloc        ← MATCH!       │   │
    │   │                                                              │   │
    │   │  Extracted: {"lat": "34.05", "lng": "-118.24"}               │   │
    │   └─────────────────────────────────────────────────────────────┘   │
    │        │                                                             │
    │        ▼                                                             │
    │   geoloc(request)   # request.path_params["lat"] == "34.05"         │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PATTERN COMPILATION
=============================================================================

    Template:  /geoloc/{lat},{lng}
    Regex:     ^/geoloc/(?P<lat>[^/]+),(?P<lng>[^/]+)$

=============================================================================
SPECIFICITY
=============================================================================

Overlapping templates do not fall back to first-registered-wins. Routes are
kept ordered by specificity:

    1. routes without a wildcard before routes with one
    2. more fully-literal segments first
    3. more literal characters first
    4. fewer parameters first
    5. registration order (ties only)

So /users/me beats /users/{id} for "/users/me" no matter which was added
first.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Callable, Optional, Dict, List
import logging
import re

from .request import HTTPRequest
from .response import HTTPResponse, not_found, method_not_allowed


logger = logging.getLogger(__name__)


# A function that takes a request and returns a response.
Handler = Callable[[HTTPRequest], HTTPResponse]

ALL_METHODS = ["DELETE", "GET", "HEAD", "OPTIONS", "PATCH", "POST", "PUT"]

_BRACE_PARAM = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


@dataclass
class Route:
    """
    A registered route.

        Route(
            path="/geoloc/{lat},{lng}",
            method=None,                 # any method
            handler=geoloc,
            name="geoloc",
            _param_names=["lat", "lng"],
        )
    """

    path: str
    method: Optional[str]
    handler: Handler
    name: Optional[str] = None

    _pattern: Optional[re.Pattern] = field(default=None, repr=False)
    _param_names: List[str] = field(default_factory=list, repr=False)
    _specificity: tuple = field(default=(), repr=False)


@dataclass
class RouteMatch:
    """A successful match: the route plus the captured parameters."""

    route: Route
    params: Dict[str, str]


class Router:
    """
    HTTP request router with path parameters.

        router = Router()

        @router.route("/geocode/{address}")
        def geocode(request):
            return ok({"address": request.path_params["address"]})

    Routes may only be registered before ``freeze()``; the server freezes
    its router when it starts serving.
    """

    def __init__(self):
        self._routes: List[Route] = []
        self._named_routes: Dict[str, Route] = {}
        self._frozen = False

    # =========================================================================
    # ROUTE REGISTRATION
    # =========================================================================

    def add_route(
        self,
        path: str,
        handler: Handler,
        method: Optional[str] = None,
        name: Optional[str] = None,
    ) -> Route:
        """
        Register a route.

        Args:
            path: URL template (e.g. /geoloc/{lat},{lng})
            handler: Function taking a request and returning a response
            method: HTTP method, or None for any method
            name: Optional name for url_for()

        Raises:
            RuntimeError: If the router is frozen.
            ValueError: If a parameter name is used twice.
        """
        if self._frozen:
            raise RuntimeError(f"Cannot add route {path}: router is frozen")

        pattern, param_names, specificity = self._compile_pattern(path)

        route = Route(
            path=path,
            method=method.upper() if method else None,
            handler=handler,
            name=name,
            _pattern=pattern,
            _param_names=param_names,
            _specificity=specificity,
        )

        self._routes.append(route)
        # sorted() is stable with reverse=True, so ties keep registration order
        self._routes = sorted(self._routes, key=lambda r: r._specificity, reverse=True)

        if name:
            self._named_routes[name] = route

        return route

    def _compile_pattern(self, path: str) -> tuple[re.Pattern, List[str], tuple]:
        """
        Compile a template into a regex, its parameter names and a
        specificity key.

            "/geocode/{address}"  →  ^/geocode/(?P<address>[^/]+)$
            "/users/:id"          →  ^/users/(?P<id>[^/]+)$
            "/files/*path"        →  ^/files/(?P<path>.*)$
        """
        param_names: List[str] = []
        regex_parts = ["^"]
        static_segments = 0
        literal_chars = 0
        has_wildcard = False

        for segment in path.split("/"):
            if not segment:
                continue

            regex_parts.append("/")

            if segment.startswith(":"):
                param_names.append(segment[1:])
                regex_parts.append(f"(?P<{segment[1:]}>[^/]+)")

            elif segment.startswith("*"):
                param_name = segment[1:] or "wildcard"
                param_names.append(param_name)
                regex_parts.append(f"(?P<{param_name}>.*)")
                has_wildcard = True
                break

            elif _BRACE_PARAM.search(segment):
                position = 0
                for match in _BRACE_PARAM.finditer(segment):
                    literal = segment[position:match.start()]
                    regex_parts.append(re.escape(literal))
                    literal_chars += len(literal)
                    param_names.append(match.group(1))
                    regex_parts.append(f"(?P<{match.group(1)}>[^/]+)")
                    position = match.end()
                literal = segment[position:]
                regex_parts.append(re.escape(literal))
                literal_chars += len(literal)

            else:
                regex_parts.append(re.escape(segment))
                static_segments += 1
                literal_chars += len(segment)

        if len(param_names) != len(set(param_names)):
            raise ValueError(f"Duplicate parameter name in route {path}")

        if len(regex_parts) == 1:
            regex_parts.append("/")

        regex_parts.append("$")
        pattern = re.compile("".join(regex_parts))

        specificity = (not has_wildcard, static_segments, literal_chars, -len(param_names))
        return pattern, param_names, specificity

    def freeze(self) -> None:
        """Reject further registrations."""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    # =========================================================================
    # ROUTE MATCHING
    # =========================================================================

    @staticmethod
    def _normalize(path: str) -> str:
        return "/" + path.strip("/") if path != "/" else "/"

    def match(self, method: str, path: str) -> Optional[RouteMatch]:
        """
        Find the most specific route for ``method`` and ``path``.

        Returns:
            RouteMatch if found, None otherwise
        """
        path = self._normalize(path)

        for route in self._routes:
            if route.method and route.method != method.upper():
                continue

            match = route._pattern.match(path)
            if match:
                return RouteMatch(route=route, params=match.groupdict())

        return None

    def get_allowed_methods(self, path: str) -> List[str]:
        """Methods accepted for ``path``, used for the 405 Allow header."""
        path = self._normalize(path)
        methods = set()

        for route in self._routes:
            if route._pattern.match(path):
                if route.method is None:
                    return list(ALL_METHODS)
                methods.add(route.method)

        return sorted(methods)

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """
        Route a request: inject path parameters and call the handler,
        or answer 405 / 404.
        """
        match = self.match(request.method, request.path)

        if match:
            request.path_params = match.params
            return match.route.handler(request)

        allowed = self.get_allowed_methods(request.path)
        if allowed:
            return method_not_allowed(allowed)

        return not_found(f"No route matches {request.path}")

    # =========================================================================
    # DECORATOR-STYLE ROUTE REGISTRATION
    # =========================================================================

    def route(
        self,
        path: str,
        method: Optional[str] = None,
        name: Optional[str] = None,
    ) -> Callable[[Handler], Handler]:
        """
        Decorator form of add_route().

            @router.route("/geocode/{address}")
            def geocode(request):
                ...
        """
        def decorator(handler: Handler) -> Handler:
            self.add_route(path, handler, method, name)
            return handler
        return decorator

    # =========================================================================
    # UTILITY METHODS
    # =========================================================================

    def url_for(self, name: str, **params: str) -> Optional[str]:
        """
        Build a URL from a named route.

            router.url_for("geoloc", lat="34.05", lng="-118.24")
            # "/geoloc/34.05,-118.24"
        """
        route = self._named_routes.get(name)
        if not route:
            return None

        url = route.path
        for param_name, value in params.items():
            url = url.replace(f"{{{param_name}}}", value)
            url = url.replace(f":{param_name}", value)
            url = url.replace(f"*{param_name}", value)

        return url

    def routes(self) -> List[Route]:
        """All routes in matching order."""
        return list(self._routes)

    def log_routes(self) -> None:
        """Log the route table at DEBUG level."""
        for route in self._routes:
            logger.debug(f"  {route.method or 'ANY':8} {route.path}")
