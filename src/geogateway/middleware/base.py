"""
=============================================================================
BASE MIDDLEWARE INTERFACE
=============================================================================

The middleware protocol and the pipeline that chains stages around the
router (Chain of Responsibility).

    ┌─────────────────────────────────────────────────────────────────────┐
    │   Request ────────────────────────────────────────────────►         │
    │                                                                      │
    │   ┌──────────┐    ┌──────────┐    ┌──────────┐                      │
    │   │  Logging │───►│  (more)  │───►│  Router  │                      │
    │   │    MW    │    │    MW    │    │  handle  │                      │
    │   └──────────┘    └──────────┘    └──────────┘                      │
    │                                                                      │
    │   ◄──────────────────────────────────────────────── Response        │
    └─────────────────────────────────────────────────────────────────────┘

Every stage receives the request and ``next``. To continue it calls
``next(request)``; to short-circuit it returns its own response and does
not call ``next``.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, List, Optional
import logging

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger(__name__)


# The next middleware or the final handler. Stages must call it to continue.
NextHandler = Callable[[HTTPRequest], HTTPResponse]


class Middleware(ABC):
    """
    Abstract base class for middleware.

        class StampMiddleware(Middleware):
            def __call__(self, request, next):
                response = next(request)
                response.headers["X-Served-By"] = "geogateway"
                return response
    """

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        """
        Process the request.

        Args:
            request: The incoming HTTP request
            next: The next handler in the chain

        Returns:
            The response from ``next`` or a short-circuit response
        """

    @property
    def name(self) -> str:
        return self.__class__.__name__


class MiddlewarePipeline:
    """
    Chains middleware around a final handler.

    The first stage added is the outermost:

        pipeline.add(LoggingMiddleware())     # runs first
        pipeline.add(OtherMiddleware())       # runs second
        handler = pipeline.wrap(router.handle)

        →  Logging(Other(router.handle))

    Adding stages never touches the handlers themselves.
    """

    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        """Append a stage; returns self for chaining."""
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def use(self, *middleware: Middleware) -> "MiddlewarePipeline":
        for mw in middleware:
            self.add(mw)
        return self

    def wrap(self, handler: NextHandler) -> NextHandler:
        """
        Wrap ``handler`` with every stage.

        Given [MW1, MW2, MW3] the result is MW1 → MW2 → MW3 → handler,
        built by wrapping in reverse order.
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
        def wrapped(request: HTTPRequest) -> HTTPResponse:
            return middleware(request, next_handler)

        return wrapped

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self):
        return iter(self._middleware)


class FunctionMiddleware(Middleware):
    """
    Wraps a plain ``(request, next) -> response`` function as middleware.
    """

    def __init__(
        self,
        func: Callable[[HTTPRequest, NextHandler], HTTPResponse],
        name: Optional[str] = None
    ):
        self._func = func
        self._name = name or func.__name__

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        return self._func(request, next)

    @property
    def name(self) -> str:
        return self._name


def function_middleware(
    func: Callable[[HTTPRequest, NextHandler], HTTPResponse]
) -> FunctionMiddleware:
    """
    Decorator turning a function into middleware.

        @function_middleware
        def reject_trace(request, next):
            if request.method == "TRACE":
                return method_not_allowed(["GET"])   # short-circuit
            return next(request)
    """
    return FunctionMiddleware(func)
