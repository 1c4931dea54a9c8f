"""
=============================================================================
MIDDLEWARE BASE
=============================================================================

Middleware wraps the request handler with behavior that applies to every
request.

=============================================================================
THE CONTRACT
=============================================================================

    class MyMiddleware(Middleware):
        def __call__(self, request, next):
            ...                       # before: look at the request
            response = next(request)  # continue the chain
            ...                       # after: look at the response
            return response

A middleware may return without calling next() (short-circuit), but the
ones shipped here never do.

=============================================================================
PIPELINE ORDER
=============================================================================

    pipeline.add(LoggingMiddleware())    # first added = outermost
    pipeline.add(OtherMiddleware())

        LoggingMiddleware
          └── OtherMiddleware
                └── StaticFileHandler

Requests flow inward in the order middleware were added; responses flow
back outward in reverse.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, List
import logging

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger(__name__)


# The next middleware or the final handler
NextHandler = Callable[[HTTPRequest], HTTPResponse]


class Middleware(ABC):
    """Abstract base class for middleware."""

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        """
        Process the request.

        Args:
            request: The incoming request.
            next: The rest of the chain; call it to continue.

        Returns:
            The response, normally the one returned by next().
        """

    @property
    def name(self) -> str:
        return self.__class__.__name__


class MiddlewarePipeline:
    """
    Ordered list of middleware that can wrap a final handler.

        pipeline = MiddlewarePipeline()
        pipeline.add(LoggingMiddleware())
        handler = pipeline.wrap(static.handle)
        response = handler(request)
    """

    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        """Append middleware (innermost so far); returns self for chaining."""
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def wrap(self, handler: NextHandler) -> NextHandler:
        """
        Build the chain around `handler`.

        Wrapping happens in reverse so the first-added middleware ends up
        outermost: [A, B] + h  →  A(B(h)).
        """
        current = handler
        for middleware in reversed(self._middleware):
            current = self._bind(middleware, current)
        return current

    @staticmethod
    def _bind(middleware: Middleware, next_handler: NextHandler) -> NextHandler:
        def wrapped(request: HTTPRequest) -> HTTPResponse:
            return middleware(request, next_handler)
        return wrapped

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self):
        return iter(self._middleware)
