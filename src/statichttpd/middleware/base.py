"""
=============================================================================
BASE MIDDLEWARE INTERFACE
=============================================================================

Defines the handler shape every stage shares and the pipeline that nests
middleware around a terminal handler (Chain of Responsibility).

=============================================================================
ONE SHAPE FOR EVERYTHING
=============================================================================

    Handler     = (request, writer) -> None
    Middleware  = (request, writer, next) -> None

A terminal handler (file server, HTTPS redirect) answers on the writer.
A middleware may:

    - short-circuit:      answer on the writer, never call next
    - pass through:       next(request, writer)
    - decorate the sink:  next(request, SomeWriter(writer))

    ┌─────────────────────────────────────────────────────────────────────┐
    │              REQUEST FLOW (TLS listener / plain listener)            │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   ┌───────────┐    ┌──────────┐    ┌─────────────┐    ┌──────────┐  │
    │   │ AccessLog │───►│   Gzip   │───►│ Host filter │───►│   File   │  │
    │   │ recorder  │    │ compress │    │  404 or ►   │    │  server  │  │
    │   └───────────┘    └──────────┘    └─────────────┘    └──────────┘  │
    │                                                                      │
    │   ┌───────────┐    ┌────────────────────┐                            │
    │   │ AccessLog │───►│ HTTPS redirect 301 │   (plain HTTP, TLS on)    │
    │   └───────────┘    └────────────────────┘                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Since responses are STREAMED into a writer rather than returned, the
"after" half of a middleware is whatever runs once next() returns: the
access log formats its line, the gzip layer writes the gzip trailer.
Both do it in finally/with blocks so an exception downstream cannot skip
them.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, List
import logging

from ..http.request import HTTPRequest
from ..http.response import ResponseWriter

logger = logging.getLogger(__name__)

# Type alias for anything that answers a request on a writer
Handler = Callable[[HTTPRequest, ResponseWriter], None]

# Kept under its historical name: "the rest of the chain" is just a Handler
NextHandler = Handler


class Middleware(ABC):
    """
    Base class for middleware.

    Subclasses implement __call__(request, writer, next). They hold their
    configuration (compiled patterns, loggers, hostnames) and no
    per-request state; anything request-scoped lives in local variables
    or in a writer created for that request.
    """

    @abstractmethod
    def __call__(self, request: HTTPRequest, writer: ResponseWriter, next: NextHandler) -> None:
        """
        Process the request.

        Args:
            request: The incoming HTTP request.
            writer: Where the response goes (possibly already decorated).
            next: The rest of the chain.
        """

    @property
    def name(self) -> str:
        return self.__class__.__name__


class MiddlewarePipeline:
    """
    Chains middleware around a final handler.

    First added = outermost:

        pipeline = MiddlewarePipeline()
        pipeline.add(AccessLogMiddleware(access_log))
        pipeline.add(GzipMiddleware(["html", "css"]))
        pipeline.add(HostFilterMiddleware("example.com"))
        handler = pipeline.wrap(FileServer("/srv/www"))

        AccessLog(Gzip(HostFilter(FileServer)))
    """

    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        """Append middleware (it runs inside everything added before it)."""
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def use(self, *middleware: Middleware) -> "MiddlewarePipeline":
        for mw in middleware:
            self.add(mw)
        return self

    def wrap(self, handler: Handler) -> Handler:
        """
        Wrap a terminal handler with every middleware in the pipeline.

        Wrapping happens in REVERSE so the first-added middleware ends up
        outermost: [A, B, C] + h → A(B(C(h))).
        """
        current = handler
        for middleware in reversed(self._middleware):
            current = self._create_wrapped_handler(middleware, current)
        return current

    def _create_wrapped_handler(self, middleware: Middleware, next_handler: Handler) -> Handler:
        """Close over (middleware, next_handler) to get a plain Handler."""

        def wrapped(request: HTTPRequest, writer: ResponseWriter) -> None:
            middleware(request, writer, next_handler)

        return wrapped

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self):
        return iter(self._middleware)
