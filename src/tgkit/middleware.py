from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence

import anyio.from_thread
import anyio.to_thread

from .model import ApiResult, OutgoingCall

Handler = Callable[[OutgoingCall], ApiResult]
AsyncHandler = Callable[[OutgoingCall], Awaitable[ApiResult]]


class Middleware:
    """Base class for units of the request middleware chain.

    Override ``handle`` for blocking calls and ``handle_async`` for
    non-blocking ones. Call ``next_`` to continue down the chain, or return an
    ``ApiResult`` directly to short-circuit it. A middleware that only
    overrides ``handle`` still runs for async calls: its ``handle`` is run on a
    worker thread and ``next_`` is awaited back on the event loop.
    """

    def handle(self, call: OutgoingCall, next_: Handler) -> ApiResult:
        return next_(call)

    async def handle_async(self, call: OutgoingCall, next_: AsyncHandler) -> ApiResult:
        if type(self).handle is Middleware.handle:
            return await next_(call)

        def blocking_next(inner: OutgoingCall) -> ApiResult:
            return anyio.from_thread.run(next_, inner)

        return await anyio.to_thread.run_sync(self.handle, call, blocking_next)


def _bind(middleware: Middleware, next_: Handler) -> Handler:
    def handler(call: OutgoingCall) -> ApiResult:
        return middleware.handle(call, next_)

    return handler


def _bind_async(middleware: Middleware, next_: AsyncHandler) -> AsyncHandler:
    async def handler(call: OutgoingCall) -> ApiResult:
        return await middleware.handle_async(call, next_)

    return handler


def build_chain(middlewares: Sequence[Middleware], terminal: Handler) -> Handler:
    handler = terminal
    for middleware in reversed(middlewares):
        handler = _bind(middleware, handler)
    return handler


def build_async_chain(
    middlewares: Sequence[Middleware], terminal: AsyncHandler
) -> AsyncHandler:
    handler = terminal
    for middleware in reversed(middlewares):
        handler = _bind_async(middleware, handler)
    return handler
