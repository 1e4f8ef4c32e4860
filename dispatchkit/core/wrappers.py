"""
Where: dispatchkit/core/wrappers.py
What: Context-scoped wrappers for route middleware and terminal handlers.
Why: Every stage runs inside its own child RequestContext that is ended exactly once.
"""

import functools
import inspect
import logging
from typing import Any, Callable, Optional

from starlette.responses import Response

from ..models.route import UNNAMED_CONTROLLER, callable_name
from .context import bind_context, get_current_context
from .http import AppRequest, AppResponse

logger = logging.getLogger(__name__)


def wrap_middleware(fn: Callable[..., Any], index: int = 0) -> Callable[..., Any]:
    """
    Wrap a (req, res, next) middleware.

    The middleware runs inside a child of the caller's context. The first call
    to next() restores the parent, ends the child and hands off; later calls,
    and anything raised after that first call, are ignored.
    """
    name = callable_name(fn) or f"noname-{index}"

    async def wrapped(req: AppRequest, res: AppResponse, next_: Callable[..., None]) -> None:
        parent = get_current_context() or req.original_context
        child = parent.create_child(f"{name} middleware")
        bind_context(child)
        # Safety net for a middleware that responds without calling next().
        res.on_finish(child.end)
        handed_off = False

        def guarded_next(error: Optional[BaseException] = None) -> None:
            nonlocal handed_off
            if handed_off:
                return
            handed_off = True
            bind_context(parent)
            child.end()
            next_(error)

        try:
            result = fn(req, res, guarded_next)
            if inspect.isawaitable(result):
                await result
        except Exception as error:
            if handed_off:
                logger.debug(
                    f"Discarding error raised by middleware '{name}' after next()",
                    exc_info=error,
                )
                return
            handed_off = True
            child.fail(error)
            child.end()
            bind_context(parent)
            next_(error)
            return

        if not handed_off and res.headers_sent:
            child.end()
            bind_context(parent)

    functools.update_wrapper(wrapped, fn)
    wrapped.__name__ = name
    return wrapped


def wrap_route_handler(
    handler: Callable[..., Any], handler_name: Optional[str] = None
) -> Callable[..., Any]:
    """
    Wrap a terminal (req, res) route handler.

    The handler context is always a child of the request's root context, no
    matter how deep the middleware chain was.
    """
    name = handler_name or callable_name(handler) or UNNAMED_CONTROLLER

    async def wrapped(req: AppRequest, res: AppResponse, next_: Callable[..., None]) -> None:
        root = req.original_context
        ctx = root.create_child(f"{name} handler")
        bind_context(ctx)
        res.on_finish(ctx.end)
        req.route_info.merge_handler_name(name)

        try:
            result = handler(req, res)
            if inspect.isawaitable(result):
                result = await result
        except Exception as error:
            ctx.fail(error)
            ctx.end()
            bind_context(root)
            if res.headers_sent:
                ctx.log_error(f"Handler '{name}' failed after the response was sent", error)
                return
            next_(error)
            return

        if not res.headers_sent:
            if isinstance(result, Response):
                res.send_response(result)
            else:
                res.end()
        ctx.end()
        bind_context(root)

    wrapped.__name__ = name
    wrapped.__qualname__ = name
    return wrapped
