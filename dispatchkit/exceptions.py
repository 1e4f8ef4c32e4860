"""
Where: dispatchkit/exceptions.py
What: Error chain stages and FastAPI exception handler registration.
Why: Map contract and transport errors to safe HTTP responses in one place.
"""

import inspect
import logging
from typing import Any, Callable, List, Optional

from fastapi import FastAPI

from .contract.errors import SerializationError, ValidationError
from .core.exceptions import BodyParseError, global_exception_handler, status_hint
from .core.http import AppRequest, AppResponse, TEXT_CONTENT_TYPE, is_no_body_status
from .core.pipeline import Stage

logger = logging.getLogger(__name__)

ErrorStage = Callable[..., Any]


def body_parse_error_middleware(
    error: BaseException, req: AppRequest, res: AppResponse, next_: Callable[..., None]
) -> None:
    """Answer undecodable request bodies with a plain 400."""
    if not isinstance(error, BodyParseError) or res.headers_sent:
        next_()
        return
    req.ctx.log("Invalid request body", {"content_type": error.content_type})
    res.status(error.status_code).set_header("content-type", TEXT_CONTENT_TYPE)
    res.send("Invalid JSON supplied" if "json" in error.content_type else "Invalid body supplied")


def validation_error_middleware(
    error: BaseException, req: AppRequest, res: AppResponse, next_: Callable[..., None]
) -> None:
    """
    Classify contract errors.

    ValidationError -> its status (400) with field-level issues.
    SerializationError -> 500 with a stable code only; details go to the log.
    Anything else is forwarded unchanged.
    """
    if isinstance(error, ValidationError):
        if not res.headers_sent:
            res.status(error.status_code or 400).json(
                {
                    "error": error.message,
                    "code": "VALIDATION_ERROR",
                    "issues": [issue.to_dict() for issue in error.issues],
                }
            )
        return

    if isinstance(error, SerializationError):
        req.ctx.log_error(
            "Response serialization failed",
            error,
            {"issues": [issue.to_dict() for issue in error.issues]},
        )
        if not res.headers_sent:
            res.status(500).json(
                {"error": "Internal Server Error", "code": "RESPONSE_VALIDATION_FAILED"}
            )
        return

    next_()


def wrap_final_error_handler(handler: ErrorStage) -> ErrorStage:
    """Forward failures of a user-supplied final handler down the chain."""

    async def final_error_handler(
        error: BaseException, req: AppRequest, res: AppResponse, next_: Callable[..., None]
    ) -> None:
        try:
            result = handler(error, req, res, next_)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            next_(e)

    final_error_handler.__name__ = getattr(handler, "__name__", "final_error_handler")
    return final_error_handler


def default_error_handler(
    error: BaseException, req: AppRequest, res: AppResponse, next_: Callable[..., None]
) -> None:
    req.ctx.log_error("Unhandled error during request processing", error)
    if res.headers_sent:
        return

    status_code = status_hint(error) or 500
    if 400 <= status_code < 500 and not is_no_body_status(status_code):
        res.status(status_code).set_header("content-type", TEXT_CONTENT_TYPE)
        res.send("Bad request")
    else:
        res.status(500).set_header("content-type", TEXT_CONTENT_TYPE)
        res.send("Internal server error")


def build_error_stages(
    app_config,
    final_error_handler: Optional[ErrorStage] = None,
    validation_error_handler: Optional[Callable[[Any], ErrorStage]] = None,
) -> List[Stage]:
    """
    Assemble the error chain installed after every route.

    validation_error_handler is a factory receiving the app config; it replaces
    the built-in contract error classifier.
    """
    classifier = (
        validation_error_handler(app_config)
        if validation_error_handler is not None
        else validation_error_middleware
    )
    stages: List[Stage] = [body_parse_error_middleware, classifier]
    if final_error_handler is not None:
        stages.append(wrap_final_error_handler(final_error_handler))
    stages.append(default_error_handler)
    return stages


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(Exception, global_exception_handler)  # ty: ignore[invalid-argument-type]  # Starlette type stubs incomplete
