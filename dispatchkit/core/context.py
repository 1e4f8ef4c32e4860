"""
RequestContext management.

A RequestContext is a span-like node: one root per inbound request, one child
per middleware/handler invocation. The active node is kept in a ContextVar so
log records can pick up trace and request ids across async execution.
"""

import logging
import secrets
import time
import weakref
from contextvars import ContextVar, Token
from typing import Any, Dict, List, Optional

from .trace import TraceParent

logger = logging.getLogger(__name__)

REQUEST_ID_PARAM_NAME = "requestId"
USER_ID_PARAM_NAME = "userId"
CSRF_TOKEN_PARAM_NAME = "csrfToken"

# Context variable for the active RequestContext.
_current_context: ContextVar[Optional["RequestContext"]] = ContextVar(
    "request_context", default=None
)


def get_current_context() -> Optional["RequestContext"]:
    """Get the active RequestContext."""
    return _current_context.get()


def bind_context(ctx: Optional["RequestContext"]) -> Token:
    """Make ctx the active context for the current task."""
    return _current_context.set(ctx)


def reset_context(token: Token) -> None:
    """Restore the context active before bind_context() returned token."""
    _current_context.reset(token)


class CancellationSignal:
    """Informational abort flag; it never interrupts running code."""

    def __init__(self):
        self.aborted = False
        self.reason: Optional[str] = None

    def abort(self, reason: str) -> None:
        if not self.aborted:
            self.aborted = True
            self.reason = reason


class RequestContext:
    def __init__(
        self,
        name: str,
        parent: Optional["RequestContext"] = None,
        trace: Optional[TraceParent] = None,
        logger_extra: Optional[Dict[str, Any]] = None,
    ):
        self.name = name
        self.span_id = secrets.token_hex(8)
        self.signal = CancellationSignal()
        self.tags: Dict[str, Any] = {}
        self.error: Optional[BaseException] = None

        # Parent is a weak back-reference; the tree never keeps a parent alive.
        self._parent_ref = weakref.ref(parent) if parent is not None else None
        self._params: Dict[str, Any] = {}
        self._local_params: Dict[str, Any] = {}
        self._start = time.perf_counter()
        self._duration_ms: Optional[float] = None
        self._ended = False
        self._failed = False

        if parent is not None:
            self.trace = parent.trace
            self._root = parent._root
            self._logger_extra = dict(parent._logger_extra)
            self._root._open_descendants[self.span_id] = self
        else:
            self.trace = trace or TraceParent.generate()
            self._root = self
            self._logger_extra = {}
            self._open_descendants: Dict[str, "RequestContext"] = {}

        if logger_extra:
            self._logger_extra.update(logger_extra)

    # ---- tree ----

    @property
    def parent(self) -> Optional["RequestContext"]:
        return self._parent_ref() if self._parent_ref is not None else None

    @property
    def root(self) -> "RequestContext":
        return self._root

    @property
    def is_root(self) -> bool:
        return self._root is self

    @property
    def trace_id(self) -> str:
        return self.trace.trace_id

    @property
    def ended(self) -> bool:
        return self._ended

    @property
    def failed(self) -> bool:
        return self._failed

    @property
    def aborted(self) -> bool:
        return self.signal.aborted

    def create_child(self, name: str) -> "RequestContext":
        if self._ended:
            logger.debug(f"Creating child '{name}' of already ended context '{self.name}'")
        return RequestContext(name, parent=self)

    def open_descendants(self) -> List["RequestContext"]:
        """Descendants of the root that were created but never ended."""
        return list(self._root._open_descendants.values())

    # ---- attributes ----

    def set(self, key: str, value: Any, inheritable: bool = True) -> None:
        """Store a param; inheritable params are visible to descendants via get()."""
        if inheritable:
            self._params[key] = value
            self._local_params.pop(key, None)
        else:
            self._local_params[key] = value
            self._params.pop(key, None)

    def get(self, key: str, default: Any = None) -> Any:
        if key in self._local_params:
            return self._local_params[key]
        node: Optional[RequestContext] = self
        while node is not None:
            if key in node._params:
                return node._params[key]
            node = node.parent
        return default

    def set_tag(self, key: str, value: Any) -> None:
        self.tags[key] = value

    def add_logger_extra(self, key: str, value: Any) -> None:
        self._logger_extra[key] = value

    def get_time(self) -> float:
        """Milliseconds since the context was created (frozen once ended)."""
        if self._duration_ms is not None:
            return self._duration_ms
        return round((time.perf_counter() - self._start) * 1000, 2)

    # ---- logging ----

    def _log_extra(self, extra: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        data = dict(self._logger_extra)
        data["span"] = self.name
        data["trace_id"] = self.trace_id
        request_id = self.get(REQUEST_ID_PARAM_NAME)
        if request_id:
            data["request_id"] = request_id
        if extra:
            data.update(extra)
        return data

    def log(self, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        logger.info(message, extra=self._log_extra(extra))

    def log_error(
        self,
        message: str,
        error: Optional[BaseException] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        exc_info = (type(error), error, error.__traceback__) if error is not None else None
        logger.error(message, exc_info=exc_info, extra=self._log_extra(extra))

    # ---- lifecycle ----

    def fail(self, error: BaseException) -> None:
        """Mark the invocation as failed; ending is a separate step."""
        self._failed = True
        self.error = error
        self.set_tag("error", True)

    def end(self) -> None:
        """End the context. A second call is a no-op."""
        if self._ended:
            return
        self._ended = True
        self._duration_ms = round((time.perf_counter() - self._start) * 1000, 2)
        self.signal.abort("ended")

        if self.is_root:
            for leaked in self._open_descendants.values():
                logger.warning(
                    f"Context '{leaked.name}' was never ended",
                    extra=leaked._log_extra({"parent_span": self.name}),
                )
            self._open_descendants.clear()
        else:
            self._root._open_descendants.pop(self.span_id, None)

        logger.debug(
            f"Context '{self.name}' ended",
            extra=self._log_extra({"duration_ms": self._duration_ms, "failed": self._failed}),
        )

    def __repr__(self) -> str:
        state = "ended" if self._ended else "open"
        return f"<RequestContext {self.name!r} {self.span_id} {state}>"
