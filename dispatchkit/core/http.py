"""
Where: dispatchkit/core/http.py
What: Request/response objects handed to middleware stages and route handlers.
Why: Give stages an Express-style (req, res, next) surface over Starlette.
"""

import asyncio
import json
import logging
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic_core import to_jsonable_python
from starlette.requests import Request
from starlette.responses import Response

from ..models.route import RouteInfo
from .context import RequestContext, get_current_context
from .exceptions import ResponseAlreadySentError

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"
TEXT_CONTENT_TYPE = "text/plain; charset=utf-8"


def is_no_body_status(status_code: int) -> bool:
    """Statuses that never carry a response body."""
    return status_code < 200 or status_code in (204, 205, 304)


def encode_json(data: Any) -> bytes:
    return json.dumps(
        to_jsonable_python(data), ensure_ascii=False, allow_nan=False, separators=(",", ":")
    ).encode("utf-8")


def _query_dict(request: Request) -> Dict[str, Union[str, List[str]]]:
    query: Dict[str, Union[str, List[str]]] = {}
    for key, value in request.query_params.multi_items():
        if key not in query:
            query[key] = value
        elif isinstance(query[key], list):
            query[key].append(value)
        else:
            query[key] = [query[key], value]
    return query


class AppRequest:
    """
    Per-request view handed to stages.

    `ctx` is the context of the stage currently running in this task; outside
    of any stage it falls back to the root (`original_context`).
    """

    def __init__(
        self,
        request: Request,
        original_context: RequestContext,
        route_info: RouteInfo,
        request_id: str,
    ):
        self.raw = request
        self.id = request_id
        self.method = request.method
        self.path = request.url.path
        self.url = str(request.url)
        self.headers: Dict[str, str] = dict(request.headers)
        self.params: Dict[str, Any] = dict(request.path_params)
        self.query: Dict[str, Any] = _query_dict(request)
        self.body: Any = None
        self.original_context = original_context
        self.route_info = route_info
        self.locals: Dict[str, Any] = {}
        # Bound by contract-bearing handlers.
        self.validate: Optional[Callable[[], Any]] = None

    @property
    def ctx(self) -> RequestContext:
        current = get_current_context()
        if current is not None and current.root is self.original_context:
            return current
        return self.original_context

    @property
    def content_type(self) -> Optional[str]:
        """Media type of the request without parameters, lowercased."""
        value = self.headers.get("content-type")
        if not value:
            return None
        return value.split(";", 1)[0].strip().lower()

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.headers.get(name.lower(), default)


class AppResponse:
    """
    Buffered response writer.

    Stages write status, headers and a body; the response is committed once
    (`headers_sent`) and converted to a Starlette Response when the chain settles.
    """

    def __init__(self):
        self.status_code = 200
        self.headers: Dict[str, str] = {}
        self.locals: Dict[str, Any] = {}
        self.body = b""
        self._finished = asyncio.Event()
        self._finish_callbacks: List[Callable[[], Any]] = []
        self._forwarded: Optional[Response] = None
        self._serializer = None
        self._error_contract = None

    # ---- state ----

    @property
    def headers_sent(self) -> bool:
        return self._finished.is_set()

    async def wait_finished(self) -> None:
        await self._finished.wait()

    def _ensure_open(self, operation: str) -> None:
        if self.headers_sent:
            raise ResponseAlreadySentError(operation)

    # ---- writing ----

    def status(self, status_code: int) -> "AppResponse":
        self._ensure_open("set status")
        self.status_code = int(status_code)
        return self

    def set_header(self, name: str, value: str) -> "AppResponse":
        self._ensure_open("set headers")
        self.headers[name.lower()] = str(value)
        return self

    def get_header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())

    def remove_header(self, name: str) -> None:
        self._ensure_open("remove headers")
        self.headers.pop(name.lower(), None)

    def json(self, data: Any) -> None:
        self._ensure_open("send")
        self.headers.setdefault("content-type", JSON_CONTENT_TYPE)
        self._commit(encode_json(data))

    def send(self, content: Any = None) -> None:
        """Send str/bytes as-is; anything else is encoded as JSON."""
        self._ensure_open("send")
        if content is None:
            self._commit(b"")
        elif isinstance(content, bytes):
            self.headers.setdefault("content-type", "application/octet-stream")
            self._commit(content)
        elif isinstance(content, str):
            self.headers.setdefault("content-type", TEXT_CONTENT_TYPE)
            self._commit(content.encode("utf-8"))
        else:
            self.json(content)

    def end(self) -> None:
        """Commit the current status and headers with whatever body was set."""
        self._ensure_open("end")
        self._commit(self.body)

    def send_response(self, response: Response) -> None:
        """Commit a ready Starlette response returned by a handler."""
        self._ensure_open("send")
        self._forwarded = response
        self.status_code = response.status_code
        self._finished.set()

    def _commit(self, body: bytes) -> None:
        if is_no_body_status(self.status_code):
            body = b""
            self.headers.pop("content-type", None)
        self.body = body
        self._finished.set()

    # ---- contract bindings ----

    def bind_serializer(self, serializer) -> None:
        self._serializer = serializer

    def bind_error_contract(self, contract) -> None:
        self._error_contract = contract

    def send_typed(self, status_code: int, data: Any = None) -> None:
        if self._serializer is None:
            raise RuntimeError("send_typed() requires a handler declared with with_contract()")
        self._serializer.send_typed(self, status_code, data)

    def send_validated(self, status_code: int, data: Any = None) -> None:
        if self._serializer is None:
            raise RuntimeError("send_validated() requires a handler declared with with_contract()")
        self._serializer.send_validated(self, status_code, data)

    def send_error(self, status_code: int, data: Any = None) -> None:
        if self._error_contract is None:
            raise RuntimeError("send_error() requires a handler declared with with_error_contract()")
        self.status(status_code)
        if data is None:
            self.end()
        else:
            self.json(data)

    # ---- finish ----

    def on_finish(self, callback: Callable[[], Any]) -> None:
        self._finish_callbacks.append(callback)

    def to_response(self) -> Response:
        if self._forwarded is not None:
            for name, value in self.headers.items():
                self._forwarded.headers.setdefault(name, value)
            return self._forwarded
        return Response(content=self.body, status_code=self.status_code, headers=self.headers)

    def finish(self) -> None:
        """Run finish callbacks once the response has been handed to the transport."""
        callbacks, self._finish_callbacks = self._finish_callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Response finish callback failed")
