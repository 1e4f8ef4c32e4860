"""
Where: dispatchkit/middleware.py
What: HTTP middleware creating the root RequestContext of every request.
Why: Request id, trace propagation and access logging live outside route chains.
"""

import logging
import time
import uuid

from fastapi import Request

from .core.context import REQUEST_ID_PARAM_NAME, RequestContext, bind_context, reset_context
from .core.trace import TraceParent
from .models.route import RouteInfo

logger = logging.getLogger("dispatchkit.access")


def _trace_from_headers(request: Request) -> TraceParent:
    header = request.headers.get("traceparent")
    if not header:
        return TraceParent.generate()
    try:
        return TraceParent.parse(header)
    except ValueError as exc:
        logger.warning("Failed to parse incoming traceparent: '%s', error: %s", header, exc)
        return TraceParent.generate()


def build_request_context_middleware(app_config):
    """Create the request-context middleware bound to app_config."""
    request_id_header = app_config.APP_REQUEST_ID_HEADER.lower()

    async def request_context_middleware(request: Request, call_next):
        """Root context, request id and access logging for one request."""
        start_time = time.perf_counter()

        request_id = request.headers.get(request_id_header) or str(uuid.uuid4())
        trace = _trace_from_headers(request)
        client_ip = request.client.host if request.client else None
        user_agent = request.headers.get("user-agent")

        root = RequestContext(f"HTTP {request.method}", trace=trace)
        root.set(REQUEST_ID_PARAM_NAME, request_id)
        root.set_tag("http.method", request.method)
        root.set_tag("http.url", str(request.url))
        root.set_tag("path", request.url.path)
        root.set_tag("remote_ip", client_ip)
        root.set_tag("user_agent", user_agent)
        root.set_tag("request_id", request_id)
        root.add_logger_extra("req", {"id": request_id, "method": request.method, "url": request.url.path})

        request.state.request_id = request_id
        request.state.original_context = root
        request.state.route_info = RouteInfo()
        token = bind_context(root)

        if app_config.APP_DEV_MODE:
            root.log("Request started", {"req": {"url": str(request.url)}})
        else:
            root.log(
                "Request started",
                {
                    "req": {
                        "id": request_id,
                        "method": request.method,
                        "url": str(request.url),
                        "remote_ip": client_ip,
                        "user_agent": user_agent,
                    }
                },
            )

        try:
            response = await call_next(request)
            response.headers[request_id_header] = request_id
            response.headers["x-trace-id"] = root.trace_id
            root.set_tag("http.status_code", response.status_code)

            response_time_ms = round((time.perf_counter() - start_time) * 1000, 2)
            extra = {"res": {"response_time_ms": response_time_ms, "status": response.status_code}}
            if response.status_code >= 500:
                root.log_error("Request failed", extra=extra)
            else:
                root.log("Request completed", extra)

            return response
        finally:
            root.end()
            reset_context(token)

    return request_context_middleware
