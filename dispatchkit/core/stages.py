"""
Where: dispatchkit/core/stages.py
What: Built-in per-route stages (route info, caching policy, security headers).
Why: The dispatcher prepends these to every route chain when their flags are on.
"""

import logging
from typing import Any, Callable, Dict, Optional

from ..models.route import UNNAMED_CONTROLLER, AuthPolicy, RouteDescriptor
from .context import REQUEST_ID_PARAM_NAME
from .http import AppRequest, AppResponse

logger = logging.getLogger(__name__)

NO_CACHE_HEADERS = {
    "cache-control": "no-store, max-age=0, must-revalidate, proxy-revalidate",
    "surrogate-control": "no-store",
}

StatsSink = Callable[[Dict[str, Any]], None]

_stats_logger = logging.getLogger("dispatchkit.stats")


def log_stats(record: Dict[str, Any]) -> None:
    """Default stats sink: one INFO line per finished request."""
    _stats_logger.info("Request stats", extra={"stats": record})


def build_route_info_middleware(
    descriptor: RouteDescriptor,
    auth_policy: AuthPolicy,
    enable_caching: bool,
    stats_sink: Optional[StatsSink] = None,
) -> Callable[..., None]:
    """
    Fill req.route_info from the descriptor and register the self-stats record.

    stats_sink is None when self-stats are disabled for the app.
    """
    metadata = dict(descriptor.metadata)

    def route_info_middleware(req: AppRequest, res: AppResponse, next_: Callable[..., None]) -> None:
        info = req.route_info
        info.metadata.update(metadata)
        info.handler_name = descriptor.handler_name
        info.auth_policy = auth_policy
        info.enable_caching = enable_caching
        info.disable_self_stats = descriptor.disable_self_stats
        info.disable_csrf = descriptor.disable_csrf

        if stats_sink is not None and not descriptor.disable_self_stats:

            def emit_stats() -> None:
                url = req.raw.url
                stats_sink(
                    {
                        "service": "self",
                        "action": info.handler_name or UNNAMED_CONTROLLER,
                        "response_status": res.status_code,
                        "request_id": req.original_context.get(REQUEST_ID_PARAM_NAME) or "",
                        # Root context time covers the whole request.
                        "request_time": req.original_context.get_time(),
                        "request_method": req.method,
                        "request_url": f"{url.path}?{url.query}" if url.query else url.path,
                        "trace_id": req.original_context.trace_id,
                    }
                )

            res.on_finish(emit_stats)

        next_()

    return route_info_middleware


def caching_middleware(req: AppRequest, res: AppResponse, next_: Callable[..., None]) -> None:
    for name, value in NO_CACHE_HEADERS.items():
        res.set_header(name, value)
    next_()


def build_security_headers_middleware(
    policy: str, report_only: bool = False, report_uri: Optional[str] = None
) -> Callable[..., None]:
    """Emit a prebuilt Content-Security-Policy string."""
    header = "content-security-policy-report-only" if report_only else "content-security-policy"
    value = policy.strip().rstrip(";")
    if report_uri:
        value = f"{value}; report-uri {report_uri}"

    def security_headers_middleware(
        req: AppRequest, res: AppResponse, next_: Callable[..., None]
    ) -> None:
        res.set_header(header, value)
        next_()

    return security_headers_middleware
