"""
Where: dispatchkit/core/router.py
What: Route table parsing and binding onto a FastAPI/Starlette application.
Why: Build the ordered, context-wrapped stage chain of every route once at startup.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from fastapi import FastAPI
from starlette.datastructures import MutableHeaders
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Route, Router
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..contract.handler import ContractHandler, with_contract
from ..contract.models import Contract
from ..contract.security import SecurityScheme, get_security_scheme
from ..models.route import AuthPolicy, HttpMethod, RouteDescriptor, RouteInfo, parse_route_key
from .csrf import CsrfGuard
from .exceptions import BodyParseError, RouteConfigError
from .http import AppRequest, AppResponse, TEXT_CONTENT_TYPE
from .parsers import parse_body
from .pipeline import Outcome, Pipeline, Stage
from .stages import (
    StatsSink,
    build_route_info_middleware,
    build_security_headers_middleware,
    caching_middleware,
    log_stats,
)
from .wrappers import wrap_middleware, wrap_route_handler

logger = logging.getLogger(__name__)

_EXPRESS_PARAM_RE = re.compile(r"(?<=/):([A-Za-z_][A-Za-z0-9_]*)")


def to_starlette_path(path: str) -> str:
    """Convert Express-style ":name" segments into Starlette "{name}" ones."""
    return _EXPRESS_PARAM_RE.sub(r"{\1}", path)


@dataclass(frozen=True)
class RegisteredRoute:
    """Route metadata for documentation renderers."""

    method: str
    path: str
    handler_name: str
    auth_policy: AuthPolicy
    contract: Optional[Contract] = None
    security: Optional[SecurityScheme] = None


class SubRouter:
    """
    Router handed to "MOUNT" factories.

    Stages are (req, res, next) callables run as given; wrap terminal handlers
    with the wrap_route_handler helper passed alongside the router.
    """

    def __init__(self):
        self.routes: List[Tuple[HttpMethod, str, Tuple[Stage, ...]]] = []

    def add(self, method: Union[str, HttpMethod], path: str, *stages: Stage) -> "SubRouter":
        if isinstance(method, HttpMethod):
            http_method = method
        else:
            try:
                http_method = HttpMethod(method.lower())
            except ValueError:
                raise RouteConfigError(f'Unknown http method "{method}" for route "{path}"') from None
        if http_method.is_mount:
            raise RouteConfigError(f'Nested mounts are not supported: "{path}"')
        if not path.startswith("/"):
            raise RouteConfigError(f'Route path must start with "/": "{path}"')
        if not stages:
            raise RouteConfigError(f"Route {http_method.value.upper()} {path} has no handler")
        self.routes.append((http_method, path, stages))
        return self

    def get(self, path: str, *stages: Stage) -> "SubRouter":
        return self.add(HttpMethod.GET, path, *stages)

    def head(self, path: str, *stages: Stage) -> "SubRouter":
        return self.add(HttpMethod.HEAD, path, *stages)

    def options(self, path: str, *stages: Stage) -> "SubRouter":
        return self.add(HttpMethod.OPTIONS, path, *stages)

    def post(self, path: str, *stages: Stage) -> "SubRouter":
        return self.add(HttpMethod.POST, path, *stages)

    def put(self, path: str, *stages: Stage) -> "SubRouter":
        return self.add(HttpMethod.PUT, path, *stages)

    def patch(self, path: str, *stages: Stage) -> "SubRouter":
        return self.add(HttpMethod.PATCH, path, *stages)

    def delete(self, path: str, *stages: Stage) -> "SubRouter":
        return self.add(HttpMethod.DELETE, path, *stages)


def _build_request(request: Request) -> AppRequest:
    state = request.state
    original_context = getattr(state, "original_context", None)
    if original_context is None:
        raise RuntimeError("Request context middleware is not installed")
    return AppRequest(
        request,
        original_context=original_context,
        route_info=getattr(state, "route_info", None) or RouteInfo(),
        request_id=getattr(state, "request_id", ""),
    )


async def run_pipeline(pipeline: Pipeline, request: Request) -> Tuple[AppResponse, Outcome]:
    req = _build_request(request)
    res = AppResponse()

    error: Optional[BaseException] = None
    try:
        req.body = await parse_body(request)
    except BodyParseError as e:
        error = e

    outcome = await pipeline.run(req, res, error)
    return res, outcome


class _ForwardingApp:
    """Runs the mount stages, then hands the request to a mounted ASGI app."""

    def __init__(self, pipeline: Pipeline, app: ASGIApp):
        self.pipeline = pipeline
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive)
        res, outcome = await run_pipeline(self.pipeline, request)

        if outcome is Outcome.FINISHED:
            response = res.to_response()
            res.finish()
            await response(scope, receive, send)
            return

        body = await request.body()
        replayed = False

        async def replay() -> Message:
            nonlocal replayed
            if replayed:
                return await receive()
            replayed = True
            return {"type": "http.request", "body": body, "more_body": False}

        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                for name, value in res.headers.items():
                    if name not in headers:
                        headers[name] = value
                res.status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, replay, send_with_headers)
        finally:
            res.finish()


class RouteDispatcher:
    """
    Turns a route table into FastAPI bindings.

    Each route runs: route info, caching policy, security headers, app and
    route before-auth middleware, auth, CSRF, route and app after-auth
    middleware, then the handler. Optional stages depend on config flags;
    their order never changes.
    """

    def __init__(
        self,
        config,
        *,
        auth_handler: Optional[Stage] = None,
        before_auth: Sequence[Stage] = (),
        after_auth: Sequence[Stage] = (),
        error_stages: Sequence[Stage] = (),
        stats_sink: Optional[StatsSink] = None,
    ):
        self.config = config
        self.auth_handler = auth_handler
        self.before_auth = tuple(before_auth)
        self.after_auth = tuple(after_auth)
        self.error_stages = tuple(error_stages)
        self.stats_sink = stats_sink or log_stats
        self.registered_routes: List[RegisteredRoute] = []

        self.csrf: Optional[CsrfGuard] = None
        if config.APP_CSRF_SECRET:
            self.csrf = CsrfGuard(
                config.APP_CSRF_SECRET,
                lifetime=config.APP_CSRF_LIFETIME,
                header_name=config.APP_CSRF_HEADER_NAME,
                methods=config.APP_CSRF_METHODS,
            )

        self._binders: Dict[HttpMethod, Callable[..., None]] = {
            method: self._bind_endpoint for method in HttpMethod if not method.is_mount
        }
        self._binders[HttpMethod.MOUNT] = self._bind_mount

    # ---- building ----

    def resolve_auth_handler(self, descriptor: RouteDescriptor) -> Optional[Stage]:
        if descriptor.auth_policy == AuthPolicy.DISABLED:
            return None
        return descriptor.auth_handler or self.auth_handler

    def build_stages(self, descriptor: RouteDescriptor) -> List[Stage]:
        """Build the wrapped middleware chain that precedes the route handler."""
        enable_caching = (
            descriptor.enable_caching
            if descriptor.enable_caching is not None
            else self.config.APP_ENABLE_CACHING
        )
        stats_sink = self.stats_sink if self.config.APP_TELEMETRY_ENABLE_SELF_STATS else None

        stages: List[Stage] = [
            build_route_info_middleware(
                descriptor, descriptor.auth_policy, bool(enable_caching), stats_sink
            )
        ]
        if not enable_caching:
            stages.append(caching_middleware)
        if self.config.APP_CSP_ENABLE:
            stages.append(
                build_security_headers_middleware(
                    descriptor.csp_policy or self.config.APP_CSP_POLICY,
                    report_only=self.config.APP_CSP_REPORT_ONLY,
                    report_uri=self.config.APP_CSP_REPORT_URI,
                )
            )

        stages.extend(self.before_auth)
        stages.extend(descriptor.before_auth)

        auth_handler = self.resolve_auth_handler(descriptor)
        if auth_handler is not None:
            stages.append(auth_handler)
            if self.csrf is not None:
                stages.append(self.csrf.middleware(descriptor.auth_policy))

        stages.extend(descriptor.after_auth)
        stages.extend(self.after_auth)

        return [wrap_middleware(stage, index) for index, stage in enumerate(stages)]

    def build_handler(self, descriptor: RouteDescriptor) -> Stage:
        handler = descriptor.handler
        contract = descriptor.contract
        if contract is not None and not isinstance(handler, ContractHandler):
            if isinstance(contract, Mapping):
                contract = Contract(**contract)
            handler = with_contract(contract)(handler)
        return wrap_route_handler(handler, descriptor.handler_name)

    def make_endpoint(self, stages: Sequence[Stage]) -> Callable[[Request], Any]:
        pipeline = Pipeline(stages, self.error_stages)

        async def endpoint(request: Request) -> Response:
            res, outcome = await run_pipeline(pipeline, request)
            if outcome is Outcome.PASSED and not res.headers_sent:
                res.status(404).set_header("content-type", TEXT_CONTENT_TYPE)
                res.send(f"Cannot {request.method} {request.url.path}")
            response = res.to_response()
            res.finish()
            return response

        return endpoint

    # ---- binding ----

    def bind(self, app: FastAPI, routes: Mapping[str, Any]) -> None:
        """Bind every route of the table; any malformed entry fails before anything is bound."""
        descriptors = []
        for route_key, entry in routes.items():
            method, path = parse_route_key(route_key)
            descriptors.append(
                RouteDescriptor.from_entry(method, path, entry, self.config.APP_AUTH_POLICY)
            )

        for descriptor in descriptors:
            self._binders[descriptor.method](app, descriptor, self.build_stages(descriptor))

    def _bind_endpoint(self, app: FastAPI, descriptor: RouteDescriptor, stages: List[Stage]) -> None:
        endpoint = self.make_endpoint(stages + [self.build_handler(descriptor)])
        app.add_route(
            to_starlette_path(descriptor.path),
            endpoint,
            methods=[descriptor.method.value.upper()],
            name=f"{descriptor.method.value} {descriptor.path}",
            include_in_schema=False,
        )

        auth_handler = self.resolve_auth_handler(descriptor)
        contract = descriptor.contract
        if isinstance(descriptor.handler, ContractHandler):
            contract = descriptor.handler.contract
        elif isinstance(contract, Mapping):
            contract = Contract(**contract)
        self.registered_routes.append(
            RegisteredRoute(
                method=descriptor.method.value,
                path=descriptor.path,
                handler_name=descriptor.handler_name,
                auth_policy=descriptor.auth_policy,
                contract=contract,
                security=get_security_scheme(auth_handler),
            )
        )
        logger.debug(f"Bound {descriptor.method.value.upper()} {descriptor.path}")

    def _bind_mount(self, app: FastAPI, descriptor: RouteDescriptor, stages: List[Stage]) -> None:
        router = SubRouter()
        target = descriptor.handler(router, wrap_route_handler)
        prefix = to_starlette_path(descriptor.path).rstrip("/")

        if target is None or target is router:
            routes = [
                Route(
                    to_starlette_path(path),
                    self.make_endpoint(stages + list(sub_stages)),
                    methods=[method.value.upper()],
                )
                for method, path, sub_stages in router.routes
            ]
            app.mount(prefix, Router(routes=routes))
        else:
            app.mount(prefix, _ForwardingApp(Pipeline(stages, self.error_stages), target))
        logger.debug(f"Mounted {descriptor.path}")
