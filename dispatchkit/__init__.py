"""
dispatchkit: declarative route tables with context-scoped middleware and
typed request/response contracts on FastAPI.
"""

from .app import AppKit
from .contract import (
    Contract,
    ErrorContract,
    RequestContract,
    ResponseContract,
    ResponseDef,
    SerializationError,
    ValidationError,
    api_key_auth,
    basic_auth,
    bearer_auth,
    oauth2_auth,
    oidc_auth,
    with_contract,
    with_error_contract,
    with_security_scheme,
)
from .core.context import (
    CSRF_TOKEN_PARAM_NAME,
    REQUEST_ID_PARAM_NAME,
    USER_ID_PARAM_NAME,
    RequestContext,
    get_current_context,
)
from .core.exceptions import ResponseAlreadySentError, RouteConfigError
from .core.http import AppRequest, AppResponse
from .core.router import RegisteredRoute, RouteDispatcher, SubRouter
from .core.wrappers import wrap_middleware, wrap_route_handler
from .models.route import AuthPolicy, HttpMethod, RouteInfo

__all__ = [
    "AppKit",
    "AppRequest",
    "AppResponse",
    "AuthPolicy",
    "CSRF_TOKEN_PARAM_NAME",
    "Contract",
    "ErrorContract",
    "HttpMethod",
    "REQUEST_ID_PARAM_NAME",
    "RegisteredRoute",
    "RequestContext",
    "RequestContract",
    "ResponseAlreadySentError",
    "ResponseContract",
    "ResponseDef",
    "RouteConfigError",
    "RouteDispatcher",
    "RouteInfo",
    "SerializationError",
    "SubRouter",
    "USER_ID_PARAM_NAME",
    "ValidationError",
    "api_key_auth",
    "basic_auth",
    "bearer_auth",
    "get_current_context",
    "oauth2_auth",
    "oidc_auth",
    "with_contract",
    "with_error_contract",
    "with_security_scheme",
    "wrap_middleware",
    "wrap_route_handler",
]
