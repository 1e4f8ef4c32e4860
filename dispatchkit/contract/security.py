"""
Security scheme declarations for auth middleware.

The wrappers return a SecuredHandler carrying the scheme, which the route
dispatcher reports in registered_routes for documentation renderers.
"""

import functools
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional


@dataclass(frozen=True)
class SecurityScheme:
    name: str
    scheme: Dict[str, Any]
    scopes: List[str] = field(default_factory=list)


class SecuredHandler:
    def __init__(self, handler: Callable[..., Any], security: SecurityScheme):
        functools.update_wrapper(self, handler)
        self.handler = handler
        self.security = security

    def __call__(self, req, res, next_):
        return self.handler(req, res, next_)


def with_security_scheme(security: SecurityScheme) -> Callable[[Callable[..., Any]], SecuredHandler]:
    def decorator(handler: Callable[..., Any]) -> SecuredHandler:
        return SecuredHandler(handler, security)

    return decorator


def get_security_scheme(handler: Any) -> Optional[SecurityScheme]:
    return getattr(handler, "security", None) if isinstance(handler, SecuredHandler) else None


def bearer_auth(name: str = "bearerAuth", scopes: Optional[List[str]] = None):
    return with_security_scheme(
        SecurityScheme(
            name=name,
            scheme={"type": "http", "scheme": "bearer", "bearerFormat": "JWT"},
            scopes=list(scopes or []),
        )
    )


def api_key_auth(
    name: str = "apiKey",
    location: str = "header",
    param_name: str = "X-API-Key",
    scopes: Optional[List[str]] = None,
):
    if location not in ("header", "query", "cookie"):
        raise ValueError(f"Unsupported api key location: {location}")
    return with_security_scheme(
        SecurityScheme(
            name=name,
            scheme={"type": "apiKey", "in": location, "name": param_name},
            scopes=list(scopes or []),
        )
    )


def basic_auth(name: str = "basicAuth", scopes: Optional[List[str]] = None):
    return with_security_scheme(
        SecurityScheme(name=name, scheme={"type": "http", "scheme": "basic"}, scopes=list(scopes or []))
    )


def oauth2_auth(
    flows: Dict[str, Any], name: str = "oauth2Auth", scopes: Optional[List[str]] = None
):
    return with_security_scheme(
        SecurityScheme(name=name, scheme={"type": "oauth2", "flows": flows}, scopes=list(scopes or []))
    )


def oidc_auth(
    open_id_connect_url: str, name: str = "oidcAuth", scopes: Optional[List[str]] = None
):
    return with_security_scheme(
        SecurityScheme(
            name=name,
            scheme={"type": "openIdConnect", "openIdConnectUrl": open_id_connect_url},
            scopes=list(scopes or []),
        )
    )
