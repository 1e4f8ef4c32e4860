"""
Route model definitions package.
"""

from .route import (
    UNNAMED_CONTROLLER,
    AuthPolicy,
    HttpMethod,
    RouteDescriptor,
    RouteInfo,
    callable_name,
    parse_route_key,
)

__all__ = [
    "UNNAMED_CONTROLLER",
    "AuthPolicy",
    "HttpMethod",
    "RouteDescriptor",
    "RouteInfo",
    "callable_name",
    "parse_route_key",
]
