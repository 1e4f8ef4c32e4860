"""
Route models.

Resolved route descriptors and the per-request RouteInfo record.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from ..core.exceptions import RouteConfigError


class HttpMethod(str, Enum):
    GET = "get"
    HEAD = "head"
    OPTIONS = "options"
    POST = "post"
    PUT = "put"
    PATCH = "patch"
    DELETE = "delete"
    # Pseudo-method for nested sub-routers.
    MOUNT = "mount"

    @property
    def is_mount(self) -> bool:
        return self is HttpMethod.MOUNT


class AuthPolicy(str, Enum):
    DISABLED = "disabled"
    OPTIONAL = "optional"
    REDIRECT = "redirect"
    REQUIRED = "required"


UNNAMED_CONTROLLER = "unnamedController"

# Descriptor keys with dedicated fields; anything else is route metadata.
_DESCRIPTOR_KEYS = {
    "handler",
    "handler_name",
    "auth_handler",
    "auth_policy",
    "before_auth",
    "after_auth",
    "enable_caching",
    "disable_self_stats",
    "disable_csrf",
    "csp_policy",
    "contract",
}


def parse_route_key(route_key: str) -> Tuple[HttpMethod, str]:
    """
    Split a route table key into method and path.

    Example: "POST /items/:id" -> (HttpMethod.POST, "/items/:id")
    """
    parts = route_key.split()
    if len(parts) != 2:
        raise RouteConfigError(f'Malformed route key "{route_key}", expected "METHOD /path"')

    raw_method, path = parts
    try:
        method = HttpMethod(raw_method.lower())
    except ValueError:
        raise RouteConfigError(f'Unknown http method "{raw_method}" for route "{path}"') from None

    if not path.startswith("/"):
        raise RouteConfigError(f'Route path must start with "/": "{route_key}"')
    return method, path


def callable_name(fn: Any) -> Optional[str]:
    """Return a usable function name, ignoring lambdas and anonymous partials."""
    name = getattr(fn, "__name__", None)
    if not name or name == "<lambda>":
        return None
    return name


@dataclass(frozen=True)
class RouteDescriptor:
    """
    Resolved configuration for one method+path binding.

    Created once at startup from the route table; never mutated while serving.
    """

    method: HttpMethod
    path: str
    handler: Callable[..., Any]
    handler_name: str
    auth_policy: AuthPolicy
    auth_handler: Optional[Callable[..., Any]] = None
    before_auth: Tuple[Callable[..., Any], ...] = ()
    after_auth: Tuple[Callable[..., Any], ...] = ()
    enable_caching: Optional[bool] = None
    disable_self_stats: bool = False
    disable_csrf: bool = False
    csp_policy: Optional[str] = None
    contract: Any = None
    metadata: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_entry(
        cls,
        method: HttpMethod,
        path: str,
        entry: Any,
        default_policy: Optional[AuthPolicy] = None,
    ) -> "RouteDescriptor":
        """Normalize a bare handler or a descriptor mapping."""
        if callable(entry):
            entry = {"handler": entry}
        if not isinstance(entry, Mapping):
            raise RouteConfigError(
                f"Route {method.value.upper()} {path} must be a handler or a mapping, "
                f"got {type(entry).__name__}"
            )

        handler = entry.get("handler")
        if not callable(handler):
            raise RouteConfigError(f"Route {method.value.upper()} {path} has no callable handler")

        before_auth = tuple(entry.get("before_auth") or ())
        after_auth = tuple(entry.get("after_auth") or ())
        for fn in before_auth + after_auth:
            if not callable(fn):
                raise RouteConfigError(
                    f"Route {method.value.upper()} {path} has a non-callable middleware: {fn!r}"
                )

        auth_policy = AuthPolicy(
            entry.get("auth_policy") or default_policy or AuthPolicy.DISABLED
        )
        contract = entry.get("contract") or getattr(handler, "contract", None)
        handler_name = entry.get("handler_name") or callable_name(handler) or UNNAMED_CONTROLLER

        metadata = {k: v for k, v in entry.items() if k not in _DESCRIPTOR_KEYS}

        return cls(
            method=method,
            path=path,
            handler=handler,
            handler_name=handler_name,
            auth_policy=auth_policy,
            auth_handler=entry.get("auth_handler"),
            before_auth=before_auth,
            after_auth=after_auth,
            enable_caching=entry.get("enable_caching"),
            disable_self_stats=bool(entry.get("disable_self_stats", False)),
            disable_csrf=bool(entry.get("disable_csrf", False)),
            csp_policy=entry.get("csp_policy"),
            contract=contract,
            metadata=MappingProxyType(metadata),
        )


@dataclass
class RouteInfo:
    """
    Per-request metadata describing the route serving the request.
    """

    handler_name: Optional[str] = None
    auth_policy: Optional[AuthPolicy] = None
    enable_caching: Optional[bool] = None
    disable_self_stats: bool = False
    disable_csrf: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    def merge_handler_name(self, name: str) -> None:
        """Record a function-level handler name, composing it with the route-level one."""
        if self.handler_name == name:
            return
        if not self.handler_name or self.handler_name == UNNAMED_CONTROLLER:
            self.handler_name = name
        else:
            self.handler_name = f"{self.handler_name}({name})"
