"""
Contract declarations.

A Contract pairs request-part schemas with per-status response schemas for one
route. Schemas are pydantic models or any type a TypeAdapter accepts.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional, Sequence, Tuple, Union

from ..core.http import JSON_CONTENT_TYPE


@dataclass(frozen=True)
class ResponseDef:
    schema: Any = None
    description: Optional[str] = None


def _normalize_content(content: Mapping[Any, Any]) -> Mapping[int, ResponseDef]:
    normalized = {}
    for status_code, definition in dict(content).items():
        if isinstance(definition, ResponseDef):
            pass
        elif isinstance(definition, Mapping):
            definition = ResponseDef(**definition)
        else:
            definition = ResponseDef(schema=definition)
        normalized[int(status_code)] = definition
    return MappingProxyType(normalized)


@dataclass(frozen=True)
class RequestContract:
    body: Any = None
    params: Any = None
    query: Any = None
    headers: Any = None
    content_type: Union[str, Sequence[str], None] = None

    @property
    def allowed_content_types(self) -> Tuple[str, ...]:
        if not self.content_type:
            return (JSON_CONTENT_TYPE,)
        if isinstance(self.content_type, str):
            return (self.content_type.lower(),)
        return tuple(value.lower() for value in self.content_type)


@dataclass(frozen=True)
class ResponseContract:
    content: Mapping[int, ResponseDef] = field(default_factory=dict)
    content_type: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "content", _normalize_content(self.content))

    def schema_for(self, status_code: int) -> Any:
        definition = self.content.get(int(status_code))
        return definition.schema if definition is not None else None


@dataclass(frozen=True)
class Contract:
    """
    Route contract.

    `request` and `response` also accept plain mappings with the same keys as
    RequestContract / ResponseContract.
    """

    response: ResponseContract = field(default_factory=ResponseContract)
    request: Optional[RequestContract] = None
    name: Optional[str] = None
    summary: Optional[str] = None
    description: Optional[str] = None
    tags: Tuple[str, ...] = ()
    manual_validation: bool = False

    def __post_init__(self):
        if isinstance(self.request, Mapping):
            object.__setattr__(self, "request", RequestContract(**self.request))
        if isinstance(self.response, Mapping):
            object.__setattr__(self, "response", ResponseContract(**self.response))
        object.__setattr__(self, "tags", tuple(self.tags))


@dataclass(frozen=True)
class ErrorContract:
    """Error responses an error handler may send with res.send_error()."""

    content: Mapping[int, ResponseDef] = field(default_factory=dict)
    name: Optional[str] = None
    description: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "content", _normalize_content(self.content))
