"""
Contract error taxonomy.

ValidationError reports request-shape problems back to the caller.
SerializationError marks a handler that produced data violating its own
response schema; its details are logged, never sent.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from ..core.exceptions import DispatchError

PathItem = Union[str, int]


@dataclass
class Issue:
    path: List[PathItem]
    message: str
    code: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def issues_from_pydantic(error: PydanticValidationError) -> List[Issue]:
    return [
        Issue(path=list(detail["loc"]), message=detail["msg"], code=detail["type"])
        for detail in error.errors(include_url=False)
    ]


class ContractError(DispatchError):
    """Base class for request and response contract failures."""

    default_status_code = 500
    default_message = "Contract violation"

    def __init__(
        self,
        message: str,
        issues: Optional[Sequence[Issue]] = None,
        status_code: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.issues: List[Issue] = list(issues or [])
        self.status_code = status_code or self.default_status_code
        self.cause = cause

    @classmethod
    def from_pydantic(cls, error: PydanticValidationError, message: Optional[str] = None):
        return cls(
            message or cls.default_message,
            issues=issues_from_pydantic(error),
            cause=error,
        )


class ValidationError(ContractError):
    """Request validation failed."""

    default_status_code = 400
    default_message = "Invalid request data"


class SerializationError(ContractError):
    """Response validation failed."""

    default_status_code = 500
    default_message = "Invalid response data"
