"""
Where: dispatchkit/contract/validator.py
What: Composite request validation for contract-bearing routes.
Why: Validate body, params, query and headers in one pass with per-field issue paths.
"""

from typing import Any, Dict, Optional, Tuple, Type

from pydantic import BaseModel, create_model
from pydantic import ValidationError as PydanticValidationError

from ..core.http import AppRequest
from .errors import Issue, ValidationError
from .models import Contract

REQUEST_PARTS = ("body", "params", "query", "headers")


def _model_name(contract: Contract, fallback: Optional[str]) -> str:
    base = contract.name or fallback or "Contract"
    cleaned = "".join(ch for ch in base.title() if ch.isalnum())
    return f"{cleaned or 'Contract'}Request"


class ContractValidator:
    """
    Validates the declared parts of a request against a contract.

    The composite model is built once; parts without a schema are left out of
    it and pass through untouched.
    """

    def __init__(self, contract: Contract, name: Optional[str] = None):
        self.contract = contract
        request = contract.request

        self.schemas: Dict[str, Any] = {}
        if request is not None:
            for part in REQUEST_PARTS:
                schema = getattr(request, part)
                if schema is not None:
                    self.schemas[part] = schema

        self.allowed_content_types = request.allowed_content_types if request else ()
        self.model: Optional[Type[BaseModel]] = None
        if self.schemas:
            fields = {part: (schema, ...) for part, schema in self.schemas.items()}
            self.model = create_model(_model_name(contract, name), **fields)

    @property
    def declared_parts(self) -> Tuple[str, ...]:
        return tuple(self.schemas)

    def check_content_type(self, req: AppRequest) -> None:
        if "body" not in self.schemas:
            return
        content_type = req.content_type
        if content_type in self.allowed_content_types:
            return
        expected = ", ".join(self.allowed_content_types)
        raise ValidationError(
            f"Unsupported content-type. Allowed: {expected}",
            issues=[
                Issue(
                    path=["headers", "content-type"],
                    message=f"Expected content type: {expected}",
                    code="invalid_content_type",
                )
            ],
        )

    async def validate(self, req: AppRequest) -> Dict[str, Any]:
        """
        Validate a snapshot of the request and return all four parts.

        Declared parts come back coerced by their schemas; the rest are returned
        as parsed. Runs again on every call.
        """
        self.check_content_type(req)
        data = {part: getattr(req, part) for part in REQUEST_PARTS}
        if self.model is None:
            return data

        try:
            validated = self.model.model_validate({part: data[part] for part in self.schemas})
        except PydanticValidationError as error:
            raise ValidationError.from_pydantic(error) from error

        for part in self.schemas:
            data[part] = getattr(validated, part)
        return data

    async def apply(self, req: AppRequest) -> Dict[str, Any]:
        """Validate and overwrite the declared request parts with the validated values."""
        data = await self.validate(req)
        for part in self.schemas:
            setattr(req, part, data[part])
        return data
