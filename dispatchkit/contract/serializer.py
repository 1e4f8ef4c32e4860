"""
Where: dispatchkit/contract/serializer.py
What: Per-status response emission against a contract's response schemas.
Why: send_typed trusts the caller; send_validated normalizes through the schema first.
"""

from typing import Any, Dict, Optional

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from ..core.http import JSON_CONTENT_TYPE, AppResponse, is_no_body_status
from .errors import SerializationError
from .models import Contract


class ResponseSerializer:
    def __init__(self, contract: Contract):
        self.response = contract.response
        self.content_type = contract.response.content_type or JSON_CONTENT_TYPE
        self._adapters: Dict[int, TypeAdapter] = {}

    def adapter_for(self, status_code: int) -> Optional[TypeAdapter]:
        schema = self.response.schema_for(status_code)
        if schema is None:
            return None
        adapter = self._adapters.get(status_code)
        if adapter is None:
            adapter = TypeAdapter(schema)
            self._adapters[status_code] = adapter
        return adapter

    def send_typed(self, res: AppResponse, status_code: int, data: Any = None) -> None:
        """Write data unchecked when the status declares a schema."""
        res.status(status_code)
        if self.response.schema_for(status_code) is None or is_no_body_status(status_code) or data is None:
            res.end()
            return
        self._write(res, data)

    def send_validated(self, res: AppResponse, status_code: int, data: Any = None) -> None:
        """
        Parse data through the status schema and write the parsed value.

        Unknown fields are dropped and defaults applied. A mismatch raises
        SerializationError before anything is written.
        """
        adapter = self.adapter_for(status_code)
        if adapter is None or is_no_body_status(status_code):
            res.status(status_code)
            res.end()
            return

        try:
            value = adapter.validate_python(data, from_attributes=True)
        except PydanticValidationError as error:
            raise SerializationError.from_pydantic(
                error, f"Invalid response data for status code {status_code}"
            ) from error

        res.status(status_code)
        self._write(res, adapter.dump_python(value, mode="json"))

    def _write(self, res: AppResponse, payload: Any) -> None:
        res.set_header("content-type", self.content_type)
        res.json(payload)
