"""
Contract-bearing handler handles.

with_contract() returns a ContractHandler that carries the wrapped callable
together with its contract, validator and serializer, so nothing has to be
looked up by function identity later.
"""

import functools
import inspect
from typing import Any, Callable, Optional

from ..core.http import AppRequest, AppResponse
from ..models.route import callable_name
from .models import Contract, ErrorContract
from .serializer import ResponseSerializer
from .validator import ContractValidator


class ContractHandler:
    def __init__(self, handler: Callable[..., Any], contract: Contract):
        functools.update_wrapper(self, handler)
        self.handler = handler
        self.contract = contract
        self.validator = ContractValidator(contract, callable_name(handler))
        self.serializer = ResponseSerializer(contract)

    async def __call__(self, req: AppRequest, res: AppResponse) -> Any:
        async def validate():
            return await self.validator.apply(req)

        req.validate = validate
        res.bind_serializer(self.serializer)

        if not self.contract.manual_validation:
            await self.validator.apply(req)

        result = self.handler(req, res)
        if inspect.isawaitable(result):
            result = await result
        return result

    def __repr__(self) -> str:
        return f"<ContractHandler {callable_name(self.handler) or self.handler!r}>"


def with_contract(contract: Contract) -> Callable[[Callable[..., Any]], ContractHandler]:
    """
    Declare a request/response contract for a route handler.

    Example:
        @with_contract(Contract(request={"body": ItemIn}, response={"content": {201: ItemOut}}))
        async def create_item(req, res):
            res.send_validated(201, {"id": "1", **req.body.model_dump()})
    """

    def decorator(handler: Callable[..., Any]) -> ContractHandler:
        return ContractHandler(handler, contract)

    return decorator


class ErrorContractHandler:
    def __init__(self, handler: Callable[..., Any], contract: ErrorContract):
        functools.update_wrapper(self, handler)
        self.handler = handler
        self.contract = contract

    def __call__(
        self,
        error: BaseException,
        req: AppRequest,
        res: AppResponse,
        next_: Optional[Callable[..., None]] = None,
    ) -> Any:
        res.bind_error_contract(self.contract)
        return self.handler(error, req, res, next_)


def with_error_contract(contract: ErrorContract) -> Callable[[Callable[..., Any]], ErrorContractHandler]:
    """Declare the error responses an (error, req, res, next) handler may send."""

    def decorator(handler: Callable[..., Any]) -> ErrorContractHandler:
        return ErrorContractHandler(handler, contract)

    return decorator
