from .errors import ContractError, Issue, SerializationError, ValidationError
from .handler import ContractHandler, ErrorContractHandler, with_contract, with_error_contract
from .models import Contract, ErrorContract, RequestContract, ResponseContract, ResponseDef
from .security import (
    SecuredHandler,
    SecurityScheme,
    api_key_auth,
    basic_auth,
    bearer_auth,
    get_security_scheme,
    oauth2_auth,
    oidc_auth,
    with_security_scheme,
)
from .serializer import ResponseSerializer
from .validator import ContractValidator

__all__ = [
    "Contract",
    "ContractError",
    "ContractHandler",
    "ContractValidator",
    "ErrorContract",
    "ErrorContractHandler",
    "Issue",
    "RequestContract",
    "ResponseContract",
    "ResponseDef",
    "ResponseSerializer",
    "SecuredHandler",
    "SecurityScheme",
    "SerializationError",
    "ValidationError",
    "api_key_auth",
    "basic_auth",
    "bearer_auth",
    "get_security_scheme",
    "oauth2_auth",
    "oidc_auth",
    "with_contract",
    "with_error_contract",
    "with_security_scheme",
]
