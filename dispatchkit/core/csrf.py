"""
Where: dispatchkit/core/csrf.py
What: CSRF token issuing and checking middleware.
Why: Tie state-changing requests of authenticated users to a token the app issued.
"""

import hashlib
import hmac
import logging
import time
from typing import Callable, Optional, Sequence

from ..models.route import AuthPolicy
from .context import CSRF_TOKEN_PARAM_NAME, USER_ID_PARAM_NAME
from .exceptions import CsrfError
from .http import AppRequest, AppResponse

logger = logging.getLogger(__name__)

MONTH_SECONDS = 30 * 24 * 60 * 60
DEFAULT_CSRF_METHODS = ("POST", "PUT", "DELETE", "PATCH")


def _unix_time() -> int:
    return int(time.time())


class CsrfGuard:
    """
    HMAC-SHA1 CSRF tokens of the form "<hexdigest>:<timestamp>".

    The first secret signs new tokens; every secret is accepted when checking,
    so secrets can be rotated.
    """

    def __init__(
        self,
        secrets: Sequence[str],
        lifetime: int = MONTH_SECONDS,
        header_name: str = "x-csrf-token",
        methods: Sequence[str] = DEFAULT_CSRF_METHODS,
    ):
        if not secrets:
            raise ValueError("Misconfigured application: CSRF secret key should be specified")
        self.secrets = list(secrets)
        self.lifetime = lifetime
        self.header_name = header_name.lower()
        self.methods = {method.upper() for method in methods}

    def build_token(
        self, user_id: str, timestamp: Optional[int] = None, secret: Optional[str] = None
    ) -> str:
        timestamp = _unix_time() if timestamp is None else timestamp
        message = f"{user_id}:{timestamp}".encode("utf-8")
        digest = hmac.new((secret or self.secrets[0]).encode("utf-8"), message, hashlib.sha1)
        return f"{digest.hexdigest()}:{timestamp}"

    def validate(self, user_id: str, token: Optional[str]) -> None:
        if not token:
            raise CsrfError("CSRF token is missing")

        try:
            timestamp = int(token.split(":")[1])
        except (IndexError, ValueError):
            raise CsrfError("CSRF token is not valid") from None

        if self.lifetime > 0 and timestamp + self.lifetime <= _unix_time():
            raise CsrfError("CSRF token is out of date")

        for secret in self.secrets:
            if hmac.compare_digest(self.build_token(user_id, timestamp, secret), token):
                return
        raise CsrfError("CSRF token is not valid")

    def middleware(self, auth_policy: AuthPolicy) -> Callable[..., None]:
        def csrf_middleware(req: AppRequest, res: AppResponse, next_: Callable[..., None]) -> None:
            user_id = req.ctx.get(USER_ID_PARAM_NAME)
            if not user_id:
                if auth_policy == AuthPolicy.REQUIRED:
                    raise CsrfError("CSRF protection is enabled but user ID is not found")
                next_()
                return

            token = self.build_token(str(user_id))
            req.original_context.set(CSRF_TOKEN_PARAM_NAME, token, inheritable=False)
            res.set_header(self.header_name, token)

            should_check = (
                not req.route_info.disable_csrf
                and req.method.upper() in self.methods
                and not res.locals.get("oauth")
            )
            if should_check:
                try:
                    self.validate(str(user_id), req.get_header(self.header_name))
                except CsrfError as error:
                    req.ctx.log_error("CSRF_ERROR", error)
                    res.status(419).json({"error": str(error)})
                    return

            next_()

        return csrf_middleware
