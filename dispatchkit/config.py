"""
Application configuration definition.

Loads configuration from environment variables and provides a Pydantic model.
Uses pydantic-settings for type safety and defaults.
"""

import sys
from typing import Annotated, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import NoDecode

from .core.config import BaseAppConfig
from .models.route import AuthPolicy


class AppConfig(BaseAppConfig):
    """
    Configuration for a dispatchkit application.
    """

    # Server settings
    APP_NAME: str = Field(default="dispatchkit", description="Application name")
    APP_VERSION: str = Field(default="0.0.0", description="Version reported by /__version")
    APP_HOST: str = Field(default="0.0.0.0", description="Listen host")
    APP_PORT: int = Field(default=3030, description="Listen port")
    APP_SOCKET: Optional[str] = Field(default=None, description="Unix socket path (wins over host/port)")
    APP_DEV_MODE: bool = Field(default=False, description="Development mode (shorter request logs)")

    # Routing defaults
    APP_AUTH_POLICY: AuthPolicy = Field(
        default=AuthPolicy.DISABLED, description="Default auth policy for routes"
    )
    APP_ENABLE_CACHING: bool = Field(
        default=False, description="Allow response caching unless a route overrides it"
    )
    APP_REQUEST_ID_HEADER: str = Field(default="x-request-id", description="Request id header")

    # Telemetry
    APP_TELEMETRY_ENABLE_SELF_STATS: bool = Field(
        default=False, description="Emit a stats record for every finished request"
    )

    # Content-Security-Policy
    APP_CSP_ENABLE: bool = Field(default=False, description="Send a Content-Security-Policy header")
    APP_CSP_REPORT_ONLY: bool = Field(default=False, description="Use the Report-Only header")
    APP_CSP_POLICY: str = Field(default="default-src 'self'", description="Default policy string")
    APP_CSP_REPORT_URI: Optional[str] = Field(default=None, description="CSP report-uri")

    # CSRF
    APP_CSRF_SECRET: Annotated[List[str], NoDecode] = Field(
        default_factory=list, description="CSRF secrets, newest first (comma separated)"
    )
    APP_CSRF_LIFETIME: int = Field(default=2592000, description="CSRF token lifetime (seconds)")
    APP_CSRF_HEADER_NAME: str = Field(default="x-csrf-token", description="CSRF token header")
    APP_CSRF_METHODS: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["POST", "PUT", "DELETE", "PATCH"],
        description="Methods that require a CSRF token (comma separated)",
    )

    @field_validator("APP_CSRF_SECRET", "APP_CSRF_METHODS", mode="before")
    @classmethod
    def _split_csv(cls, value):
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("APP_CSRF_METHODS")
    @classmethod
    def _upper_methods(cls, value: List[str]) -> List[str]:
        return [method.upper() for method in value]

    # model_config is inherited


# Load config as a singleton.
# pydantic-settings reads environment variables during instantiation.
try:
    config = AppConfig()
except Exception as e:
    sys.stderr.write(f"Failed to load configuration: {e}\n")
    raise
