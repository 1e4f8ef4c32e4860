"""
dispatchkit application

Builds a FastAPI application from a declarative route table:

    app = AppKit({
        "GET /ping": ping,
        "POST /items": {"handler": create_item, "auth_policy": "required"},
        "MOUNT /admin": admin_routes,
    })
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Callable, List, Mapping, Optional, Sequence

import uvicorn
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from starlette.types import Receive, Scope, Send

from .config import AppConfig
from .config import config as default_config
from .core.pipeline import Stage
from .core.router import RegisteredRoute, RouteDispatcher
from .core.stages import StatsSink
from .exceptions import ErrorStage, build_error_stages, register_exception_handlers
from .middleware import build_request_context_middleware

logger = logging.getLogger(__name__)


class AppKit:
    def __init__(
        self,
        routes: Mapping[str, Any],
        *,
        config: Optional[AppConfig] = None,
        auth_handler: Optional[Stage] = None,
        before_auth: Sequence[Stage] = (),
        after_auth: Sequence[Stage] = (),
        final_error_handler: Optional[ErrorStage] = None,
        validation_error_handler: Optional[Callable[[AppConfig], ErrorStage]] = None,
        stats_sink: Optional[StatsSink] = None,
    ):
        self.config = config or default_config
        self.dispatcher = RouteDispatcher(
            self.config,
            auth_handler=auth_handler,
            before_auth=before_auth,
            after_auth=after_auth,
            error_stages=build_error_stages(
                self.config,
                final_error_handler=final_error_handler,
                validation_error_handler=validation_error_handler,
            ),
            stats_sink=stats_sink,
        )
        self.app = self._create_app()
        self.dispatcher.bind(self.app, routes)

    def _create_app(self) -> FastAPI:
        app_config = self.config

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            """Manage application lifecycle."""
            logger.info(
                f"{app_config.APP_NAME} {app_config.APP_VERSION} started",
                extra={"routes": len(self.dispatcher.registered_routes)},
            )
            yield
            logger.info(f"{app_config.APP_NAME} stopped")

        app = FastAPI(
            title=app_config.APP_NAME,
            version=app_config.APP_VERSION,
            docs_url=None,
            redoc_url=None,
            openapi_url=None,
            lifespan=lifespan,
        )
        register_exception_handlers(app)
        app.middleware("http")(build_request_context_middleware(app_config))

        async def version(_request):
            return JSONResponse({"version": app_config.APP_VERSION})

        app.add_route("/__version", version, methods=["GET"], include_in_schema=False)
        return app

    @property
    def registered_routes(self) -> List[RegisteredRoute]:
        return self.dispatcher.registered_routes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        await self.app(scope, receive, send)

    def run(self, **uvicorn_options: Any) -> None:
        """Serve the app with uvicorn on APP_SOCKET, else APP_HOST:APP_PORT."""
        if self.config.APP_SOCKET:
            logger.info(f"Listening on {self.config.APP_SOCKET}")
            uvicorn.run(self.app, uds=self.config.APP_SOCKET, log_config=None, **uvicorn_options)
        else:
            logger.info(f"Listening on {self.config.APP_HOST}:{self.config.APP_PORT}")
            uvicorn.run(
                self.app,
                host=self.config.APP_HOST,
                port=self.config.APP_PORT,
                log_config=None,
                **uvicorn_options,
            )
