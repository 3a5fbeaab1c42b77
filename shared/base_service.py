"""
Base service class for the proxy gateway.
"""

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from typing import Optional
import time

from prometheus_client import CollectorRegistry

from shared.config import BaseConfig
from shared.logging import clear_context, configure_logging, get_logger, set_request_id
from shared.metrics import get_metrics_collector
from shared.errors import GatewayException


class BaseService:
    """Base service class with common functionality."""

    version = "1.0.0"

    def __init__(self, service_name: str, config: BaseConfig, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.config = config
        self.port = config.port
        self.logger = get_logger(f"{service_name}.service")
        self.metrics = get_metrics_collector(service_name, registry)
        self._start_time = time.monotonic()

        configure_logging(service_name, self.config.log_level)

        self.app = self._create_app()
        self._setup_middleware()
        self._setup_routes()

    def _create_app(self) -> FastAPI:
        """Create FastAPI application."""
        return FastAPI(
            title=f"{self.service_name.title()} Service",
            description=f"Proxy Gateway - {self.service_name.title()} Service",
            version=self.version,
            docs_url="/docs" if self.config.env == "local" else None,
            redoc_url="/redoc" if self.config.env == "local" else None,
            lifespan=self._lifespan,
        )

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        await self._on_startup()
        try:
            yield
        finally:
            await self._on_shutdown()

    async def _on_startup(self):
        """Startup hook. Override in subclasses."""

    async def _on_shutdown(self):
        """Shutdown hook. Override in subclasses."""

    def _setup_policy_middleware(self):
        """Install service policy middleware. Runs inside CORS."""

    def _setup_response_middleware(self):
        """Install middleware that must see every response, CORS preflights included."""

    def _setup_middleware(self):
        """Set up middleware.

        Starlette runs the most recently added middleware first: policy
        middleware sits inside CORS, response middleware wraps CORS, and the
        timing middleware wraps everything.
        """
        self._setup_policy_middleware()

        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=list(self.config.cors_allow_origins),
            allow_credentials=self.config.cors_allow_credentials,
            allow_methods=list(self.config.cors_allow_methods),
            allow_headers=list(self.config.cors_allow_headers),
        )
        self._setup_response_middleware()

        @self.app.middleware("http")
        async def add_request_timing(request: Request, call_next):
            start_time = time.monotonic()
            request.state.received_at = start_time
            request_id = set_request_id(request.headers.get("X-Request-ID"))

            try:
                response = await call_next(request)

                duration = time.monotonic() - start_time
                route = request.scope.get("route")
                endpoint = getattr(route, "path", request.url.path)

                self.metrics.record_http_request(
                    method=request.method,
                    endpoint=endpoint,
                    status_code=response.status_code,
                    duration=duration
                )

                self.logger.info(
                    "HTTP request",
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    duration_ms=round(duration * 1000, 2)
                )

                response.headers["X-Request-ID"] = request_id
                return response
            finally:
                clear_context()

    def _setup_routes(self):
        """Set up common routes."""

        @self.app.get("/metrics", include_in_schema=False)
        async def metrics_endpoint():
            """Prometheus metrics endpoint."""
            return Response(
                content=self.metrics.render(),
                media_type=self.metrics.content_type
            )

        @self.app.exception_handler(GatewayException)
        async def gateway_exception_handler(request: Request, exc: GatewayException):
            """Handle GatewayException."""
            self.logger.warning(
                "Gateway error",
                code=exc.code,
                message=exc.message,
                details=exc.details
            )
            self.metrics.record_error(exc.code)
            return JSONResponse(
                status_code=exc.status_code,
                content=exc.to_response().model_dump()
            )

        @self.app.exception_handler(Exception)
        async def general_exception_handler(request: Request, exc: Exception):
            """Handle general exceptions."""
            self.logger.error("Unhandled exception", error=str(exc), exc_info=True)
            self.metrics.record_error("INTERNAL_ERROR")
            return JSONResponse(
                status_code=500,
                content={
                    "code": "INTERNAL_ERROR",
                    "message": "Internal server error",
                    "details": {}
                }
            )

    def _get_uptime(self) -> float:
        """Get service uptime in seconds."""
        return time.monotonic() - self._start_time

    def run(self):
        """Run the service."""
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower(),
            server_header=False,
        )
