"""
Proxy Gateway service.

Request lifecycle: request timing -> security headers -> CORS -> rate
limiting -> route resolution -> forwarding -> access log -> response.
"""

import sys
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
from fastapi import Query, Request
from fastapi.responses import JSONResponse
from prometheus_client import CollectorRegistry

from shared.base_service import BaseService
from shared.errors import ConfigurationError
from shared.logging import configure_logging, get_logger
from service_gateway.app.accesslog import AccessLog, ProxyLogEntry
from service_gateway.app.config import SERVICE_CATALOG, GatewaySettings, ServiceDefinition, load_settings
from service_gateway.app.domain import SecurityHeadersMiddleware
from service_gateway.app.proxy import ForwardingEngine, InboundRequest
from service_gateway.app.ratelimit import FixedWindowRateLimiter, RateLimitMiddleware
from service_gateway.app.routing import NoMatch, RouteResolver, build_routes

PROXY_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]


class GatewayService(BaseService):
    """API Gateway service implementation.

    The rate limiter table and the access log are owned by this instance
    and may be injected, so tests and embedders control all shared state.
    """

    def __init__(
        self,
        settings: Optional[GatewaySettings] = None,
        *,
        rate_limiter: Optional[FixedWindowRateLimiter] = None,
        access_log: Optional[AccessLog] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        registry: Optional[CollectorRegistry] = None,
    ):
        self.settings = settings if settings is not None else load_settings()
        if rate_limiter is None:
            rate_limiter = FixedWindowRateLimiter(
                max_requests=self.settings.rate_limit_max_requests,
                window_seconds=self.settings.rate_limit_window_seconds,
            )
        self.rate_limiter = rate_limiter
        # AccessLog defines __len__, so an empty injected log is falsy
        self.access_log = access_log if access_log is not None else AccessLog(self.settings.access_log_capacity)
        self.resolver = RouteResolver(build_routes(self.settings))

        super().__init__("gateway", self.settings, registry)

        self.forwarder = ForwardingEngine(
            self.access_log,
            timeout=httpx.Timeout(
                self.settings.upstream_timeout_seconds,
                connect=self.settings.upstream_connect_timeout_seconds,
            ),
            total_timeout=self.settings.upstream_timeout_seconds,
            user_agent=self.settings.user_agent,
            metrics=self.metrics,
            transport=transport,
        )

        self._setup_gateway_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.gateway_service = self

    def _setup_policy_middleware(self):
        self.app.add_middleware(
            RateLimitMiddleware,
            rate_limiter=self.rate_limiter,
            exempt_paths=self.settings.rate_limit_exempt_paths,
            trust_forwarded_headers=self.settings.trust_forwarded_headers,
            metrics=self.metrics,
        )

    def _setup_response_middleware(self):
        """Security headers wrap CORS and rate limiting, so preflights and 429s carry them."""
        self.app.add_middleware(SecurityHeadersMiddleware)

    async def _on_startup(self):
        self.logger.info(
            "Gateway starting",
            port=self.settings.port,
            services=self.settings.service_urls(),
            rate_limit=self.settings.rate_limit_max_requests,
            rate_limit_window_seconds=self.settings.rate_limit_window_seconds,
            upstream_timeout_seconds=self.settings.upstream_timeout_seconds,
        )

    async def _on_shutdown(self):
        await self.forwarder.close()

    def _format_iso(self, value: datetime) -> str:
        """Format datetime values as ISO-8601 strings with millisecond precision."""
        return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")

    def _service_status(self, service: ServiceDefinition, entry: Optional[ProxyLogEntry]) -> Dict[str, Any]:
        """Status of one backend as observed through recent traffic."""
        if entry is None:
            status = "unknown"
        elif entry.status_code == 502:
            status = "offline"
        elif entry.status_code >= 500:
            status = "degraded"
        else:
            status = "online"

        return {
            "key": service.key,
            "name": service.name,
            "status": status,
            "responseTimeMs": round(entry.response_time_ms, 2) if entry else None,
            "lastStatusCode": entry.status_code if entry else None,
            "lastChecked": self._format_iso(entry.timestamp) if entry else None,
        }

    def _parse_limit(self, raw: Optional[str]) -> int:
        default = min(100, self.access_log.capacity)
        try:
            limit = int(raw)
        except (TypeError, ValueError):
            return default
        if limit <= 0:
            return default
        return min(limit, self.access_log.capacity)

    def _setup_gateway_routes(self):
        """Set up gateway-specific routes. The proxy catch-all must stay last."""

        @self.app.get("/")
        async def root():
            """Describe the gateway and the route prefixes it serves."""
            return {
                "name": "Proxy Gateway",
                "version": self.version,
                "status": "running",
                "endpoints": {
                    "health": "/api/health",
                    "services": "/api/services",
                    "logs": "/api/logs",
                },
                "microservices": list(self.resolver.patterns),
            }

        @self.app.get("/api/health")
        async def health():
            """Gateway health with per-service status derived from recent traffic."""
            latest = await self.access_log.latest_by_service()
            self.metrics.record_health_check("ok")
            return {
                "status": "healthy",
                "timestamp": self._format_iso(datetime.now(timezone.utc)),
                "uptimeSeconds": round(self._get_uptime(), 3),
                "perServiceStatus": [
                    self._service_status(service, latest.get(service.key))
                    for service in SERVICE_CATALOG
                ],
                "recentRequestCount": len(self.access_log),
            }

        @self.app.get("/api/services")
        async def services():
            """Configured backend services in catalog order."""
            latest = await self.access_log.latest_by_service()
            urls = self.settings.service_urls()
            payload: List[Dict[str, Any]] = []
            for index, service in enumerate(SERVICE_CATALOG, start=1):
                status = self._service_status(service, latest.get(service.key))
                payload.append({
                    "id": index,
                    "key": service.key,
                    "name": service.name,
                    "baseUrl": urls[service.key],
                    "status": status["status"],
                    "responseTimeMs": status["responseTimeMs"],
                    "lastChecked": status["lastChecked"],
                    "endpointsCount": service.endpoints_count,
                    "routes": list(service.patterns),
                })
            return payload

        @self.app.get("/api/logs")
        async def logs(limit: Optional[str] = Query(None)):
            """Most recent proxy transactions, newest first."""
            entries = await self.access_log.list(self._parse_limit(limit))
            return [entry.to_dict() for entry in entries]

        @self.app.api_route("/api/{path:path}", methods=PROXY_METHODS)
        async def proxy(request: Request):
            """Forward to the first matching backend, or 404 with the known prefixes."""
            inbound = await InboundRequest.from_request(request, self.settings.max_body_bytes)
            match = self.resolver.resolve(inbound.method, inbound.path, inbound.query)

            if isinstance(match, NoMatch):
                return JSONResponse(
                    status_code=404,
                    content={
                        "error": "API endpoint not found",
                        "path": match.path,
                        "availableServices": list(match.available_patterns),
                    }
                )

            outcome = await self.forwarder.forward(inbound, match)
            return outcome.to_response()


def create_app(settings: Optional[GatewaySettings] = None, **kwargs):
    """Create FastAPI application."""
    service = GatewayService(settings, **kwargs)
    return service.app


def main():
    """Console entry point. Refuses to start on invalid configuration."""
    try:
        service = GatewayService()
    except ConfigurationError as exc:
        configure_logging("gateway")
        get_logger("gateway.main").error(
            "Refusing to start: invalid configuration",
            message=exc.message,
            details=exc.details
        )
        sys.exit(1)
    service.run()


if __name__ == "__main__":
    main()
