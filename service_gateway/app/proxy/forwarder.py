"""
Forwarding engine for the Gateway.
"""

import asyncio
import json
import time
from dataclasses import dataclass, replace
from typing import Any, Dict, Mapping, Optional, Union

import httpx
from fastapi import Request, Response

from shared.errors import PayloadTooLargeError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from service_gateway.app.accesslog import AccessLog, ProxyLogEntry
from service_gateway.app.routing import RouteMatch

BODYLESS_METHODS = frozenset({"GET", "HEAD"})
PROPAGATED_HEADERS = ("authorization", "cookie")
DEFAULT_CONTENT_TYPE = "application/json"


def is_json_content_type(content_type: Optional[str]) -> bool:
    if not content_type:
        return False
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == "application/json" or media_type.endswith("+json")


def _encode_json(data: Any) -> bytes:
    return json.dumps(data, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


@dataclass(frozen=True)
class InboundRequest:
    """The parts of an inbound request the forwarder needs."""

    method: str
    path: str
    query: str
    headers: Mapping[str, str]
    body: bytes
    received_at: float

    @classmethod
    async def from_request(cls, request: Request, max_body_bytes: Optional[int] = None) -> "InboundRequest":
        """Capture an inbound request, enforcing the body size limit."""
        declared = request.headers.get("content-length")
        if max_body_bytes is not None and declared and declared.isdigit() and int(declared) > max_body_bytes:
            raise PayloadTooLargeError(max_body_bytes, {"content_length": int(declared)})

        body = await request.body()
        if max_body_bytes is not None and len(body) > max_body_bytes:
            raise PayloadTooLargeError(max_body_bytes, {"content_length": len(body)})

        raw_path = request.scope.get("raw_path")
        path = raw_path.split(b"?", 1)[0].decode("latin-1") if raw_path else request.url.path
        received_at = getattr(request.state, "received_at", None)

        return cls(
            method=request.method.upper(),
            path=path,
            query=request.url.query,
            headers={key.lower(): value for key, value in request.headers.items()},
            body=body,
            received_at=received_at if received_at is not None else time.monotonic(),
        )


@dataclass(frozen=True)
class ProxyOutcome:
    """Result of one forward, relayed to the caller and then discarded."""

    status_code: int
    body: bytes
    content_type: Optional[str]
    service_name: str
    response_time_ms: float = 0.0

    def to_response(self) -> Response:
        return Response(content=self.body, status_code=self.status_code, media_type=self.content_type)


class ForwardingEngine:
    """Relays requests to backend services and never raises on upstream failure.

    Each forward makes at most one outbound call. httpx bounds each connect
    and socket read; ``total_timeout`` bounds the whole call, body included,
    so a slowly dripping upstream cannot hold a request open indefinitely.
    Connection errors, timeouts and any other failure during the call become
    a 502 outcome. Every forward, successful or not, is recorded in the
    access log exactly once.
    """

    def __init__(
        self,
        access_log: AccessLog,
        timeout: Union[httpx.Timeout, float] = 30.0,
        total_timeout: Optional[float] = None,
        user_agent: str = "Proxy-Gateway/1.0",
        metrics: Optional[MetricsCollector] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_log = access_log
        self.timeout = timeout if isinstance(timeout, httpx.Timeout) else httpx.Timeout(timeout)
        if total_timeout is None:
            total_timeout = self.timeout.read
        if total_timeout is not None and total_timeout <= 0:
            raise ValueError("total_timeout must be positive")
        self.total_timeout = total_timeout
        self.user_agent = user_agent
        self.metrics = metrics
        self.logger = get_logger("gateway.forwarder")
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get the pooled HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=False,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def build_headers(self, inbound: InboundRequest) -> Dict[str, str]:
        """Outbound headers: content type, fixed user agent, and credentials only."""
        headers = {
            "Content-Type": inbound.headers.get("content-type") or DEFAULT_CONTENT_TYPE,
            "User-Agent": self.user_agent,
        }
        for name in PROPAGATED_HEADERS:
            value = inbound.headers.get(name)
            if value:
                headers[name.title()] = value
        return headers

    def build_body(self, inbound: InboundRequest) -> Optional[bytes]:
        """Outbound body. JSON is re-serialized, anything else passes through."""
        if inbound.method in BODYLESS_METHODS or not inbound.body:
            return None
        if is_json_content_type(inbound.headers.get("content-type") or DEFAULT_CONTENT_TYPE):
            try:
                return _encode_json(json.loads(inbound.body))
            except ValueError:
                return inbound.body
        return inbound.body

    async def forward(self, inbound: InboundRequest, match: RouteMatch) -> ProxyOutcome:
        """Forward ``inbound`` to the matched service. Always returns an outcome."""
        service = match.service_name
        self.logger.info(
            "Proxying request",
            method=inbound.method,
            path=inbound.path,
            target_url=match.target_url,
            service=service
        )

        try:
            client = await self._get_client()
            response = await asyncio.wait_for(
                client.request(
                    inbound.method,
                    match.target_url,
                    headers=self.build_headers(inbound),
                    content=self.build_body(inbound),
                ),
                self.total_timeout,
            )
            outcome = self._translate_response(response, service)
        except asyncio.TimeoutError as e:
            outcome = self._bad_gateway(service, f"Upstream request timed out after {self.total_timeout}s", e)
        except httpx.TimeoutException as e:
            outcome = self._bad_gateway(service, f"Upstream request timed out ({type(e).__name__})", e)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            outcome = self._bad_gateway(service, str(e) or type(e).__name__, e)
        except Exception as e:
            self.logger.error("Unexpected proxy error", service=service, error=str(e), exc_info=True)
            outcome = self._bad_gateway(service, str(e) or type(e).__name__, e)

        elapsed = time.monotonic() - inbound.received_at
        outcome = replace(outcome, response_time_ms=elapsed * 1000)

        await self.access_log.record(
            ProxyLogEntry(
                method=inbound.method,
                path=inbound.path,
                target_service=service,
                status_code=outcome.status_code,
                response_time_ms=outcome.response_time_ms,
            )
        )
        if self.metrics is not None:
            self.metrics.record_proxy_request(service, outcome.status_code, elapsed)

        return outcome

    def _translate_response(self, response: httpx.Response, service: str) -> ProxyOutcome:
        content_type = response.headers.get("content-type")
        body = response.content

        if is_json_content_type(content_type) and body:
            try:
                return ProxyOutcome(
                    status_code=response.status_code,
                    body=_encode_json(response.json()),
                    content_type=DEFAULT_CONTENT_TYPE,
                    service_name=service,
                )
            except ValueError:
                self.logger.warning("Upstream sent invalid JSON, relaying raw body", service=service)

        return ProxyOutcome(
            status_code=response.status_code,
            body=body,
            content_type=content_type,
            service_name=service,
        )

    def _bad_gateway(self, service: str, diagnostic: str, exc: Exception) -> ProxyOutcome:
        self.logger.error(
            "Proxy upstream failure",
            service=service,
            error=diagnostic,
            error_type=type(exc).__name__
        )
        if self.metrics is not None:
            self.metrics.record_error("UPSTREAM_UNAVAILABLE", service)
        return ProxyOutcome(
            status_code=502,
            body=_encode_json({
                "error": "Bad Gateway",
                "message": f"Failed to connect to {service} service",
                "details": diagnostic,
            }),
            content_type=DEFAULT_CONTENT_TYPE,
            service_name=service,
        )
