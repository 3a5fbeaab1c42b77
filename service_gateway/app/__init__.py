"""
Proxy Gateway package.

The gateway fronts a fixed set of backend microservices, enforcing:
- Security headers and CORS on every response
- Per-client fixed-window rate limiting ahead of routing
- First-match route resolution onto static backend base URLs
- Bounded, at-most-once forwarding that never leaks upstream failures
- A bounded in-memory access log of forwarded requests

Structure:
- app.main: FastAPI app, routes, and middleware wiring.
- app.config: Settings and the static service catalog.
- app.routing: Route table and resolver.
- app.proxy: Forwarding engine.
- app.ratelimit: Fixed-window limiter and middleware.
- app.accesslog: Ring buffer of proxy transactions.
- app.domain: Cross-cutting middleware (security headers).
"""
