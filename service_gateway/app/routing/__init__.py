"""
Routing package for the Gateway.

Maps inbound paths onto configured backend services. Resolution is pure:
the route table is built once from settings and never mutated.
"""

from .resolver import NoMatch, RouteMatch, RouteResolver, ServiceRoute, build_routes

__all__ = [
    "NoMatch",
    "RouteMatch",
    "RouteResolver",
    "ServiceRoute",
    "build_routes",
]
