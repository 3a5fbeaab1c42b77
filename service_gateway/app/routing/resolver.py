"""
Route resolution for the Gateway.
"""

from dataclasses import dataclass
from typing import FrozenSet, List, Optional, Sequence, Tuple, Union

from service_gateway.app.config import SERVICE_CATALOG, GatewaySettings


@dataclass(frozen=True)
class ServiceRoute:
    """Static mapping from a path pattern to a backend service.

    Patterns ending in ``/*`` match any path below the prefix; all other
    patterns match a single fixed path (one trailing slash tolerated).
    """

    path_pattern: str
    service_name: str
    target_base_url: str
    methods: Optional[FrozenSet[str]] = None

    def __post_init__(self):
        if not self.path_pattern.startswith("/"):
            raise ValueError(f"Route pattern must start with '/': {self.path_pattern!r}")

    @property
    def is_wildcard(self) -> bool:
        return self.path_pattern.endswith("/*")

    def matches(self, method: str, path: str) -> bool:
        if self.methods is not None and method.upper() not in self.methods:
            return False
        if self.is_wildcard:
            return path.startswith(self.path_pattern[:-1])
        return path == self.path_pattern or path == self.path_pattern + "/"


@dataclass(frozen=True)
class RouteMatch:
    route: ServiceRoute
    target_url: str

    @property
    def service_name(self) -> str:
        return self.route.service_name


@dataclass(frozen=True)
class NoMatch:
    path: str
    available_patterns: Tuple[str, ...]


class RouteResolver:
    """Ordered, first-match-wins route table."""

    def __init__(self, routes: Sequence[ServiceRoute]):
        self._routes: Tuple[ServiceRoute, ...] = tuple(routes)

    @property
    def routes(self) -> Tuple[ServiceRoute, ...]:
        return self._routes

    @property
    def patterns(self) -> Tuple[str, ...]:
        seen: List[str] = []
        for route in self._routes:
            if route.path_pattern not in seen:
                seen.append(route.path_pattern)
        return tuple(seen)

    def resolve(self, method: str, path: str, query: str = "") -> Union[RouteMatch, NoMatch]:
        """Resolve a request to its target, or NoMatch when nothing is configured for it."""
        for route in self._routes:
            if route.matches(method, path):
                return RouteMatch(route=route, target_url=self.build_target_url(route, path, query))
        return NoMatch(path=path, available_patterns=self.patterns)

    @staticmethod
    def build_target_url(route: ServiceRoute, path: str, query: str = "") -> str:
        url = f"{route.target_base_url}{path}"
        if query:
            url = f"{url}?{query}"
        return url


def build_routes(settings: GatewaySettings) -> List[ServiceRoute]:
    """Build the route table from the service catalog, preserving catalog order."""
    urls = settings.service_urls()
    return [
        ServiceRoute(path_pattern=pattern, service_name=service.key, target_base_url=urls[service.key])
        for service in SERVICE_CATALOG
        for pattern in service.patterns
    ]
