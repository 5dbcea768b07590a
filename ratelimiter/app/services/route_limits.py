"""Static route to Limit lookup.

The lookup never returns ``None``: a route is either ``Gated`` with its
Limit or explicitly ``Ungated``, and callers branch on the type.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping, Union

from ratelimiter.app.services.token_bucket.models import Limit


@dataclass(frozen=True)
class Gated:
    """A route with a configured Limit."""
    route: str
    limit: Limit


@dataclass(frozen=True)
class Ungated:
    """A route with no Limit: requests pass without evaluation."""
    route: str


LimitLookup = Union[Gated, Ungated]


class RouteLimitTable:
    """Read-only table of per-route limits, built once at startup."""

    def __init__(self, limits: Mapping[str, Limit]) -> None:
        self._limits = MappingProxyType(dict(limits))

    @classmethod
    def from_settings(cls, settings: Any) -> "RouteLimitTable":
        """Build the table from ``settings.rate_limit_routes``."""
        return cls({
            route: Limit(
                capacity=cfg.capacity,
                refill_rate=cfg.refill_rate,
                failure_mode=cfg.failure_mode,
            )
            for route, cfg in settings.rate_limit_routes.items()
        })

    def lookup(self, route: str) -> LimitLookup:
        limit = self._limits.get(route)
        if limit is None:
            return Ungated(route)
        return Gated(route, limit)

    @property
    def routes(self) -> list[str]:
        return sorted(self._limits)

    def __len__(self) -> int:
        return len(self._limits)
