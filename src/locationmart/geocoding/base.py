"""
Abstract base classes for the geocoding system.

These define the interfaces that all concrete implementations must follow.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

from ..utils.http import HttpRequest
from .models import GeocodeQuery, GeocodeResult, RateLimit


class RateLimiter(ABC):
    """
    Abstract base for rate limiters.

    Rate limiters control the rate at which requests are made,
    useful for respecting API rate limits.
    """

    @abstractmethod
    def acquire(self, count: int = 1) -> None:
        """
        Acquire one or more request slots, blocking until they are free.

        Args:
            count: Number of requests to acquire (for bulk operations)
        """
        pass

    def wait(self) -> None:
        """Block until it's safe to make another request."""
        self.acquire(1)


class LookupAdapter(ABC):
    """
    Abstract base for lookup adapters.

    A lookup adapter binds the composite geocoder to one provider's query
    and response dialect. It never performs I/O itself: it builds
    ``HttpRequest`` values and parses decoded payloads, and the composite
    geocoder does the sending.
    """

    name: str = "lookup"
    rate_limit: Optional[RateLimit] = None

    def __init__(self, timeout: float = 10.0, limiter: Optional[RateLimiter] = None):
        # Imported lazily; throttling imports this module for RateLimiter
        from .throttling import limiter_for

        self.timeout = timeout
        self.limiter = limiter if limiter is not None else limiter_for(self.rate_limit)

    def supports(self, query: GeocodeQuery) -> bool:
        """
        Cheap, local relevance check. Must not touch the network, and
        should return True whenever in doubt.
        """
        return True

    @abstractmethod
    def build_requests(self, query: GeocodeQuery) -> list[HttpRequest]:
        """
        Build the request(s) for a query.

        More than one request may be returned (e.g. a precise query followed
        by a looser fallback); all of them are issued.
        """
        pass

    @abstractmethod
    def parse_response(self, payload: Any, query: GeocodeQuery) -> list[GeocodeResult]:
        """
        Normalize a decoded response into candidates.

        Must be pure and defensive: missing fields are skipped, and a
        response without matches yields an empty list.
        """
        pass

    def resolve_locally(self, query: GeocodeQuery) -> list[GeocodeResult]:
        """Candidates that need no request at all. Empty by default."""
        return []

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
