"""
Abstract base class for enrichment adapters.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

import requests

from ..geocoding.base import RateLimiter
from ..geocoding.models import RateLimit, ResolvedLocation
from ..geocoding.throttling import limiter_for
from .models import EnrichmentRecord, QueryMode, RadiusBounds

logger = logging.getLogger(__name__)


class EnrichmentAdapter(ABC):
    """
    Abstract base for enrichment adapters.

    One adapter fetches one category of contextual data for a resolved
    location. ``fetch`` receives a radius the orchestrator has already
    clamped to ``radius_bounds``; point-in-polygon and global-attribute
    adapters accept it and ignore it.

    ``fetch`` must not raise for request problems: an unreachable service
    yields ``EnrichmentRecord.failure``, while "nothing found" is an empty
    ``EnrichmentRecord.success``.
    """

    supported_modes: frozenset[QueryMode] = frozenset({QueryMode.PROXIMITY})
    rate_limit: Optional[RateLimit] = None

    def __init__(
        self,
        identifier: str,
        default_radius: float = 1.0,
        radius_bounds: Optional[RadiusBounds] = None,
        max_radius: float = 5.0,
        timeout: float = 20.0,
        rate_limit: Optional[RateLimit] = None,
        limiter: Optional[RateLimiter] = None,
        session: Optional[requests.Session] = None,
    ):
        if not identifier:
            raise ValueError("identifier is required")
        self.identifier = identifier
        self.radius_bounds = radius_bounds or RadiusBounds(0.1, max_radius)
        self.default_radius = self.radius_bounds.clamp(default_radius)
        self.timeout = timeout
        if rate_limit is not None:
            self.rate_limit = rate_limit
        self.limiter = limiter if limiter is not None else limiter_for(self.rate_limit)
        self.session = session if session is not None else requests.Session()

    def supports_mode(self, mode: QueryMode) -> bool:
        return mode in self.supported_modes

    @abstractmethod
    def fetch(self, location: ResolvedLocation, radius: float) -> EnrichmentRecord:
        """
        Fetch and normalize this adapter's data around ``location``.

        Args:
            location: The resolved query point
            radius: Search radius in miles, already clamped

        Returns:
            A success record (possibly with no features) or a failure record
        """
        pass

    def __repr__(self) -> str:
        modes = ",".join(sorted(self.supported_modes))
        return f"{type(self).__name__}(identifier={self.identifier!r}, modes={modes})"
