"""
Single-location entry point: resolve a query, then enrich the result.
"""

from __future__ import annotations

import logging
from typing import Iterable

from .enrichment import EnrichmentOrchestrator, EnrichmentResult, EnrichmentSpec
from .geocoding import CompositeGeocoder, GeocodeQuery, ResolvedLocation

logger = logging.getLogger(__name__)


class LocationService:
    """Composite geocoder plus enrichment orchestrator behind one call."""

    def __init__(self, geocoder: CompositeGeocoder, orchestrator: EnrichmentOrchestrator):
        self.geocoder = geocoder
        self.orchestrator = orchestrator

    @staticmethod
    def as_query(query: GeocodeQuery | str) -> GeocodeQuery:
        if isinstance(query, GeocodeQuery):
            return query
        return GeocodeQuery.parse(query or "")

    def resolve(self, query: GeocodeQuery | str) -> ResolvedLocation:
        """
        Raises:
            InvalidQueryError if the query is empty
            LocationNotFoundError if no adapter found the location
        """
        return self.geocoder.resolve_one(self.as_query(query))

    def enrich(self, location: ResolvedLocation, specs: Iterable[EnrichmentSpec]) -> EnrichmentResult:
        return self.orchestrator.enrich(location, specs)

    def lookup(self, query: GeocodeQuery | str, specs: Iterable[EnrichmentSpec]) -> EnrichmentResult:
        """Resolve ``query`` and run the requested enrichments at that point."""
        location = self.resolve(query)
        logger.debug(f"Resolved to ({location.lat:.5f}, {location.lon:.5f}) via {location.source}")
        return self.enrich(location, specs)
