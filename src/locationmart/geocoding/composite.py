"""
Composite geocoder: fans one query out to several lookup adapters and
merges their candidates into a single ranked list.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Sequence

import requests

from ..utils.errors import AdapterRequestError, InvalidQueryError, LocationNotFoundError
from ..utils.http import fetch_json
from .base import LookupAdapter
from .models import AdapterFailure, GeocodeOutcome, GeocodeQuery, GeocodeResult, ResolvedLocation

logger = logging.getLogger(__name__)


class CompositeGeocoder:
    """
    Queries a configured list of lookup adapters and ranks the merged result.

    Ranking is by the adapters' own confidence, highest first. Equal scores
    keep adapter registration order, then the order inside each response.
    Candidates within ``dedupe_tolerance`` degrees of a better-ranked one
    are dropped (1e-4 degrees is roughly 11 m).
    """

    def __init__(
        self,
        adapters: Sequence[LookupAdapter],
        session: Optional[requests.Session] = None,
        dedupe_tolerance: float = 1e-4,
    ):
        names = [a.name for a in adapters]
        duplicates = {n for n in names if names.count(n) > 1}
        if duplicates:
            raise ValueError(f"Duplicate lookup adapter names: {sorted(duplicates)}")

        self.adapters = list(adapters)
        self.session = session if session is not None else requests.Session()
        self.dedupe_tolerance = dedupe_tolerance

        logger.info(f"Initialized CompositeGeocoder with adapters: {names}")

    def _run_adapter(
        self,
        adapter: LookupAdapter,
        query: GeocodeQuery,
    ) -> tuple[list[GeocodeResult], list[AdapterFailure]]:
        """Issue every request of one adapter in order; never raises."""
        candidates: list[GeocodeResult] = []
        failures: list[AdapterFailure] = []

        try:
            candidates.extend(adapter.resolve_locally(query))
        except Exception as e:
            logger.warning(f"[{adapter.name}] local lookup failed: {e}")
            failures.append(AdapterFailure(adapter=adapter.name, error_label="local_error", message=str(e)[:500]))

        try:
            http_requests = adapter.build_requests(query)
        except Exception as e:
            logger.warning(f"[{adapter.name}] could not build requests: {e}")
            failures.append(AdapterFailure(adapter=adapter.name, error_label="build_error", message=str(e)[:500]))
            return candidates, failures

        for request in http_requests:
            adapter.limiter.acquire()
            try:
                payload = fetch_json(self.session, request, timeout=adapter.timeout)
            except AdapterRequestError as e:
                logger.warning(f"[{adapter.name}] request failed ({e.label}): {e}")
                failures.append(AdapterFailure(
                    adapter=adapter.name,
                    url=e.url,
                    http_status=e.http_status,
                    error_label=e.label,
                    message=str(e)[:500],
                ))
                continue

            try:
                parsed = adapter.parse_response(payload, query)
            except Exception as e:
                logger.warning(f"[{adapter.name}] could not parse response: {e}")
                failures.append(AdapterFailure(
                    adapter=adapter.name,
                    url=request.url,
                    error_label="parse_error",
                    message=str(e)[:500],
                ))
                continue
            candidates.extend(c for c in parsed if c.is_valid())

        logger.debug(f"[{adapter.name}] {len(candidates)} candidates, {len(failures)} failures")
        return candidates, failures

    def _rank(self, per_adapter: list[list[GeocodeResult]]) -> list[GeocodeResult]:
        keyed = [
            (-candidate.confidence, adapter_index, position, candidate)
            for adapter_index, candidates in enumerate(per_adapter)
            for position, candidate in enumerate(candidates)
        ]
        keyed.sort(key=lambda k: k[:3])
        ranked = [k[3] for k in keyed]

        if self.dedupe_tolerance <= 0:
            return ranked

        unique: list[GeocodeResult] = []
        for candidate in ranked:
            duplicate = any(
                abs(u.lat - candidate.lat) < self.dedupe_tolerance
                and abs(u.lon - candidate.lon) < self.dedupe_tolerance
                for u in unique
            )
            if not duplicate:
                unique.append(candidate)
        return unique

    def geocode_with_report(self, query: GeocodeQuery) -> GeocodeOutcome:
        """
        Geocode a query and report which adapters ran and what failed.

        Raises:
            InvalidQueryError if the query has neither text nor coordinates
        """
        if query.is_empty():
            raise InvalidQueryError("Query has no text and no coordinates")

        active: list[LookupAdapter] = []
        failures: list[AdapterFailure] = []
        for adapter in self.adapters:
            try:
                if adapter.supports(query):
                    active.append(adapter)
            except Exception as e:
                logger.warning(f"[{adapter.name}] supports() failed: {e}")
                failures.append(AdapterFailure(adapter=adapter.name, error_label="supports_error", message=str(e)[:500]))
        if not active:
            logger.info(f"No adapter supports query '{query.label()}'")
            return GeocodeOutcome(query=query, failures=failures)

        per_adapter: list[list[GeocodeResult]] = []
        with ThreadPoolExecutor(max_workers=len(active)) as executor:
            futures = [executor.submit(self._run_adapter, adapter, query) for adapter in active]
            # Collected in registration order, whatever order they finish in
            for future in futures:
                candidates, adapter_failures = future.result()
                per_adapter.append(candidates)
                failures.extend(adapter_failures)

        return GeocodeOutcome(
            query=query,
            results=self._rank(per_adapter),
            failures=failures,
            adapters_tried=[a.name for a in active],
        )

    def geocode(self, query: GeocodeQuery) -> list[GeocodeResult]:
        """Ranked, deduplicated candidates for a query."""
        return self.geocode_with_report(query).results

    def resolve_one(self, query: GeocodeQuery) -> ResolvedLocation:
        """
        Resolve a query to its best candidate.

        Raises:
            InvalidQueryError if the query has neither text nor coordinates
            LocationNotFoundError if no adapter produced a candidate
        """
        outcome = self.geocode_with_report(query)
        best = outcome.best()
        if best is None:
            raise LocationNotFoundError(query, outcome.failures)

        logger.info(f"Resolved '{query.label()}' via {best.source} ({best.lat:.6f}, {best.lon:.6f})")
        return ResolvedLocation.from_candidate(best)
