"""
Concurrent fan-out of one resolved location to many enrichment adapters.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Iterable

from ..geocoding.models import ResolvedLocation
from .catalog import AdapterBinding, AdapterRegistry
from .models import EnrichmentRecord, EnrichmentResult, EnrichmentSpec

logger = logging.getLogger(__name__)


class EnrichmentOrchestrator:
    """
    Run every requested enrichment for a location and assemble the result.

    Requested identifiers with no registered adapter are left out of the
    result. Every other identifier appears exactly once, carrying either
    features or an error.

    Args:
        registry: Snapshot of identifier -> adapter bindings
        max_workers: Upper bound on concurrent adapter calls
    """

    def __init__(self, registry: AdapterRegistry, max_workers: int = 8):
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self.registry = registry
        self.max_workers = max_workers

    def plan(self, specs: Iterable[EnrichmentSpec]) -> list[tuple[AdapterBinding, float]]:
        """Bindings and clamped radii for the supported, de-duplicated specs."""
        planned: list[tuple[AdapterBinding, float]] = []
        seen: set[str] = set()
        for spec in specs:
            if spec.identifier in seen:
                continue
            seen.add(spec.identifier)
            binding = self.registry.get(spec.identifier)
            if binding is None:
                logger.debug(f"No enrichment adapter registered for '{spec.identifier}'; skipping")
                continue
            planned.append((binding, binding.resolve_radius(spec.radius)))
        return planned

    @staticmethod
    def _call(binding: AdapterBinding, location: ResolvedLocation, radius: float) -> EnrichmentRecord:
        adapter = binding.adapter
        adapter.limiter.acquire()
        logger.debug(f"{adapter.identifier}: fetching at ({location.lat:.5f}, {location.lon:.5f}) radius={radius}")
        return adapter.fetch(location, radius)

    def enrich(self, location: ResolvedLocation, specs: Iterable[EnrichmentSpec]) -> EnrichmentResult:
        planned = self.plan(specs)
        if not planned:
            return EnrichmentResult(location=location, enrichments={})

        records: list[EnrichmentRecord | None] = [None] * len(planned)
        workers = min(self.max_workers, len(planned))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            future_to_idx = {
                executor.submit(self._call, binding, location, radius): idx
                for idx, (binding, radius) in enumerate(planned)
            }
            for future in as_completed(future_to_idx):
                idx = future_to_idx[future]
                binding, radius = planned[idx]
                try:
                    record = future.result()
                except Exception as e:
                    logger.warning(f"{binding.identifier}: enrichment raised {type(e).__name__}: {e}")
                    record = EnrichmentRecord.failure(binding.identifier, f"{type(e).__name__}: {e}", radius_miles=radius)
                if record is None or record.identifier != binding.identifier:
                    record = EnrichmentRecord.failure(binding.identifier, "Adapter returned no record", radius_miles=radius)
                records[idx] = record

        enrichments = {record.identifier: record for record in records}
        failed = sum(1 for r in enrichments.values() if not r.ok)
        if failed:
            logger.info(f"Enrichment finished with {failed}/{len(enrichments)} failed adapters")
        return EnrichmentResult(location=location, enrichments=enrichments)
