"""
Address / coordinate resolution and location enrichment.

- geocoding: lookup adapters and the composite geocoder
- enrichment: enrichment adapters, catalog, registry and orchestrator
- batch: sequential batch runner and tabular export
"""

from .service import LocationService

__version__ = "0.1.0"

__all__ = ["LocationService"]
