"""
- Models: Enrichment specs, features, records and results
- Base classes: EnrichmentAdapter interface
- Sources: ArcGIS, Overpass, point-attribute and custom POI adapters
- Catalog: Catalog entries and the immutable adapter registry
- Orchestrator: Concurrent per-location fan-out
"""

from .models import (
    QueryMode,
    RadiusBounds,
    EnrichmentSpec,
    Feature,
    EnrichmentRecord,
    EnrichmentResult,
)

from .base import EnrichmentAdapter

from .sources import (
    ArcGISFeatureAdapter,
    OverpassPOIAdapter,
    PointAttributeAdapter,
    CustomPOIAdapter,
    extract_open_meteo_elevation,
    extract_open_meteo_weather,
    extract_census_geographies,
)

from .catalog import (
    CatalogEntry,
    Catalog,
    AdapterBinding,
    AdapterRegistry,
)

from .orchestrator import EnrichmentOrchestrator

__all__ = [
    # Models
    "QueryMode",
    "RadiusBounds",
    "EnrichmentSpec",
    "Feature",
    "EnrichmentRecord",
    "EnrichmentResult",
    # Base classes
    "EnrichmentAdapter",
    # Sources
    "ArcGISFeatureAdapter",
    "OverpassPOIAdapter",
    "PointAttributeAdapter",
    "CustomPOIAdapter",
    "extract_open_meteo_elevation",
    "extract_open_meteo_weather",
    "extract_census_geographies",
    # Catalog
    "CatalogEntry",
    "Catalog",
    "AdapterBinding",
    "AdapterRegistry",
    # Orchestrator
    "EnrichmentOrchestrator",
]
