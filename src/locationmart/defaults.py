"""
Factories wiring the default lookup adapters and enrichment registry.

Everything here is plain construction from ``Settings``; callers that need a
different adapter mix build a ``CompositeGeocoder`` / ``AdapterRegistry``
directly.
"""

from __future__ import annotations

import logging
from typing import Optional

import requests

from .enrichment import (
    AdapterRegistry,
    ArcGISFeatureAdapter,
    Catalog,
    EnrichmentAdapter,
    EnrichmentOrchestrator,
    OverpassPOIAdapter,
    PointAttributeAdapter,
    QueryMode,
    extract_census_geographies,
    extract_open_meteo_elevation,
    extract_open_meteo_weather,
)
from .geocoding import (
    CensusAdapter,
    CompositeGeocoder,
    CoordinateAdapter,
    LookupAdapter,
    NominatimAdapter,
    NYCGeoclientAdapter,
)
from .service import LocationService
from .settings import Settings, get_settings

logger = logging.getLogger(__name__)

FEMA_NFHL_FLOOD_ZONES_URL = (
    "https://hazards.fema.gov/arcgis/rest/services/FIRMette/NFHLREST_FIRMette/MapServer/28"
)
BLM_FIRE_PERIMETERS_URL = (
    "https://services1.arcgis.com/KbxwQRRfWyEYLgp4/arcgis/rest/services/"
    "BLM_Natl_Fire_Perimeters_Polygon/FeatureServer/0"
)
USGS_WATERSHEDS_URL = "https://hydrowfs.nationalmap.gov/arcgis/rest/services/wbd/MapServer/6"

# Overpass tag filters per POI enrichment
POI_FILTERS: dict[str, list[str]] = {
    "poi_schools": ["amenity=school", "amenity=college", "amenity=university"],
    "poi_hospitals": ["amenity=hospital", "amenity=clinic"],
    "poi_parks": ["leisure=park", "leisure=nature_reserve"],
    "poi_grocery": ["shop=supermarket", "shop=convenience", "shop=greengrocer"],
    "poi_police": ["amenity=police"],
    "poi_fire": ["amenity=fire_station"],
    "poi_transit_stops": ["highway=bus_stop", "railway=station", "public_transport=platform"],
}

DEFAULT_CATALOG_RECORDS: list[dict] = [
    {"id": "elev", "label": "Elevation", "section": "core", "is_poi": False,
     "description": "Ground elevation at the point"},
    {"id": "weather", "label": "Current Weather", "section": "core", "is_poi": False},
    {"id": "fips", "label": "Census Geographies", "section": "core", "is_poi": False,
     "description": "State, county and tract FIPS codes"},
    {"id": "fema_flood_zone", "label": "FEMA Flood Zone", "section": "hazards", "category": "flood",
     "is_poi": False, "default_radius": 1.0},
    {"id": "wildfires", "label": "Wildfire Perimeters", "section": "hazards", "category": "fire",
     "default_radius": 10.0, "max_radius": 50.0},
    {"id": "huc12_watershed", "label": "HUC-12 Watershed", "section": "natural_resources",
     "is_poi": False, "default_radius": 1.0},
    {"id": "poi_schools", "label": "Schools", "section": "community", "default_radius": 1.0},
    {"id": "poi_hospitals", "label": "Hospitals & Clinics", "section": "community", "default_radius": 5.0},
    {"id": "poi_parks", "label": "Parks", "section": "recreation", "default_radius": 1.0},
    {"id": "poi_grocery", "label": "Grocery", "section": "community", "default_radius": 1.0},
    {"id": "poi_police", "label": "Police Stations", "section": "public_safety", "default_radius": 3.0},
    {"id": "poi_fire", "label": "Fire Stations", "section": "public_safety", "default_radius": 3.0},
    {"id": "poi_transit_stops", "label": "Transit Stops", "section": "transportation",
     "default_radius": 0.5, "max_radius": 2.0},
]


def default_catalog(settings: Optional[Settings] = None) -> Catalog:
    """The built-in catalog, or the JSON catalog at ``settings.catalog_path``."""
    settings = settings or get_settings()
    if settings.catalog_path:
        return Catalog.from_json(settings.catalog_path)
    return Catalog.from_records(DEFAULT_CATALOG_RECORDS, source="defaults")


def build_lookup_adapters(settings: Optional[Settings] = None) -> list[LookupAdapter]:
    """Default adapter list in registration order (ties rank earlier first)."""
    settings = settings or get_settings()
    adapters: list[LookupAdapter] = [CoordinateAdapter()]
    if settings.nyc_geoclient_key:
        adapters.append(NYCGeoclientAdapter(
            api_key=settings.nyc_geoclient_key,
            api_base_url=settings.nyc_geoclient_url,
            timeout=settings.geocoder_timeout,
        ))
    adapters.append(NominatimAdapter(
        base_url=settings.nominatim_url,
        email=settings.nominatim_email,
        limit=settings.nominatim_limit,
        user_agent=settings.user_agent,
        timeout=settings.geocoder_timeout,
    ))
    adapters.append(CensusAdapter(
        base_url=settings.census_url,
        benchmark=settings.census_benchmark,
        timeout=settings.geocoder_timeout,
    ))
    return adapters


def build_geocoder(settings: Optional[Settings] = None, session: Optional[requests.Session] = None) -> CompositeGeocoder:
    settings = settings or get_settings()
    return CompositeGeocoder(
        build_lookup_adapters(settings),
        session=session,
        dedupe_tolerance=settings.dedupe_tolerance,
    )


def build_enrichment_adapters(
    settings: Optional[Settings] = None,
    session: Optional[requests.Session] = None,
) -> list[EnrichmentAdapter]:
    settings = settings or get_settings()
    if session is None:
        session = requests.Session()
        session.headers.update({"User-Agent": settings.user_agent})
    common = {
        "timeout": settings.enrichment_timeout,
        "max_radius": settings.default_max_radius,
        "session": session,
    }

    adapters: list[EnrichmentAdapter] = [
        PointAttributeAdapter(
            "elev",
            url=f"{settings.open_meteo_url.rstrip('/')}/elevation",
            params={"latitude": "{lat}", "longitude": "{lon}"},
            extract=extract_open_meteo_elevation,
            **common,
        ),
        PointAttributeAdapter(
            "weather",
            url=f"{settings.open_meteo_url.rstrip('/')}/forecast",
            params={"latitude": "{lat}", "longitude": "{lon}", "current_weather": "true"},
            extract=extract_open_meteo_weather,
            **common,
        ),
        PointAttributeAdapter(
            "fips",
            url=f"{settings.census_url.rstrip('/')}/geographies/coordinates",
            params={
                "x": "{lon}",
                "y": "{lat}",
                "benchmark": settings.census_benchmark,
                "vintage": settings.census_vintage,
                "format": "json",
            },
            extract=extract_census_geographies,
            **common,
        ),
        ArcGISFeatureAdapter(
            "fema_flood_zone",
            url=FEMA_NFHL_FLOOD_ZONES_URL,
            modes=(QueryMode.POINT_IN_POLYGON,),
            out_fields="FLD_ZONE,ZONE_SUBTY,SFHA_TF,STATIC_BFE",
            **common,
        ),
        ArcGISFeatureAdapter(
            "wildfires",
            url=BLM_FIRE_PERIMETERS_URL,
            modes=(QueryMode.POINT_IN_POLYGON, QueryMode.PROXIMITY),
            **common,
        ),
        ArcGISFeatureAdapter(
            "huc12_watershed",
            url=USGS_WATERSHEDS_URL,
            modes=(QueryMode.POINT_IN_POLYGON,),
            out_fields="huc12,name,areasqkm,states",
            **common,
        ),
    ]
    for identifier, filters in POI_FILTERS.items():
        adapters.append(OverpassPOIAdapter(identifier, filters, url=settings.overpass_url, **common))
    return adapters


def build_registry(
    settings: Optional[Settings] = None,
    catalog: Optional[Catalog] = None,
    session: Optional[requests.Session] = None,
) -> AdapterRegistry:
    settings = settings or get_settings()
    catalog = catalog if catalog is not None else default_catalog(settings)
    registry = AdapterRegistry.build(build_enrichment_adapters(settings, session), catalog)
    logger.info(f"Built enrichment registry with {len(registry)} adapters")
    return registry


def build_service(settings: Optional[Settings] = None, catalog: Optional[Catalog] = None) -> LocationService:
    """Geocoder and orchestrator with the default adapters."""
    settings = settings or get_settings()
    return LocationService(
        geocoder=build_geocoder(settings),
        orchestrator=EnrichmentOrchestrator(build_registry(settings, catalog), max_workers=settings.max_workers),
    )
