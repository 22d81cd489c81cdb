"""
- Models: Data structures (GeocodeQuery, GeocodeResult, ResolvedLocation, ...)
- Base classes: Abstract interfaces
- Throttling: Rate limiting for API calls
- Geocoders: Provider-specific lookup adapters
- Composite: Multi-adapter ranking geocoder
"""

from .models import (
    BBox,
    LookupMode,
    GeocodeQuery,
    GeocodeResult,
    RateLimit,
    ResolvedLocation,
    AdapterFailure,
    GeocodeOutcome,
    parse_coordinates,
)

from .base import (
    LookupAdapter,
    RateLimiter,
)

from .throttling import (
    TokenBucket,
    SimpleRateGate,
    NoOpRateLimiter,
    limiter_for,
)

from .geocoders import (
    NominatimAdapter,
    CensusAdapter,
    ArcGISParcelAdapter,
    NYCGeoclientAdapter,
    CoordinateAdapter,
    US_BBOX,
    NYC_BBOX,
)

from .composite import CompositeGeocoder

__all__ = [
    # Models
    "BBox",
    "LookupMode",
    "GeocodeQuery",
    "GeocodeResult",
    "RateLimit",
    "ResolvedLocation",
    "AdapterFailure",
    "GeocodeOutcome",
    "parse_coordinates",
    # Base classes
    "LookupAdapter",
    "RateLimiter",
    # Throttling
    "TokenBucket",
    "SimpleRateGate",
    "NoOpRateLimiter",
    "limiter_for",
    # Geocoders
    "NominatimAdapter",
    "CensusAdapter",
    "ArcGISParcelAdapter",
    "NYCGeoclientAdapter",
    "CoordinateAdapter",
    "US_BBOX",
    "NYC_BBOX",
    # Composite
    "CompositeGeocoder",
]
