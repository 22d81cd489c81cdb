from __future__ import annotations

import json
import sys
import threading
from pathlib import Path
from typing import Any

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


class FakeResponse:
    def __init__(self, payload: Any = None, status_code: int = 200, text: str | None = None):
        self.status_code = status_code
        self.ok = 200 <= status_code < 400
        self.text = text if text is not None else json.dumps(payload)


class FakeSession:
    """
    Stand-in for ``requests.Session``.

    ``routes`` maps a URL substring to a FakeResponse, an exception instance,
    a list of either (served in order, last one repeated), or a callable
    taking the call dict.
    """

    def __init__(self, routes: dict[str, Any] | None = None):
        self.routes = dict(routes or {})
        self.calls: list[dict[str, Any]] = []
        self.headers: dict[str, str] = {}
        self._lock = threading.Lock()

    def request(self, method, url, params=None, data=None, headers=None, timeout=None):
        call = {"method": method, "url": url, "params": params or {}, "data": data, "headers": headers or {}, "timeout": timeout}
        with self._lock:
            self.calls.append(call)
            for pattern, answer in self.routes.items():
                if pattern in url:
                    break
            else:
                return FakeResponse({"detail": "not found"}, status_code=404)
            if isinstance(answer, list):
                answer = answer.pop(0) if len(answer) > 1 else answer[0]
        if callable(answer) and not isinstance(answer, FakeResponse):
            answer = answer(call)
        if isinstance(answer, Exception):
            raise answer
        return answer

    def calls_to(self, pattern: str) -> list[dict[str, Any]]:
        return [c for c in self.calls if pattern in c["url"]]


class FakeClock:
    """Manually advanced clock; ``sleep`` advances it and records the delay."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def clock():
    return FakeClock()


from locationmart.enrichment import (  # noqa: E402
    AdapterRegistry,
    EnrichmentAdapter,
    EnrichmentOrchestrator,
    EnrichmentRecord,
    Feature,
    QueryMode,
)
from locationmart.geocoding import (  # noqa: E402
    CompositeGeocoder,
    GeocodeResult,
    LookupAdapter,
    NoOpRateLimiter,
)
from locationmart.service import LocationService  # noqa: E402


class KnownAddressAdapter(LookupAdapter):
    """Resolves addresses from a fixed table without any request."""

    name = "known"

    def __init__(self, table):
        super().__init__(timeout=1.0, limiter=NoOpRateLimiter())
        self.table = {k.lower(): v for k, v in table.items()}

    def build_requests(self, query):
        return []

    def parse_response(self, payload, query):
        return []

    def resolve_locally(self, query):
        hit = self.table.get(query.text.lower())
        if hit is None:
            return []
        return [GeocodeResult(source="known", lat=hit[0], lon=hit[1], name=query.text, confidence=0.9)]


class NearbyThingsAdapter(EnrichmentAdapter):
    """One feature half a radius away; raises for locations listed in ``fail_at``."""

    supported_modes = frozenset({QueryMode.PROXIMITY})

    def __init__(self, identifier="things", fail_at=(), **kwargs):
        super().__init__(identifier, limiter=NoOpRateLimiter(), session=object(), **kwargs)
        self.fail_at = set(fail_at)
        self.calls = []

    def fetch(self, location, radius):
        self.calls.append((location.lat, location.lon, radius))
        if (location.lat, location.lon) in self.fail_at:
            raise RuntimeError("adapter crashed")
        feature = Feature({"name": f"thing near {location.name}"}, geometry=None, distance_miles=radius / 2)
        return EnrichmentRecord.success(self.identifier, [feature], radius_miles=radius, mode=QueryMode.PROXIMITY)


ADDRESSES = {
    "1 Main St, Springfield": (39.80, -89.64),
    "2 Oak Ave, Springfield": (39.81, -89.65),
    "3 Elm Rd, Springfield": (39.82, -89.66),
}


def make_service(adapter=None, table=None):
    geocoder = CompositeGeocoder([KnownAddressAdapter(table or ADDRESSES)])
    registry = AdapterRegistry.build([adapter or NearbyThingsAdapter()])
    return LocationService(geocoder, EnrichmentOrchestrator(registry))


@pytest.fixture
def service():
    return make_service()
