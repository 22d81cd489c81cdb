from __future__ import annotations

import math

import pandas as pd
import pytest

from conftest import FakeResponse, FakeSession
from locationmart.enrichment import (
    ArcGISFeatureAdapter,
    CustomPOIAdapter,
    EnrichmentRecord,
    Feature,
    OverpassPOIAdapter,
    PointAttributeAdapter,
    QueryMode,
    RadiusBounds,
    extract_census_geographies,
    extract_open_meteo_elevation,
    extract_open_meteo_weather,
)
from locationmart.geocoding import NoOpRateLimiter, RateLimiter, ResolvedLocation

HERE = ResolvedLocation(lat=40.5, lon=-73.5, name="Test point", source="test", confidence=1.0)
SQUARE = [[-74.0, 40.0], [-74.0, 41.0], [-73.0, 41.0], [-73.0, 40.0], [-74.0, 40.0]]


class CountingLimiter(RateLimiter):
    def __init__(self):
        self.count = 0

    def acquire(self, count: int = 1) -> None:
        self.count += count


def test_record_rejects_features_and_error_together():
    with pytest.raises(ValueError):
        EnrichmentRecord(identifier="x", features=(Feature(),), error="boom")

    failure = EnrichmentRecord.failure("x", "")
    empty = EnrichmentRecord.success("x")
    assert not failure.ok and failure.error == "Unknown error"
    assert empty.ok and empty.count == 0


def test_record_summary_columns():
    record = EnrichmentRecord.success(
        "poi_parks",
        [Feature({"name": "Far"}, distance_miles=2.0), Feature({"name": "Near"}, distance_miles=0.4567)],
        radius_miles=3.0,
        mode=QueryMode.PROXIMITY,
    )

    assert record.summary() == {
        "poi_parks_count": 2,
        "poi_parks_radius_miles": 3.0,
        "poi_parks_nearest_miles": 0.457,
        "poi_parks_nearest_name": "Near",
    }
    assert EnrichmentRecord.failure("elev", "timeout").summary() == {"elev_error": "timeout"}


def test_radius_bounds_clamp_and_validation():
    bounds = RadiusBounds(0.1, 5.0)
    assert bounds.clamp(50) == 5.0
    assert bounds.clamp(0.01) == 0.1
    assert bounds.clamp(2) == 2.0
    with pytest.raises(ValueError):
        RadiusBounds(3.0, 1.0)


def _arcgis(session, modes=(QueryMode.POINT_IN_POLYGON,), limiter=None):
    return ArcGISFeatureAdapter(
        "flood",
        url="https://flood.test/MapServer/28/",
        modes=modes,
        session=session,
        limiter=limiter or NoOpRateLimiter(),
    )


def test_arcgis_point_in_polygon():
    session = FakeSession({"flood.test": FakeResponse({"features": [
        {"attributes": {"OBJECTID": 1, "FLD_ZONE": "AE"}, "geometry": {"rings": [SQUARE]}},
    ]})})

    record = _arcgis(session).fetch(HERE, 2.0)

    assert record.ok and record.mode == QueryMode.POINT_IN_POLYGON
    [feature] = record.features
    assert feature.containing and feature.distance_miles == 0.0
    assert feature.attributes["FLD_ZONE"] == "AE"
    call = session.calls[0]
    assert call["url"] == "https://flood.test/MapServer/28/query"
    assert call["params"]["geometry"] == "-73.500000,40.500000"
    assert "distance" not in call["params"]


def test_arcgis_both_modes_orders_containing_then_by_true_distance():
    containing = {"attributes": {"OBJECTID": 1, "NAME": "Inside"}, "geometry": {"rings": [SQUARE]}}

    def answer(call):
        if "distance" not in call["params"]:
            return FakeResponse({"features": [containing]})
        return FakeResponse({"features": [
            containing,
            {"attributes": {"OBJECTID": 2, "NAME": "Farther"}, "geometry": {"x": -73.45, "y": 40.5}},
            {"attributes": {"OBJECTID": 3, "NAME": "Nearer"}, "geometry": {"x": -73.48, "y": 40.5}},
            {"attributes": {"OBJECTID": 4, "NAME": "Outside"}, "geometry": {"x": -73.0, "y": 40.5}},
        ]})

    limiter = CountingLimiter()
    adapter = _arcgis(FakeSession({"flood.test": answer}), modes=(QueryMode.POINT_IN_POLYGON, QueryMode.PROXIMITY), limiter=limiter)

    record = adapter.fetch(HERE, 3.0)

    assert [f.name() for f in record.features] == ["Inside", "Nearer", "Farther"]
    assert record.features[1].distance_miles == pytest.approx(1.05, abs=0.05)
    assert record.features[2].distance_miles == pytest.approx(2.63, abs=0.05)
    assert record.mode == QueryMode.PROXIMITY
    assert limiter.count == 1


def test_arcgis_proximity_sends_radius_in_miles():
    session = FakeSession({"flood.test": FakeResponse({"features": []})})

    record = _arcgis(session, modes=(QueryMode.PROXIMITY,)).fetch(HERE, 1.5)

    assert record.ok and record.count == 0
    assert session.calls[0]["params"]["distance"] == 1.5
    assert session.calls[0]["params"]["units"] == "esriSRUnit_StatuteMile"


def test_arcgis_error_payload_and_http_error_become_failures():
    errored = FakeSession({"flood.test": FakeResponse({"error": {"code": 400, "message": "Invalid query"}})})
    down = FakeSession({"flood.test": FakeResponse(status_code=502, text="bad gateway")})

    error_record = _arcgis(errored).fetch(HERE, 1.0)
    down_record = _arcgis(down).fetch(HERE, 1.0)

    assert not error_record.ok and "Invalid query" in error_record.error
    assert not down_record.ok and "502" in down_record.error
    assert error_record.features == () and down_record.features == ()


def test_arcgis_rejects_global_attribute_mode():
    with pytest.raises(ValueError):
        _arcgis(FakeSession(), modes=(QueryMode.GLOBAL_ATTRIBUTE,))


def _overpass(session, **kwargs):
    return OverpassPOIAdapter(
        "poi_hospitals",
        ["amenity=hospital", '["healthcare"="clinic"]'],
        url="https://overpass.test/api/interpreter",
        session=session,
        limiter=NoOpRateLimiter(),
        retry_delay_s=0.0,
        **kwargs,
    )


def test_overpass_query_uses_around_filters():
    query = _overpass(FakeSession()).build_query(40.5, -73.5, 1.0)

    assert 'node["amenity"="hospital"](around:1610,40.500000,-73.500000);' in query
    assert 'way["healthcare"="clinic"](around:1610,40.500000,-73.500000);' in query
    assert query.startswith("[out:json]")
    assert query.endswith("out center tags;")


def test_overpass_fetch_filters_dedupes_and_sorts():
    payload = {"elements": [
        {"type": "way", "id": 7, "center": {"lat": 40.5, "lon": -73.49}, "tags": {"name": "Way Hospital"}},
        {"type": "node", "id": 1, "lat": 40.5, "lon": -73.495, "tags": {"name": "Node Hospital"}},
        {"type": "node", "id": 1, "lat": 40.5, "lon": -73.495, "tags": {"name": "Node Hospital"}},
        {"type": "node", "id": 2, "lat": 40.9, "lon": -73.5, "tags": {"name": "Too far"}},
        {"type": "relation", "id": 3, "tags": {"name": "No coordinates"}},
    ]}
    session = FakeSession({"overpass.test": FakeResponse(payload)})

    record = _overpass(session).fetch(HERE, 1.0)

    assert [f.name() for f in record.features] == ["Node Hospital", "Way Hospital"]
    assert record.features[0].attributes["osm_id"] == 1
    assert record.radius_miles == 1.0
    assert session.calls[0]["method"] == "POST"
    assert "around:" in session.calls[0]["data"]["data"]


def test_overpass_retries_gateway_timeouts():
    session = FakeSession({"overpass.test": [
        FakeResponse(status_code=504, text="timeout"),
        FakeResponse({"elements": []}),
    ]})

    record = _overpass(session).fetch(HERE, 1.0)

    assert record.ok and record.count == 0
    assert len(session.calls) == 2


def test_overpass_exhausted_retries_become_failure():
    session = FakeSession({"overpass.test": FakeResponse(status_code=429, text="rate limited")})

    record = _overpass(session, max_retries=1).fetch(HERE, 1.0)

    assert not record.ok
    assert len(session.calls) == 2


@pytest.mark.parametrize("payload", [["garbage"], {"remark": "runtime error"}, {"elements": "oops"}])
def test_overpass_malformed_payload_is_failure_not_empty(payload):
    session = FakeSession({"overpass.test": FakeResponse(payload)})

    record = _overpass(session).fetch(HERE, 1.0)

    assert not record.ok
    assert record.error.startswith("Unexpected payload")
    assert record.radius_miles == 1.0


def test_overpass_requires_filters():
    with pytest.raises(ValueError):
        OverpassPOIAdapter("poi_none", [], session=FakeSession())


def test_point_attribute_formats_params_and_extracts():
    session = FakeSession({"meteo.test": FakeResponse({"elevation": [10.0]})})
    adapter = PointAttributeAdapter(
        "elev",
        url="https://meteo.test/v1/elevation",
        params={"latitude": "{lat}", "longitude": "{lon}", "units": 1},
        extract=extract_open_meteo_elevation,
        session=session,
        limiter=NoOpRateLimiter(),
    )

    record = adapter.fetch(HERE, 99.0)

    assert record.mode == QueryMode.GLOBAL_ATTRIBUTE
    assert record.features[0].attributes == {"elevation_m": 10.0, "elevation_ft": 33}
    assert session.calls[0]["params"] == {"latitude": "40.500000", "longitude": "-73.500000", "units": 1}
    assert record.summary()["elev_elevation_ft"] == 33


def test_point_attribute_empty_and_unexpected_payloads():
    def adapter_for(payload):
        return PointAttributeAdapter(
            "elev",
            url="https://meteo.test/v1/elevation",
            params={},
            extract=extract_open_meteo_elevation,
            session=FakeSession({"meteo.test": FakeResponse(payload)}),
            limiter=NoOpRateLimiter(),
        )

    empty = adapter_for({"elevation": []}).fetch(HERE, 1.0)
    broken = adapter_for({"elevation": "abc"}).fetch(HERE, 1.0)
    wrong_type = adapter_for(["garbage"]).fetch(HERE, 1.0)

    assert empty.ok and empty.count == 0
    assert not broken.ok and broken.error.startswith("Unexpected payload")
    assert not wrong_type.ok and "list" in wrong_type.error


def test_extractors_reject_non_object_payloads():
    with pytest.raises(TypeError):
        extract_open_meteo_weather(None)
    with pytest.raises(TypeError):
        extract_census_geographies("<html>")
    assert extract_open_meteo_weather({"current_weather": None}) is None


def test_extract_census_geographies():
    payload = {"result": {"geographies": {
        "States": [{"STATE": "36", "NAME": "New York"}],
        "Counties": [{"COUNTY": "061", "NAME": "New York County"}],
        "Census Tracts": [{"TRACT": "000700", "GEOID": "36061000700"}],
        "2020 Census Blocks": [{"GEOID": "360610007001000", "UR": "U"}],
    }}}

    attributes = extract_census_geographies(payload)

    assert attributes["fips_state"] == "36"
    assert attributes["fips_county"] == "061"
    assert attributes["tract_geoid"] == "36061000700"
    assert attributes["urban_rural"] == "Urban"
    assert extract_census_geographies({"result": {}}) is None


def test_custom_poi_from_frame():
    frame = pd.DataFrame([
        {"name": "Office", "latitude": 40.5, "longitude": -73.49},
        {"name": "Warehouse", "latitude": 40.5, "longitude": -73.3},
        {"name": "Missing", "latitude": math.nan, "longitude": -73.5},
        {"name": "Same block", "latitude": 40.5001, "longitude": -73.5},
    ])
    adapter = CustomPOIAdapter.from_frame("my_sites", frame, lat_col="latitude", lon_col="longitude")

    record = adapter.fetch(HERE, 1.0)

    assert len(adapter.points) == 3
    assert [f.name() for f in record.features] == ["Same block", "Office"]
    assert "latitude" not in record.features[0].attributes
    with pytest.raises(ValueError):
        CustomPOIAdapter.from_frame("bad", frame, lat_col="lat")
