from __future__ import annotations

import json

import pytest

from locationmart.enrichment import (
    AdapterRegistry,
    Catalog,
    CatalogEntry,
    CustomPOIAdapter,
    RadiusBounds,
)
from locationmart.utils.errors import CatalogValidationError


def _adapter(identifier, **kwargs):
    return CustomPOIAdapter(identifier, [], **kwargs)


def test_from_records_builds_entries():
    catalog = Catalog.from_records([
        {"id": "poi_parks", "label": "Parks", "section": "recreation", "default_radius": 1.0},
        {"id": "wildfires", "label": "Wildfires", "section": "hazards", "max_radius": 50, "unknown_field": "x"},
    ])

    assert list(catalog) == ["poi_parks", "wildfires"]
    assert catalog["wildfires"].max_radius == 50.0
    assert catalog["poi_parks"].is_poi
    assert [e.id for e in catalog.sections()["hazards"]] == ["wildfires"]


def test_from_records_collects_every_invalid_record():
    records = [
        {"id": "ok"},
        {"id": "", "default_radius": 1.0},
        {"id": "negative", "default_radius": -1},
        {"id": "inverted", "min_radius": 4, "max_radius": 2},
    ]

    with pytest.raises(CatalogValidationError) as excinfo:
        Catalog.from_records(records, source="test-catalog")

    err = excinfo.value
    assert err.source == "test-catalog"
    assert {e["loc"][0] for e in err.errors} == {1, 2, 3}
    assert "1.id" in err.summary()
    assert err.summary(limit=1).endswith("(2 more)")


def test_duplicate_ids_keep_first_listing():
    catalog = Catalog.from_records([
        {"id": "poi_grocery", "section": "community"},
        {"id": "poi_grocery", "section": "retail"},
    ])

    assert len(catalog) == 1
    assert catalog["poi_grocery"].section == "community"


def test_from_json(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps({"entries": [{"id": "elev", "is_poi": False}]}))

    catalog = Catalog.from_json(path)

    assert "elev" in catalog
    assert not catalog["elev"].is_poi


def test_catalog_snapshots_are_immutable():
    catalog = Catalog([CatalogEntry(id="a")])

    extended = catalog.with_entry(CatalogEntry(id="b"))

    assert list(catalog) == ["a"]
    assert list(extended) == ["a", "b"]
    with pytest.raises(Exception):
        catalog["a"].label = "changed"


def test_registry_binding_merges_catalog_bounds():
    catalog = Catalog([
        CatalogEntry(id="wildfires", default_radius=10.0, max_radius=50.0),
        CatalogEntry(id="coarse", default_radius=0.5, min_radius=2.0),
    ])
    registry = AdapterRegistry.build(
        [_adapter("wildfires"), _adapter("coarse"), _adapter("plain", default_radius=3.0, radius_bounds=RadiusBounds(1.0, 4.0))],
        catalog,
    )

    assert registry["wildfires"].radius_bounds == RadiusBounds(0.1, 50.0)
    assert registry["wildfires"].default_radius == 10.0
    assert registry["coarse"].radius_bounds == RadiusBounds(2.0, 5.0)
    assert registry["coarse"].default_radius == 2.0
    assert registry["plain"].entry is None
    assert registry["plain"].resolve_radius(None) == 3.0
    assert registry["plain"].resolve_radius(0.2) == 1.0


def test_registry_snapshots():
    registry = AdapterRegistry.build([_adapter("a")])

    added = registry.with_adapter(_adapter("b"), CatalogEntry(id="b", default_radius=2.0))
    removed = added.without("a")

    assert list(registry) == ["a"]
    assert sorted(added) == ["a", "b"]
    assert added["b"].default_radius == 2.0
    assert list(removed) == ["b"]


def test_registry_rejects_duplicate_adapters():
    with pytest.raises(ValueError):
        AdapterRegistry.build([_adapter("a"), _adapter("a")])
