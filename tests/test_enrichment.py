import json

import pytest

from etl.enrichment import (
    build_district_region_map,
    classify_gender,
    classify_ownership,
    enrich_properties,
    load_district_region_map,
    normalize_district_name,
    resolve_region,
)

REGIONS = {"Central": ["Kampala", "Wakiso"], "Northern": ["Gulu District"]}


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Government", "government"),
        ("Public school", "government"),
        ("state", "government"),
        ("NGO", "private"),
        ("Private", "private"),
        ("Catholic Church", "religious"),
        ("Islamic foundation", "private"),
        ("Community", "community"),
        ("  ", "unknown"),
        ("", "unknown"),
        (None, "unknown"),
    ],
)
def test_classify_ownership(raw, expected):
    assert classify_ownership(raw) == expected


@pytest.mark.parametrize("raw", ["Government", "Cooperative", "", None, "MUSLIM"])
def test_classify_ownership_never_returns_none(raw):
    result = classify_ownership(raw)
    assert result
    assert result == result.lower()


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Boys only", "boys"),
        ("male", "boys"),
        ("Girls", "girls"),
        ("female", "girls"),
        ("Co-ed", "mixed"),
        ("coed", "mixed"),
        ("Mixed", "mixed"),
        ("day", "day"),
        (None, "unknown"),
    ],
)
def test_classify_gender(raw, expected):
    assert classify_gender(raw) == expected


def test_normalize_district_name():
    assert normalize_district_name("Kampala District") == "kampala"
    assert normalize_district_name("  kampala ") == "kampala"
    assert normalize_district_name("Kabale-District!") == "kabale"
    assert normalize_district_name("Fort  Portal") == "fort portal"
    assert normalize_district_name(None) == ""


@pytest.mark.parametrize(
    "document",
    [
        {"districtToRegion": {"Kampala": "Central", "Gulu": "Northern"}},
        {"mappings": [{"region": "Central", "districts": ["Kampala"]}, {"region": "Northern", "districts": ["Gulu"]}]},
        {"regions": [{"name": "Central", "items": ["Kampala"]}, {"label": "Northern", "districts": ["Gulu"]}]},
        {"Central": ["Kampala"], "Northern": ["Gulu"], "version": 2},
    ],
)
def test_build_district_region_map_accepts_all_shapes(document):
    mapping = build_district_region_map(document)
    assert mapping["kampala"] == "Central"
    assert mapping["gulu"] == "Northern"


def test_district_region_map_is_read_only():
    mapping = build_district_region_map(REGIONS)
    with pytest.raises(TypeError):
        mapping["new"] = "x"  # type: ignore[index]


def test_build_district_region_map_ignores_garbage():
    assert dict(build_district_region_map(["Central"])) == {}
    assert dict(build_district_region_map(None)) == {}


def test_resolve_region_is_insensitive_to_district_spelling():
    mapping = build_district_region_map(REGIONS)
    assert resolve_region({"district": "Kampala District"}, mapping) == "Central"
    assert resolve_region({"district": "  kampala "}, mapping) == "Central"
    assert resolve_region({"district": "Gulu"}, mapping) == "Northern"


def test_resolve_region_prefers_explicit_field_and_allows_null():
    mapping = build_district_region_map(REGIONS)
    assert resolve_region({"region": "Western", "district": "Kampala"}, mapping) == "Western"
    assert resolve_region({"ADM1_NAME": "Eastern"}, mapping) == "Eastern"
    assert resolve_region({"district": "Atlantis"}, mapping) is None
    assert resolve_region({}, mapping) is None


def test_enrich_properties_fills_defaults():
    enriched = enrich_properties({"School": "Gulu High", "addr:district": "Gulu"}, build_district_region_map(REGIONS))
    assert enriched["name"] == "Gulu High"
    assert enriched["ownership"] == "unknown"
    assert enriched["gender"] == "unknown"
    assert enriched["district"] == "Gulu"
    assert enriched["region"] == "Northern"


def test_enrich_properties_uses_alternate_fields():
    enriched = enrich_properties({"name": "A", "operator:type": "religious", "sex": "Girls"}, {})
    assert enriched["ownership"] == "religious"
    assert enriched["gender"] == "girls"
    assert enriched["district"] is None
    assert enriched["region"] is None


def test_load_district_region_map(tmp_path):
    path = tmp_path / "regions.json"
    path.write_text(json.dumps(REGIONS), encoding="utf-8")
    assert load_district_region_map(path)["wakiso"] == "Central"
    assert dict(load_district_region_map(tmp_path / "missing.json")) == {}
