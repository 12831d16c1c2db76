"""Ownership/gender classification and district to region lookup."""
from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Pattern, Sequence, Tuple

from etl.formats import NAME_COLUMNS, detect_field

LOGGER = logging.getLogger(__name__)

UNKNOWN = "unknown"

# Ordered (pattern, category) rules; the first match wins.
OWNERSHIP_RULES: Tuple[Tuple[Pattern[str], str], ...] = (
    (re.compile(r"gov|public|state"), "government"),
    (re.compile(r"private|ngo|foundation|independent"), "private"),
    (re.compile(r"relig|catholic|anglican|muslim|church|islam"), "religious"),
)

GENDER_RULES: Tuple[Tuple[Pattern[str], str], ...] = (
    (re.compile(r"boys|\bmale\b"), "boys"),
    (re.compile(r"girls|\bfemale\b"), "girls"),
    (re.compile(r"mixed|coed|co-?ed|unisex"), "mixed"),
)

OWNERSHIP_FIELDS = ("ownership", "operator:type", "operator_type", "operatorType", "management")
GENDER_FIELDS = ("gender", "gender_of_students", "sex")
DISTRICT_FIELDS = ("district", "addr:district", "is_in:district", "admin2", "ADM2_NAME", "subcounty")
REGION_FIELDS = ("region", "ADM1_NAME", "province")


def classify(value: Any, rules: Sequence[Tuple[Pattern[str], str]]) -> str:
    """Apply ``rules`` to free text.

    Empty input maps to ``unknown``; unmatched text is returned lower-cased.
    """

    if value is None:
        return UNKNOWN
    text = str(value).strip().lower()
    if not text:
        return UNKNOWN
    for pattern, category in rules:
        if pattern.search(text):
            return category
    return text


def classify_ownership(value: Any) -> str:
    return classify(value, OWNERSHIP_RULES)


def classify_gender(value: Any) -> str:
    return classify(value, GENDER_RULES)


# ---------------------------------------------------------------------------
# District -> region
# ---------------------------------------------------------------------------

def normalize_district_name(name: Any) -> str:
    """``"Kampala District"`` and ``"  kampala "`` both become ``"kampala"``."""

    if not name:
        return ""
    text = str(name).lower().strip()
    text = re.sub(r"\bdistrict\b", "", text)
    text = re.sub(r"[^a-z\s]", "", text)
    text = re.sub(r"\s+", " ", text)
    return text.strip()


def _add_districts(mapping: Dict[str, str], region: Any, districts: Any) -> None:
    if not region or not isinstance(districts, list):
        return
    for district in districts:
        key = normalize_district_name(district)
        if key:
            mapping[key] = str(region)


def build_district_region_map(document: Any) -> Mapping[str, str]:
    """Build a read-only normalized district -> region mapping.

    Accepted document shapes:

    1. ``{"districtToRegion": {"Kampala": "Central", ...}}``
    2. ``{"mappings": [{"region": "Central", "districts": [...]}, ...]}``
    3. ``{"regions": [{"name": "Central", "districts": [...]}, ...]}``
       (``region``/``name``/``label`` and ``districts``/``items`` are
       interchangeable in 2 and 3)
    4. ``{"Central": ["Kampala", ...], "Eastern": [...]}``
    """

    mapping: Dict[str, str] = {}
    if not isinstance(document, dict):
        return MappingProxyType(mapping)

    explicit = document.get("districtToRegion")
    if isinstance(explicit, dict):
        for district, region in explicit.items():
            key = normalize_district_name(district)
            if key and region:
                mapping[key] = str(region)
        return MappingProxyType(mapping)

    for list_key in ("mappings", "regions"):
        entries = document.get(list_key)
        if isinstance(entries, list):
            for entry in entries:
                if not isinstance(entry, dict):
                    continue
                region = entry.get("region") or entry.get("name") or entry.get("label")
                districts = entry.get("districts") or entry.get("items") or []
                _add_districts(mapping, region, districts)
            return MappingProxyType(mapping)

    for region, districts in document.items():
        _add_districts(mapping, region, districts)
    return MappingProxyType(mapping)


def load_district_region_map(path: Path) -> Mapping[str, str]:
    if not path.exists():
        LOGGER.warning("%s not found. Region enrichment may be limited.", path)
        return MappingProxyType({})
    with path.open("r", encoding="utf-8") as handle:
        document = json.load(handle)
    mapping = build_district_region_map(document)
    LOGGER.info("Loaded %d district to region entries from %s", len(mapping), path)
    return mapping


def _first_present(props: Mapping[str, Any], fields: Sequence[str]) -> Any:
    for name in fields:
        value = props.get(name)
        if value not in (None, ""):
            return value
    return None


def resolve_region(props: Mapping[str, Any], district_map: Mapping[str, str]) -> Optional[str]:
    """Explicit region field first, then the district lookup; ``None`` if neither."""

    explicit = _first_present(props, REGION_FIELDS)
    if explicit is not None:
        return str(explicit)
    district = _first_present(props, DISTRICT_FIELDS)
    if district is None:
        return None
    return district_map.get(normalize_district_name(district))


def enrich_properties(props: Mapping[str, Any], district_map: Mapping[str, str]) -> Dict[str, Any]:
    """Return a copy of ``props`` with name, ownership, gender, district and region set."""

    enriched = dict(props)
    if not enriched.get("name"):
        name_key = detect_field(enriched, NAME_COLUMNS)
        enriched["name"] = enriched.get(name_key) if name_key else None
    enriched["ownership"] = classify_ownership(_first_present(enriched, OWNERSHIP_FIELDS))
    enriched["gender"] = classify_gender(_first_present(enriched, GENDER_FIELDS))
    district = _first_present(enriched, DISTRICT_FIELDS)
    enriched["district"] = district
    enriched["region"] = resolve_region(enriched, district_map)
    return enriched
