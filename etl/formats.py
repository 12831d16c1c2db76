"""Format sniffing and parsing for official school datasets.

An official dataset can arrive as GeoJSON, a bare JSON array of features,
an object wrapping ``features``, or delimited text. ``sniff_payload``
classifies the payload once into a tagged variant; the assembler then
dispatches on the variant type.
"""
from __future__ import annotations

import csv
import io
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

LOGGER = logging.getLogger(__name__)

CSV_DELIMITERS = (",", ";", "\t")
DELIMITER_SAMPLE_LINES = 5

LAT_COLUMNS = ("lat", "latitude", "y", "geom_lat")
LON_COLUMNS = ("lon", "lng", "longitude", "x", "geom_lon", "long")
NAME_COLUMNS = ("name", "school", "school_name", "name_of_school")
OWNERSHIP_COLUMNS = ("ownership", "ownership_type", "management", "operator:type")
GENDER_COLUMNS = ("gender", "gender_of_students", "sex")
DISTRICT_COLUMNS = ("district", "adm2", "admin2", "ADM2_NAME")


@dataclass
class OfficialGeoJSON:
    features: List[Any]


@dataclass
class OfficialArray:
    features: List[Any]


@dataclass
class OfficialCsvRows:
    rows: List[Dict[str, str]]
    delimiter: str = ","


@dataclass
class OfficialEmpty:
    reason: str = ""


OfficialPayload = Union[OfficialGeoJSON, OfficialArray, OfficialCsvRows, OfficialEmpty]


def try_parse_json(text: str) -> Optional[Any]:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None


def classify_json(obj: Any) -> OfficialPayload:
    if isinstance(obj, dict) and obj.get("type") == "FeatureCollection" and isinstance(obj.get("features"), list):
        return OfficialGeoJSON(features=obj["features"])
    if isinstance(obj, list):
        return OfficialArray(features=obj)
    # Some APIs nest features under a key
    if isinstance(obj, dict) and isinstance(obj.get("features"), list):
        return OfficialArray(features=obj["features"])
    return OfficialEmpty(reason="JSON payload has no features")


def sniff_payload(payload: Union[str, bytes, Any], *, allow_csv: bool = True) -> OfficialPayload:
    """Classify text or an already-decoded object into an official variant."""

    if isinstance(payload, bytes):
        payload = payload.decode("utf-8-sig")
    if not isinstance(payload, str):
        return classify_json(payload)
    decoded = try_parse_json(payload)
    if decoded is not None:
        return classify_json(decoded)
    if not allow_csv:
        raise ValueError("Payload is not valid JSON")
    delimiter, rows = parse_csv(payload)
    if not rows:
        return OfficialEmpty(reason="CSV payload has no data rows")
    return OfficialCsvRows(rows=rows, delimiter=delimiter)


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------

def detect_delimiter(sample: str) -> str:
    """Most frequent candidate in ``sample``; comma wins ties and empty samples."""

    best = ","
    best_count = -1
    for candidate in CSV_DELIMITERS:
        count = sample.count(candidate)
        if count > best_count:
            best, best_count = candidate, count
    return best


def parse_csv(text: str) -> Tuple[str, List[Dict[str, str]]]:
    """Return ``(delimiter, rows)`` where rows are dicts keyed by header.

    Blank lines are skipped, header cells are trimmed and empty header
    cells are named ``col_<j>``.
    """

    if text.startswith("\ufeff"):
        text = text[1:]
    sample = [line for line in text.splitlines() if line.strip()][:DELIMITER_SAMPLE_LINES]
    if not sample:
        return ",", []
    delimiter = detect_delimiter("\n".join(sample))

    keys: Optional[List[str]] = None
    rows: List[Dict[str, str]] = []
    reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter)
    try:
        for cells in reader:
            if not any(cell.strip() for cell in cells):
                continue
            if keys is None:
                keys = [cell.strip() or f"col_{j}" for j, cell in enumerate(cells)]
                continue
            rows.append({key: cells[j] if j < len(cells) else "" for j, key in enumerate(keys)})
    except csv.Error as exc:
        raise ValueError(f"Malformed CSV at line {reader.line_num}: {exc}") from exc
    return delimiter, rows


# ---------------------------------------------------------------------------
# Column detection
# ---------------------------------------------------------------------------

def normalize_key(value: Any) -> str:
    text = re.sub(r"\s+", "", str(value or "").lower())
    return re.sub(r"[^a-z0-9_]", "", text)


def detect_field(record: Dict[str, Any], candidates: Sequence[str]) -> Optional[str]:
    """First key of ``record`` matching a candidate, ignoring case and spacing."""

    normalized: Dict[str, str] = {}
    for key in record:
        normalized.setdefault(normalize_key(key), key)
    for candidate in candidates:
        found = normalized.get(normalize_key(candidate))
        if found:
            return found
    return None


def to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip())
    except (TypeError, ValueError):
        return None
    if number != number or number in (float("inf"), float("-inf")):
        return None
    return number


@dataclass
class CsvColumns:
    lat: str
    lon: str
    name: Optional[str] = None
    ownership: Optional[str] = None
    gender: Optional[str] = None
    district: Optional[str] = None


def detect_columns(row: Dict[str, Any]) -> CsvColumns:
    lat = detect_field(row, LAT_COLUMNS)
    lon = detect_field(row, LON_COLUMNS)
    if not lat or not lon:
        raise ValueError("CSV dataset does not contain recognizable lat/lon columns")
    return CsvColumns(
        lat=lat,
        lon=lon,
        name=detect_field(row, NAME_COLUMNS),
        ownership=detect_field(row, OWNERSHIP_COLUMNS),
        gender=detect_field(row, GENDER_COLUMNS),
        district=detect_field(row, DISTRICT_COLUMNS),
    )


def rows_to_features(rows: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Point features from CSV rows; rows with non-numeric coordinates are skipped."""

    if not rows:
        return []
    columns = detect_columns(rows[0])
    features: List[Dict[str, Any]] = []
    skipped = 0
    for row in rows:
        lat = to_number(row.get(columns.lat))
        lon = to_number(row.get(columns.lon))
        if lat is None or lon is None:
            skipped += 1
            continue
        props: Dict[str, Any] = {}
        for attr in ("name", "ownership", "gender", "district"):
            column = getattr(columns, attr)
            if column:
                props[attr] = row.get(column)
        features.append({"type": "Feature", "geometry": {"type": "Point", "coordinates": [lon, lat]}, "properties": props})
    if skipped:
        LOGGER.debug("Skipped %d CSV rows without numeric coordinates", skipped)
    return features
