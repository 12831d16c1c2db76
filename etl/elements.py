"""Typed views of raw Overpass elements.

Overpass JSON is loosely typed; it is converted once into one of three
variants and everything downstream dispatches on the variant class.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Union

LOGGER = logging.getLogger(__name__)

LonLat = Tuple[float, float]


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _lonlat(point: Any) -> Optional[LonLat]:
    if not isinstance(point, dict):
        return None
    lon, lat = point.get("lon"), point.get("lat")
    if is_number(lon) and is_number(lat):
        return float(lon), float(lat)
    return None


def _vertices(raw: Any) -> Optional[List[Optional[LonLat]]]:
    if not isinstance(raw, list):
        return None
    return [_lonlat(point) for point in raw]


@dataclass
class OsmElement:
    id: Any
    tags: Dict[str, str] = field(default_factory=dict)
    center: Optional[LonLat] = None

    osm_type = "element"

    @property
    def ref(self) -> str:
        return f"{self.osm_type}/{self.id}"


@dataclass
class OsmNode(OsmElement):
    lonlat: Optional[LonLat] = None

    osm_type = "node"


@dataclass
class OsmWay(OsmElement):
    # None when the response was requested without geometry
    geometry: Optional[List[Optional[LonLat]]] = None

    osm_type = "way"


@dataclass
class RelationMember:
    type: str
    ref: Any = None
    role: str = ""
    geometry: Optional[List[Optional[LonLat]]] = None


@dataclass
class OsmRelation(OsmElement):
    members: List[RelationMember] = field(default_factory=list)

    osm_type = "relation"


OsmVariant = Union[OsmNode, OsmWay, OsmRelation]


def parse_element(raw: Any) -> Optional[OsmVariant]:
    """Convert one Overpass element dict; unknown kinds yield ``None``."""

    if not isinstance(raw, dict):
        return None
    kind = raw.get("type")
    tags = raw.get("tags") if isinstance(raw.get("tags"), dict) else {}
    common = {"id": raw.get("id"), "tags": dict(tags), "center": _lonlat(raw.get("center"))}

    if kind == "node":
        return OsmNode(lonlat=_lonlat(raw), **common)
    if kind == "way":
        return OsmWay(geometry=_vertices(raw.get("geometry")), **common)
    if kind == "relation":
        members = []
        for member in raw.get("members") or []:
            if not isinstance(member, dict):
                continue
            members.append(
                RelationMember(
                    type=str(member.get("type") or ""),
                    ref=member.get("ref"),
                    role=str(member.get("role") or ""),
                    geometry=_vertices(member.get("geometry")),
                )
            )
        return OsmRelation(members=members, **common)

    LOGGER.debug("Skipping element of unsupported type %r", kind)
    return None


def iter_elements(payload: Any) -> Iterator[OsmVariant]:
    elements: Iterable[Any] = []
    if isinstance(payload, dict) and isinstance(payload.get("elements"), list):
        elements = payload["elements"]
    for raw in elements:
        element = parse_element(raw)
        if element is not None:
            yield element
