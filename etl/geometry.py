"""Geometry reconstruction for OSM elements and official-dataset features."""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Optional, Sequence

from shapely.geometry import LineString, MultiLineString, Point, mapping

from etl.elements import LonLat, OsmNode, OsmRelation, OsmVariant, OsmWay, is_number

LOGGER = logging.getLogger(__name__)


def _listify(coords: Any) -> Any:
    """Turn shapely's nested tuples into GeoJSON lists."""

    if isinstance(coords, (list, tuple)):
        return [_listify(part) for part in coords]
    return coords


def to_geojson(geom: Any) -> Dict[str, Any]:
    mapped = mapping(geom)
    return {"type": mapped["type"], "coordinates": _listify(mapped["coordinates"])}


def _line_coords(vertices: Optional[Sequence[Optional[LonLat]]]) -> Optional[List[LonLat]]:
    # A line needs two vertices and every vertex must carry lon/lat.
    if not vertices or len(vertices) < 2:
        return None
    if any(vertex is None for vertex in vertices):
        return None
    return list(vertices)  # type: ignore[arg-type]


def node_geometry(node: OsmNode) -> Optional[Point]:
    lonlat = node.lonlat or node.center
    if lonlat is None:
        return None
    return Point(lonlat)


def way_geometry(way: OsmWay) -> Optional[LineString]:
    coords = _line_coords(way.geometry)
    return LineString(coords) if coords else None


def relation_lines(relation: OsmRelation) -> List[List[LonLat]]:
    """Member way vertex lists in member order; members without geometry are skipped."""

    lines: List[List[LonLat]] = []
    for member in relation.members:
        if member.type != "way":
            continue
        coords = _line_coords(member.geometry)
        if coords:
            lines.append(coords)
    return lines


def relation_geometry(relation: OsmRelation) -> Optional[Any]:
    lines = relation_lines(relation)
    if not lines:
        return None
    if len(lines) == 1:
        return LineString(lines[0])
    return MultiLineString(lines)


def element_to_geometry(element: OsmVariant) -> Optional[Dict[str, Any]]:
    """Point for nodes, LineString for ways, (Multi)LineString for relations.

    Vertex order is kept exactly as delivered by Overpass; relation members
    are not re-ordered or stitched together.
    """

    if isinstance(element, OsmNode):
        geom = node_geometry(element)
    elif isinstance(element, OsmWay):
        geom = way_geometry(element)
    elif isinstance(element, OsmRelation):
        geom = relation_geometry(element)
    else:
        raise TypeError(f"Unsupported element variant: {type(element).__name__}")
    if geom is None or geom.is_empty:
        return None
    return to_geojson(geom)


def element_point(element: OsmVariant) -> Optional[Dict[str, Any]]:
    """Point for ``out center`` results: node position, else the center."""

    lonlat = element.lonlat if isinstance(element, OsmNode) else None
    lonlat = lonlat or element.center
    if lonlat is None:
        return None
    return to_geojson(Point(lonlat))


# ---------------------------------------------------------------------------
# Point collapse for point-only schemas
# ---------------------------------------------------------------------------

def iter_coordinate_pairs(coords: Any) -> Iterator[LonLat]:
    """Yield every numeric ``[x, y, ...]`` pair found in a nested structure."""

    if not isinstance(coords, (list, tuple)):
        return
    if len(coords) >= 2 and is_number(coords[0]) and is_number(coords[1]):
        yield float(coords[0]), float(coords[1])
        return
    for part in coords:
        yield from iter_coordinate_pairs(part)


def coordinate_centroid(coords: Any) -> Optional[LonLat]:
    """Arithmetic mean of all vertices; ``None`` when there are none."""

    total_x = total_y = 0.0
    count = 0
    for x, y in iter_coordinate_pairs(coords):
        total_x += x
        total_y += y
        count += 1
    if count == 0:
        return None
    return total_x / count, total_y / count


def to_point_geometry(geometry: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(geometry, dict):
        return None
    kind = geometry.get("type")
    coords = geometry.get("coordinates")
    if kind == "Point":
        if not isinstance(coords, (list, tuple)) or len(coords) < 2:
            return None
        if not (is_number(coords[0]) and is_number(coords[1])):
            return None
        return {"type": "Point", "coordinates": list(coords)}
    if kind in {"MultiPoint", "LineString", "MultiLineString", "Polygon", "MultiPolygon"}:
        point = coordinate_centroid(coords)
    else:
        return None
    if point is None:
        return None
    return to_geojson(Point(point))


def has_numeric_coordinates(geometry: Any) -> bool:
    """True when ``geometry`` has at least one coordinate and all leaves are numbers."""

    if not isinstance(geometry, dict):
        return False
    coords = geometry.get("coordinates")
    if geometry.get("type") == "Point" and isinstance(coords, (list, tuple)):
        # a position, not a list of positions
        if any(isinstance(part, (list, tuple)) for part in coords):
            return False

    def _leaves(value: Any) -> Iterator[Any]:
        if isinstance(value, (list, tuple)):
            for item in value:
                yield from _leaves(item)
        else:
            yield value

    leaves = list(_leaves(coords))
    return bool(leaves) and all(is_number(leaf) for leaf in leaves)
