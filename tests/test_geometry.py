import pytest

from etl.elements import OsmNode, OsmRelation, OsmWay, iter_elements, parse_element
from etl.geometry import (
    coordinate_centroid,
    element_point,
    element_to_geometry,
    has_numeric_coordinates,
    to_point_geometry,
)


def _way(points, **extra):
    raw = {"type": "way", "id": 5, "geometry": [{"lon": lon, "lat": lat} for lon, lat in points]}
    raw.update(extra)
    return parse_element(raw)


def test_parse_element_discriminates_variants():
    assert isinstance(parse_element({"type": "node", "id": 1, "lon": 1, "lat": 2}), OsmNode)
    assert isinstance(parse_element({"type": "way", "id": 1}), OsmWay)
    assert isinstance(parse_element({"type": "relation", "id": 1}), OsmRelation)
    assert parse_element({"type": "area", "id": 1}) is None
    assert parse_element("garbage") is None


def test_iter_elements_tolerates_missing_elements_key():
    assert list(iter_elements({"remark": "x"})) == []
    assert [e.ref for e in iter_elements({"elements": [{"type": "node", "id": 3}]})] == ["node/3"]


def test_node_becomes_point():
    geometry = element_to_geometry(parse_element({"type": "node", "id": 1, "lon": 32.58, "lat": 0.35}))
    assert geometry == {"type": "Point", "coordinates": [32.58, 0.35]}


def test_node_falls_back_to_center():
    node = parse_element({"type": "node", "id": 1, "center": {"lon": 30.0, "lat": 1.0}})
    assert element_to_geometry(node) == {"type": "Point", "coordinates": [30.0, 1.0]}


def test_node_without_position_has_no_geometry():
    assert element_to_geometry(parse_element({"type": "node", "id": 1})) is None


def test_way_keeps_every_vertex_in_order():
    points = [(32.0, 0.1), (32.1, 0.2), (32.1, 0.2), (32.0, 0.1), (31.9, 0.0)]
    geometry = element_to_geometry(_way(points))
    assert geometry["type"] == "LineString"
    assert geometry["coordinates"] == [list(p) for p in points]


def test_way_with_missing_vertex_coordinates_is_dropped():
    way = parse_element({"type": "way", "id": 5, "geometry": [{"lon": 1.0, "lat": 2.0}, {"lon": None, "lat": 3.0}]})
    assert element_to_geometry(way) is None


def test_way_without_geometry_is_dropped():
    assert element_to_geometry(parse_element({"type": "way", "id": 5, "nodes": [1, 2]})) is None


def test_relation_with_one_geometric_member_is_linestring():
    relation = parse_element(
        {
            "type": "relation",
            "id": 9,
            "members": [
                {"type": "node", "ref": 1},
                {"type": "way", "ref": 2},
                {"type": "way", "ref": 3, "geometry": [{"lon": 1.0, "lat": 1.0}, {"lon": 2.0, "lat": 2.0}]},
            ],
        }
    )
    geometry = element_to_geometry(relation)
    assert geometry == {"type": "LineString", "coordinates": [[1.0, 1.0], [2.0, 2.0]]}


def test_relation_with_many_members_is_multilinestring_in_member_order(overpass_two_way_relation):
    relation = parse_element(overpass_two_way_relation["elements"][0])
    geometry = element_to_geometry(relation)
    assert geometry["type"] == "MultiLineString"
    assert len(geometry["coordinates"]) == 2
    assert geometry["coordinates"][0] == [[32.0, 0.1], [32.1, 0.2]]
    assert len(geometry["coordinates"][1]) == 3


def test_relation_without_geometric_members_yields_nothing():
    relation = parse_element({"type": "relation", "id": 9, "members": [{"type": "way", "ref": 1}]})
    assert element_to_geometry(relation) is None


def test_element_point_prefers_node_position_then_center():
    way = parse_element({"type": "way", "id": 1, "center": {"lon": 31.0, "lat": 2.0}})
    assert element_point(way) == {"type": "Point", "coordinates": [31.0, 2.0]}
    assert element_point(parse_element({"type": "relation", "id": 1})) is None


def test_centroid_is_arithmetic_mean_of_vertices():
    assert coordinate_centroid([[0, 0], [2, 0], [2, 2], [0, 2], [0, 0]]) == pytest.approx((0.8, 0.8))


def test_centroid_skips_non_numeric_pairs():
    assert coordinate_centroid([[0, 0], ["a", "b"], [4, 4]]) == (2.0, 2.0)
    assert coordinate_centroid([[None, None]]) is None


@pytest.mark.parametrize(
    "geometry, expected",
    [
        ({"type": "Point", "coordinates": [32.5, 0.3]}, [32.5, 0.3]),
        ({"type": "MultiPoint", "coordinates": [[0, 0], [4, 4]]}, [2.0, 2.0]),
        ({"type": "LineString", "coordinates": [[0, 0], [2, 2]]}, [1.0, 1.0]),
        ({"type": "Polygon", "coordinates": [[[0, 0], [4, 0], [4, 4], [0, 4]]]}, [2.0, 2.0]),
        ({"type": "MultiPolygon", "coordinates": [[[[0, 0], [2, 0]]], [[[4, 4], [6, 4]]]]}, [3.0, 2.0]),
    ],
)
def test_to_point_geometry_collapses(geometry, expected):
    assert to_point_geometry(geometry) == {"type": "Point", "coordinates": expected}


def test_to_point_geometry_rejects_empty_and_unknown():
    assert to_point_geometry(None) is None
    assert to_point_geometry({"type": "Polygon", "coordinates": []}) is None
    assert to_point_geometry({"type": "GeometryCollection", "geometries": []}) is None
    assert to_point_geometry({"type": "Point", "coordinates": ["x", "y"]}) is None


def test_point_with_nested_positions_is_rejected():
    nested = {"type": "Point", "coordinates": [[32.5, 0.3], [32.6, 0.4]]}
    assert to_point_geometry(nested) is None
    assert not has_numeric_coordinates(nested)


def test_has_numeric_coordinates():
    assert has_numeric_coordinates({"type": "Point", "coordinates": [1, 2]})
    assert not has_numeric_coordinates({"type": "Point", "coordinates": [1, None]})
    assert not has_numeric_coordinates({"type": "LineString", "coordinates": []})
