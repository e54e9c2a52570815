"""Tests for the centroid index and the vertex sampling intersection join."""
from __future__ import annotations

import pytest
from shapely.geometry import LineString, MultiPolygon, Point, Polygon

from data.features import Feature
from spatial.geometry import EmptyCollectionError
from spatial.index import SpatialIndex
from spatial.join import geometries_intersect, intersecting_features

from conftest import multipolygon_feature, polygon_feature


@pytest.fixture
def spread_polygons():
    return [
        polygon_feature([(5, 5), (10, 10), (10, 5), (5, 5)]),
        polygon_feature([(20, 20), (30, 30), (30, 20), (20, 20)]),
        polygon_feature([(30, 30), (35, 35), (35, 30), (30, 30)]),
        polygon_feature([(50, 50), (60, 60), (60, 50), (50, 50)]),
    ]


@pytest.fixture
def multi_feature():
    return multipolygon_feature(
        [
            [(15, 15), (40, 40), (40, 15), (15, 15)],
            [(0, 0), (10, 10), (10, 0), (0, 0)],
        ]
    )


class TestSpatialIndex:
    def test_build_on_empty_collection_fails(self):
        with pytest.raises(EmptyCollectionError):
            SpatialIndex.build([])

    def test_bounds_cover_collection(self, spread_polygons):
        index = SpatialIndex.build(spread_polygons)
        assert tuple(index.bounds) == (5.0, 5.0, 60.0, 60.0)
        assert len(index) == 4

    def test_entries_are_keyed_by_centroid(self, spread_polygons):
        index = SpatialIndex.build(spread_polygons)
        entries = index.query_entries((0, 0, 100, 100))
        by_position = {entry.position: entry for entry in entries}
        lon, lat = by_position[0].point
        assert lon == pytest.approx(25 / 3)
        assert lat == pytest.approx(20 / 3)
        assert by_position[0].bounds == (5.0, 5.0, 10.0, 10.0)

    def test_query_returns_features_with_centroid_in_bounds(self, spread_polygons):
        index = SpatialIndex.build(spread_polygons)
        found = index.query((0, 0, 40, 40))
        assert sorted(id(feature) for feature in found) == sorted(id(feature) for feature in spread_polygons[:3])
        assert index.query((100, 100, 200, 200)) == []

    def test_query_misses_feature_whose_centroid_is_outside(self, spread_polygons):
        index = SpatialIndex.build(spread_polygons)
        # the box overlaps the polygon at (5..10) but not its centroid
        assert index.query((9, 9, 12, 12)) == []


class TestGeometriesIntersect:
    def test_polygon_and_multipolygon_intersect_both_ways(self):
        poly = Polygon([(0, 0), (10, 10), (10, 0), (0, 0)])
        multi = MultiPolygon(
            [
                Polygon([(15, 15), (25, 25), (25, 15), (15, 15)]),
                Polygon([(9, 9), (10, 10), (10, 9), (9, 9)]),
            ]
        )
        assert geometries_intersect(poly, multi)
        assert geometries_intersect(multi, poly)

    def test_containment_is_detected_in_one_direction_only(self):
        outer = Polygon([(0, 0), (10, 0), (10, 10), (0, 10), (0, 0)])
        inner = Polygon([(2, 2), (4, 2), (4, 4), (2, 4), (2, 2)])
        assert geometries_intersect(outer, inner)
        assert not geometries_intersect(inner, outer)

    def test_crossing_edges_without_vertex_inside_are_missed(self):
        horizontal = Polygon([(0, 4), (10, 4), (10, 6), (0, 6), (0, 4)])
        vertical = Polygon([(4, 0), (6, 0), (6, 10), (4, 10), (4, 0)])
        assert horizontal.intersects(vertical)
        assert not geometries_intersect(horizontal, vertical)
        assert not geometries_intersect(vertical, horizontal)

    def test_non_polygonal_geometries_never_intersect(self):
        poly = Polygon([(0, 0), (10, 0), (10, 10), (0, 10), (0, 0)])
        assert not geometries_intersect(poly, Point(5, 5))
        assert not geometries_intersect(LineString([(1, 1), (2, 2)]), poly)


class TestIntersectingFeatures:
    def test_multipolygon_query_finds_three_polygons(self, spread_polygons, multi_feature):
        index = SpatialIndex.build(spread_polygons)
        found = intersecting_features(index, multi_feature)
        assert len(found) == 3
        assert spread_polygons[3] not in found

    def test_far_polygon_finds_nothing(self, spread_polygons, multi_feature):
        multi_index = SpatialIndex.build([multi_feature])
        assert intersecting_features(multi_index, spread_polygons[3]) == []

    def test_polygon_finds_multipolygon(self, spread_polygons, multi_feature):
        multi_index = SpatialIndex.build([multi_feature])
        assert intersecting_features(multi_index, spread_polygons[1]) == [multi_feature]

    def test_non_polygonal_query_is_inert(self, spread_polygons):
        index = SpatialIndex.build(spread_polygons)
        assert intersecting_features(index, Feature(geometry=Point(7, 6))) == []
