"""Tests for brush polygon finalization, BSP rebuild and the geometry codec."""

import math

import numpy as np
import pytest
import trimesh

from volume_clipboard.contracts import BspBuildOptions, BspMode, PolyFlags, PolygonRecord
from volume_clipboard.geometry import (
    GeometryCodec,
    Model,
    Poly,
    build_bsp,
    newell_normal,
    polygons_from_trimesh,
    prep_moving_brush,
    split_vertices,
)
from volume_clipboard.scene import TriggerVolume


def _make_volume(polygons, name="TriggerVolume_0"):
    volume = TriggerVolume(name)
    GeometryCodec().decode(volume, polygons)
    return volume


class TestPoly:
    def test_newell_normal_of_ccw_triangle_points_up(self):
        normal = newell_normal(np.array([[0, 0, 0], [1, 0, 0], [0, 1, 0]], dtype=float))
        assert normal[2] > 0
        assert normal[0] == pytest.approx(0.0)

    def test_finalize_triangle(self):
        poly = Poly([(0, 0, 0), (100, 0, 0), (0, 100, 0)])
        assert poly.finalize()
        assert poly.normal == pytest.approx([0.0, 0.0, 1.0])
        assert poly.area == pytest.approx(5000.0)

    def test_finalize_collinear_is_degenerate(self):
        poly = Poly([(0, 0, 0), (1, 0, 0), (2, 0, 0)])
        assert not poly.finalize()
        assert not poly.has_plane

    def test_finalize_bow_tie_is_invalid(self):
        poly = Poly([(0, 0, 0), (10, 10, 0), (10, 0, 0), (0, 10, 0)])
        assert not poly.finalize()

    def test_split_vertices(self):
        square = np.array([[-1, -1, 0], [1, -1, 0], [1, 1, 0], [-1, 1, 0]], dtype=float)
        front, back = split_vertices(square, np.array([1.0, 0.0, 0.0]), 0.0)
        assert len(front) == 4
        assert len(back) == 4
        assert all(v[0] >= -1e-9 for v in front)
        assert all(v[0] <= 1e-9 for v in back)


class TestDecode:
    def test_box(self, box_polygons):
        volume = _make_volume(box_polygons)
        model = volume.brush
        assert len(model.polys) == 6
        assert len(model.nodes) == 6
        assert len(model.points) == 8
        assert model.prepared_for_moving

    def test_base_is_first_vertex(self, box_polygons):
        model = _make_volume(box_polygons).brush
        for record, poly in zip(box_polygons, model.polys):
            assert tuple(poly.base) == record.vertices[0]

    def test_missing_flags_default_to_not_solid(self):
        polygons = [PolygonRecord(vertices=[(0, 0, 0), (1, 0, 0), (0, 1, 0)])]
        model = _make_volume(polygons).brush
        assert model.polys[0].flags == int(PolyFlags.NOT_SOLID)

    def test_short_polygons_discarded(self, triangle_polygons):
        polygons = triangle_polygons + [PolygonRecord(vertices=[(0, 0, 0), (1, 1, 1)], flags=0)]
        model = _make_volume(polygons).brush
        assert len(model.polys) == 1

    def test_zero_polygons_gives_empty_solid(self):
        volume = _make_volume([])
        model = volume.brush
        assert model is not None
        assert model.polys == []
        assert model.nodes == []
        assert model.bounds.is_empty

    def test_brush_linked_to_component(self, triangle_polygons):
        volume = _make_volume(triangle_polygons)
        assert volume.brush_component.brush is volume.brush
        assert volume.get_value("Brush") is not None

    def test_flags_survive_round_trip(self):
        flags = int(PolyFlags.ED_PROCESSED | PolyFlags.TWO_SIDED)
        polygons = [PolygonRecord(vertices=[(0, 0, 0), (1, 0, 0), (0, 1, 0)], flags=flags)]
        volume = _make_volume(polygons)
        assert volume.brush.polys[0].flags == flags
        assert volume.brush.nodes[0].flags == flags
        assert GeometryCodec().encode(volume)[0].flags == flags

    def test_overflowing_polygon_has_no_plane(self):
        huge = Poly([(0, 0, 0), (1e200, 0, 0), (0, 1e200, 0)])
        assert not huge.finalize()
        assert not huge.has_plane

    def test_nan_vertex_has_no_plane(self):
        poly = Poly([(0, 0, 0), (float("nan"), 0, 0), (0, 1, 0)])
        assert not poly.finalize()
        assert not poly.has_plane

    def test_overflowing_polygon_kept_without_tree(self):
        polygons = [PolygonRecord(vertices=[(0, 0, 0), (1e200, 0, 0), (0, 1e200, 0)], flags=0)]
        model = _make_volume(polygons).brush
        assert len(model.polys) == 1
        assert model.nodes == []


class TestBsp:
    def test_point_containment(self, box_polygons):
        model = _make_volume(box_polygons).brush
        assert model.point_inside((0, 0, 0))
        assert model.point_inside((99, -99, 50))
        assert not model.point_inside((150, 0, 0))
        assert not model.point_inside((0, 0, -101))

    def test_deterministic(self, box_polygons):
        first = _make_volume(box_polygons).brush
        second = _make_volume(box_polygons).brush
        assert [n.i_poly for n in first.nodes] == [n.i_poly for n in second.nodes]

    def test_splitting_plane_cuts_polygons(self):
        # A long quad straddling the plane of a small one is split in two.
        polygons = [
            PolygonRecord(vertices=[(0, -5, -5), (0, 5, -5), (0, 5, 5), (0, -5, 5)], flags=0),
            PolygonRecord(vertices=[(-10, 0, -1), (10, 0, -1), (10, 0, 1), (-10, 0, 1)], flags=0),
        ]
        model = Model()
        model.initialize()
        for record in polygons:
            poly = Poly(record.vertices, record.flags)
            poly.finalize()
            model.polys.append(poly)
        count = build_bsp(model, BspBuildOptions(mode=BspMode.LAME))
        assert count >= 2
        assert model.point_inside((0.0, 0.0, 0.0))

    def test_extra_passes_keep_node_count(self, box_polygons):
        model = _make_volume(box_polygons).brush
        nodes = len(model.nodes)
        build_bsp(model, BspBuildOptions(extra_passes=2))
        assert len(model.nodes) == nodes

    def test_prep_moving_brush(self, triangle_polygons):
        model = _make_volume(triangle_polygons).brush
        assert model.prepared_for_moving
        model.prepared_for_moving = False
        model.nodes[0].flags |= int(PolyFlags.ED_PROCESSED)
        prep_moving_brush(model)
        assert model.prepared_for_moving
        assert model.nodes[0].flags & int(PolyFlags.ED_PROCESSED)


class TestBounds:
    def test_box_bounds(self, box_polygons):
        bounds = _make_volume(box_polygons).brush.bounds
        assert bounds.origin == pytest.approx([0.0, 0.0, 0.0])
        assert bounds.box_extent == pytest.approx([100.0, 100.0, 100.0])
        assert bounds.sphere_radius == pytest.approx(100.0 * math.sqrt(3.0))

    def test_to_trimesh(self, box_polygons):
        mesh = _make_volume(box_polygons).brush.to_trimesh()
        assert len(mesh.faces) == 12
        assert mesh.bounds[1] == pytest.approx([100.0, 100.0, 100.0])


class TestEncode:
    def test_method_one_round_trip(self, box_polygons):
        volume = _make_volume(box_polygons)
        encoded = GeometryCodec().encode(volume)
        assert len(encoded) == len(box_polygons)
        for original, copied in zip(box_polygons, encoded):
            assert copied.flags == original.flags
            assert copied.vertices == [tuple(map(float, v)) for v in original.vertices]

    def test_method_two_used_only_without_polys(self, box_polygons):
        volume = _make_volume(box_polygons)
        model = volume.brush
        model.polys = []
        encoded = GeometryCodec().encode(volume)
        assert len(encoded) == len(model.nodes)
        expected = {tuple(map(tuple, model.node_vertices(node))) for node in model.nodes}
        assert {tuple(p.vertices) for p in encoded} == expected

    def test_method_two_skips_short_nodes(self, triangle_polygons):
        volume = _make_volume(triangle_polygons)
        model = volume.brush
        model.polys = None
        model.nodes[0].num_vertices = 2
        assert GeometryCodec().encode(volume) == []

    def test_no_model_encodes_none(self):
        assert GeometryCodec().encode(TriggerVolume("Empty")) is None

    def test_trimesh_faces_to_polygons(self):
        mesh = trimesh.creation.box(extents=[2, 2, 2])
        polygons = polygons_from_trimesh(mesh, flags=int(PolyFlags.NOT_SOLID))
        assert len(polygons) == 12
        assert all(len(p.vertices) == 3 for p in polygons)
        volume = _make_volume(polygons)
        assert volume.brush.point_inside((0.0, 0.0, 0.0))
        assert not volume.brush.point_inside((2.0, 0.0, 0.0))
