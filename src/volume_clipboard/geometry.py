"""
Solid geometry of brush volumes: polygon soup, BSP tree and bounds.

A pasted volume's brush is rebuilt from its serialized polygons:

1. Each polygon with at least 3 vertices is finalized (Newell normal,
   planarity check, 2D outline validity via Shapely) and appended.
2. The BSP tree is rebuilt from the polygon list with fixed build options.
3. The brush is prepared for moving and its bounds are recomputed via trimesh.

Copying reads the explicit polygon list when present and otherwise falls
back to walking the BSP nodes through the shared vertex pool and point table.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import trimesh
from shapely.errors import GEOSException
from shapely.geometry import Polygon

from volume_clipboard.contracts import (
    BspBuildOptions,
    BspMode,
    PolyFlags,
    PolygonRecord,
    to_vec3,
)

logger = logging.getLogger(__name__)

PLANE_EPSILON = 1e-4
PLANARITY_TOLERANCE = 1e-3
POINT_MERGE_DECIMALS = 6


def newell_normal(vertices: np.ndarray) -> np.ndarray:
    """Unnormalized polygon normal (right-hand winding)."""
    v = np.asarray(vertices, dtype=float)
    w = np.roll(v, -1, axis=0)
    return np.array(
        [
            np.sum((v[:, 1] - w[:, 1]) * (v[:, 2] + w[:, 2])),
            np.sum((v[:, 2] - w[:, 2]) * (v[:, 0] + w[:, 0])),
            np.sum((v[:, 0] - w[:, 0]) * (v[:, 1] + w[:, 1])),
        ]
    )


def plane_basis(normal: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    n = np.asarray(normal, dtype=float)
    ref = np.array([0.0, 0.0, 1.0]) if abs(n[2]) < 0.9 else np.array([1.0, 0.0, 0.0])
    u = np.cross(n, ref)
    u = u / np.linalg.norm(u)
    v = np.cross(n, u)
    return u, v


class Poly:
    """An editable brush polygon."""

    def __init__(self, vertices: Optional[Sequence[Sequence[float]]] = None, flags: int = 0):
        if vertices is None:
            self.vertices = np.zeros((0, 3), dtype=float)
        else:
            self.vertices = np.asarray(vertices, dtype=float).reshape(-1, 3)
        self.flags = int(flags)
        self.base = self.vertices[0].copy() if len(self.vertices) else np.zeros(3)
        self.normal = np.zeros(3)
        self.area = 0.0

    @property
    def has_plane(self) -> bool:
        return len(self.vertices) >= 3 and float(np.linalg.norm(self.normal)) > 0.0

    @property
    def plane_distance(self) -> float:
        return float(self.normal @ self.base)

    def finalize(self) -> bool:
        """Compute normal and area; returns False for a degenerate polygon."""
        if len(self.vertices) < 3:
            logger.warning("Polygon has %d vertices, cannot finalize", len(self.vertices))
            return False

        self.normal = np.zeros(3)
        self.area = 0.0
        if not np.all(np.isfinite(self.vertices)):
            logger.warning("Polygon has non-finite vertices, left without a plane")
            return False

        with np.errstate(over="ignore", invalid="ignore"):
            raw = newell_normal(self.vertices)
            length = float(np.linalg.norm(raw))
        if not np.isfinite(length) or not np.all(np.isfinite(raw)):
            logger.warning("Polygon normal overflows at base %s", self.base.tolist())
            return False
        if length <= 1e-12:
            logger.warning("Degenerate polygon (zero normal) at base %s", self.base.tolist())
            return False
        normal = raw / length

        with np.errstate(over="ignore", invalid="ignore"):
            rel = self.vertices - self.base
            offsets = rel @ normal
            u, v = plane_basis(normal)
            coords = np.column_stack([rel @ u, rel @ v])
        if not np.all(np.isfinite(coords)):
            logger.warning("Polygon outline overflows at base %s", self.base.tolist())
            return False
        if float(np.max(np.abs(offsets))) > PLANARITY_TOLERANCE:
            logger.debug("Non-planar polygon, max offset %.6f", float(np.max(np.abs(offsets))))

        try:
            outline = Polygon(coords)
            area = float(outline.area)
            valid = outline.is_valid
        except GEOSException as exc:
            logger.warning("Polygon outline rejected by GEOS: %s", exc)
            return False
        self.normal = normal
        self.area = area
        if not valid:
            logger.warning("Polygon outline is self-intersecting (%d vertices)", len(self.vertices))
            return False
        return self.area > 0.0

    def fragment(self, vertices: Sequence[np.ndarray]) -> "Poly":
        """A piece of this polygon after a split; keeps plane and flags."""
        piece = Poly(np.asarray(vertices, dtype=float), self.flags)
        piece.normal = self.normal.copy()
        piece.base = piece.vertices[0].copy()
        return piece


@dataclass
class VertPoolEntry:
    p_vertex: int


@dataclass
class BspNode:
    plane_normal: np.ndarray
    plane_distance: float
    flags: int
    i_vert_pool: int
    num_vertices: int
    i_poly: int
    front: Optional[int] = None
    back: Optional[int] = None
    coplanar: Optional[int] = None


@dataclass
class BoxSphereBounds:
    origin: np.ndarray = field(default_factory=lambda: np.zeros(3))
    box_extent: np.ndarray = field(default_factory=lambda: np.zeros(3))
    sphere_radius: float = 0.0

    @property
    def is_empty(self) -> bool:
        return self.sphere_radius == 0.0 and not np.any(self.box_extent)

    @property
    def min(self) -> np.ndarray:
        return self.origin - self.box_extent

    @property
    def max(self) -> np.ndarray:
        return self.origin + self.box_extent


class Model:
    """Brush solid: editable polygons plus the BSP built from them."""

    def __init__(self) -> None:
        self.polys: Optional[List[Poly]] = None
        self.nodes: List[BspNode] = []
        self.verts: List[VertPoolEntry] = []
        self.points: List[np.ndarray] = []
        self.bounds = BoxSphereBounds()
        self.prepared_for_moving = False
        self._point_index: Dict[Tuple[float, float, float], int] = {}

    def initialize(self) -> None:
        """Reset to an empty solid with an empty polygon container."""
        self.polys = []
        self.clear_tree()
        self.bounds = BoxSphereBounds()
        self.prepared_for_moving = False

    def clear_tree(self) -> None:
        self.nodes = []
        self.verts = []
        self.points = []
        self._point_index = {}

    def add_point(self, point: np.ndarray) -> int:
        key = tuple(float(c) for c in np.round(point, POINT_MERGE_DECIMALS))
        index = self._point_index.get(key)
        if index is None:
            index = len(self.points)
            self.points.append(np.asarray(point, dtype=float).copy())
            self._point_index[key] = index
        return index

    def node_vertices(self, node: BspNode) -> np.ndarray:
        indices = [
            self.verts[node.i_vert_pool + i].p_vertex for i in range(node.num_vertices)
        ]
        if not indices:
            return np.zeros((0, 3), dtype=float)
        return np.array([self.points[i] for i in indices], dtype=float)

    def point_inside(self, point: Sequence[float], epsilon: float = PLANE_EPSILON) -> bool:
        """True if *point* lies inside or on the solid."""
        if not self.nodes:
            return False
        p = np.asarray(point, dtype=float)
        index = 0
        while True:
            node = self.nodes[index]
            distance = float(node.plane_normal @ p) - node.plane_distance
            if distance > epsilon:
                if node.front is None:
                    return False
                index = node.front
            else:
                if node.back is None:
                    return True
                index = node.back

    def loops(self) -> List[np.ndarray]:
        """Vertex loops of the solid, from polygons if present else BSP nodes."""
        if self.polys:
            loops = [poly.vertices for poly in self.polys if len(poly.vertices) >= 3]
        else:
            loops = [
                self.node_vertices(node) for node in self.nodes if node.num_vertices >= 3
            ]
        return [loop for loop in loops if np.all(np.isfinite(loop))]

    def to_trimesh(self) -> trimesh.Trimesh:
        """Fan-triangulated mesh of the solid's loops."""
        vertices: List[np.ndarray] = []
        faces: List[List[int]] = []
        for loop in self.loops():
            start = len(vertices)
            vertices.extend(loop)
            for i in range(1, len(loop) - 1):
                faces.append([start, start + i, start + i + 1])
        if not faces:
            return trimesh.Trimesh(
                vertices=np.zeros((0, 3)), faces=np.zeros((0, 3), dtype=int), process=False
            )
        return trimesh.Trimesh(
            vertices=np.array(vertices), faces=np.array(faces, dtype=int), process=False
        )

    def build_bound(self) -> BoxSphereBounds:
        mesh = self.to_trimesh()
        if len(mesh.faces) == 0:
            self.bounds = BoxSphereBounds()
            return self.bounds
        lo, hi = mesh.bounds
        with np.errstate(over="ignore", invalid="ignore"):
            origin = (lo + hi) / 2.0
            radius = float(np.max(np.linalg.norm(mesh.vertices - origin, axis=1)))
        self.bounds = BoxSphereBounds(origin=origin, box_extent=(hi - lo) / 2.0, sphere_radius=radius)
        return self.bounds


# ---------------------------------------------------------------------------
# BSP construction
# ---------------------------------------------------------------------------

class _Side(Enum):
    FRONT = "front"
    BACK = "back"
    COPLANAR = "coplanar"
    SPLIT = "split"


def _classify(vertices: np.ndarray, normal: np.ndarray, distance: float) -> _Side:
    d = vertices @ normal - distance
    in_front = bool(np.any(d > PLANE_EPSILON))
    behind = bool(np.any(d < -PLANE_EPSILON))
    if in_front and behind:
        return _Side.SPLIT
    if in_front:
        return _Side.FRONT
    if behind:
        return _Side.BACK
    return _Side.COPLANAR


def split_vertices(
    vertices: np.ndarray, normal: np.ndarray, distance: float
) -> Tuple[List[np.ndarray], List[np.ndarray]]:
    """Clip a convex loop against a plane into front and back loops."""
    d = vertices @ normal - distance
    front: List[np.ndarray] = []
    back: List[np.ndarray] = []
    count = len(vertices)
    for i in range(count):
        a, b = vertices[i], vertices[(i + 1) % count]
        da, db = d[i], d[(i + 1) % count]
        if da >= -PLANE_EPSILON:
            front.append(a)
        if da <= PLANE_EPSILON:
            back.append(a)
        if (da > PLANE_EPSILON and db < -PLANE_EPSILON) or (
            da < -PLANE_EPSILON and db > PLANE_EPSILON
        ):
            t = da / (da - db)
            crossing = a + t * (b - a)
            front.append(crossing)
            back.append(crossing)
    return front, back


def _candidate_indices(count: int, options: BspBuildOptions) -> List[int]:
    if options.mode is BspMode.OPTIMAL:
        step = 1
    elif options.mode is BspMode.GOOD:
        step = max(1, count // 20)
    else:
        step = max(1, count // 4)
    return list(range(0, count, step))[: max(1, options.max_iterations)]


def _find_best_split(items: List[Tuple[int, Poly]], options: BspBuildOptions) -> int:
    if len(items) == 1:
        return 0
    best_index = 0
    best_score: Optional[float] = None
    for ci in _candidate_indices(len(items), options):
        splitter = items[ci][1]
        normal, distance = splitter.normal, splitter.plane_distance
        front = back = splits = 0
        for j, (_, other) in enumerate(items):
            if j == ci:
                continue
            side = _classify(other.vertices, normal, distance)
            if side is _Side.FRONT:
                front += 1
            elif side is _Side.BACK:
                back += 1
            elif side is _Side.SPLIT:
                splits += 1
        score = options.balance * abs(front - back) + (100 - options.balance) * splits
        if splitter.flags & PolyFlags.PORTAL:
            score -= options.portal_bias
        if best_score is None or score < best_score:
            best_score = score
            best_index = ci
    return best_index


def _add_node(model: Model, poly: Poly, i_poly: int, normal: np.ndarray, distance: float) -> int:
    i_vert_pool = len(model.verts)
    for vertex in poly.vertices:
        model.verts.append(VertPoolEntry(model.add_point(vertex)))
    model.nodes.append(
        BspNode(
            plane_normal=normal.copy(),
            plane_distance=float(distance),
            flags=int(poly.flags),
            i_vert_pool=i_vert_pool,
            num_vertices=len(poly.vertices),
            i_poly=i_poly,
        )
    )
    return len(model.nodes) - 1


def _build_tree(model: Model, work: List[Tuple[int, Poly]], options: BspBuildOptions) -> None:
    model.clear_tree()
    stack: List[Tuple[List[Tuple[int, Poly]], Optional[int], str]] = [(work, None, "")]
    while stack:
        items, parent, side_name = stack.pop()
        split_at = _find_best_split(items, options)
        i_poly, splitter = items[split_at]
        normal, distance = splitter.normal, splitter.plane_distance

        node_index = _add_node(model, splitter, i_poly, normal, distance)
        if parent is not None:
            setattr(model.nodes[parent], side_name, node_index)

        front: List[Tuple[int, Poly]] = []
        back: List[Tuple[int, Poly]] = []
        last_coplanar = node_index
        for j, (pi, poly) in enumerate(items):
            if j == split_at:
                continue
            side = _classify(poly.vertices, normal, distance)
            if side is _Side.COPLANAR:
                ci = _add_node(model, poly, pi, normal, distance)
                model.nodes[last_coplanar].coplanar = ci
                last_coplanar = ci
            elif side is _Side.FRONT:
                front.append((pi, poly))
            elif side is _Side.BACK:
                back.append((pi, poly))
            else:
                front_loop, back_loop = split_vertices(poly.vertices, normal, distance)
                if len(front_loop) >= 3:
                    front.append((pi, poly.fragment(front_loop)))
                if len(back_loop) >= 3:
                    back.append((pi, poly.fragment(back_loop)))

        if back:
            stack.append((back, node_index, "back"))
        if front:
            stack.append((front, node_index, "front"))


def build_bsp(model: Model, options: Optional[BspBuildOptions] = None) -> int:
    """Rebuild the BSP tree of *model* from its polygon list.

    Returns:
        Number of nodes in the rebuilt tree.
    """
    if options is None:
        options = BspBuildOptions()

    work = [(i, poly) for i, poly in enumerate(model.polys or []) if poly.has_plane]
    skipped = len(model.polys or []) - len(work)
    if skipped:
        logger.debug("BSP build skipped %d polygons without a plane", skipped)
    if not work:
        model.clear_tree()
        return 0

    _build_tree(model, work, options)
    for _ in range(max(0, options.extra_passes)):
        # Feed the previous tree's splitter order back in as input order.
        order: List[int] = []
        for node in model.nodes:
            if node.i_poly not in order:
                order.append(node.i_poly)
        by_index = dict(work)
        _build_tree(model, [(i, by_index[i]) for i in order], options)

    logger.debug("Built BSP with %d nodes from %d polygons", len(model.nodes), len(work))
    return len(model.nodes)


def prep_moving_brush(model: Model) -> None:
    """Mark the brush as ready to be moved; polygon flags are kept as pasted."""
    model.prepared_for_moving = True


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------

def find_model(volume) -> Optional[Model]:
    model = getattr(volume, "brush", None)
    if model is None:
        component = getattr(volume, "brush_component", None)
        if component is not None:
            model = component.brush
    return model


def polygons_from_trimesh(mesh: trimesh.Trimesh, flags: int = 0) -> List[PolygonRecord]:
    """One triangular PolygonRecord per mesh face."""
    return [
        PolygonRecord(vertices=[to_vec3(v) for v in mesh.vertices[face]], flags=int(flags))
        for face in mesh.faces
    ]


class GeometryCodec:
    """Copy and rebuild brush geometry as PolygonRecords."""

    def __init__(self, options: Optional[BspBuildOptions] = None):
        self.options = options or BspBuildOptions()

    def encode(self, volume) -> Optional[List[PolygonRecord]]:
        """Polygons of *volume*'s brush, or None if it has no brush at all."""
        model = find_model(volume)
        if model is None:
            return None

        if model.polys:
            return [
                PolygonRecord(vertices=[to_vec3(v) for v in poly.vertices], flags=int(poly.flags))
                for poly in model.polys
            ]

        records: List[PolygonRecord] = []
        for node in model.nodes:
            if node.num_vertices < 3:
                continue
            vertices = model.node_vertices(node)
            records.append(
                PolygonRecord(vertices=[to_vec3(v) for v in vertices], flags=int(node.flags))
            )
        if records:
            logger.debug("Copied %d polygons from BSP nodes", len(records))
        return records

    def decode(self, volume, polygons: Optional[Sequence[PolygonRecord]]) -> Model:
        """Replace *volume*'s brush with a model rebuilt from *polygons*."""
        model = Model()
        model.initialize()
        volume.brush = model

        for record in polygons or []:
            if len(record.vertices) < 3:
                continue
            flags = int(PolyFlags.NOT_SOLID) if record.flags is None else int(record.flags)
            poly = Poly(record.vertices, flags)
            poly.base = poly.vertices[0].copy()
            poly.finalize()
            model.polys.append(poly)

        build_bsp(model, self.options)
        prep_moving_brush(model)
        model.build_bound()
        return model
