"""Tests for directed-edge topology, boundary loops and region growth."""

import numpy as np
import pytest

from rigforge.core.errors import TopologyError
from rigforge.geometry.primitives import make_icosphere, make_tube
from rigforge.geometry.topology import (
    TopologyGraph, connected_components, edge_adjacency, orient_against,
)


def _strip(n=4):
    """Open triangle strip of ``n`` quads along X: vertices 0..n on y=0, n+1.. on y=1."""
    faces = []
    top = n + 1
    for i in range(n):
        faces.append((i, i + 1, top + i + 1))
        faces.append((i, top + i + 1, top + i))
    return np.array(faces)


def _fan(n=6):
    """Disc: center 0 with rim 1..n, counter-clockwise."""
    return np.array([(0, 1 + i, 1 + (i + 1) % n) for i in range(n)])


class TestTopologyGraph:

    def test_faces_roundtrip(self):
        faces = _fan()
        topo = TopologyGraph(faces)
        assert len(topo.faces()) == len(faces)
        assert {tuple(sorted(f)) for f in topo.faces().tolist()} == {tuple(sorted(f)) for f in faces.tolist()}

    def test_opposite(self):
        topo = TopologyGraph(np.array([[0, 1, 2]]))
        assert topo.opposite(0, 1) == 2
        assert topo.opposite(1, 2) == 0
        assert topo.opposite(2, 0) == 1

    def test_closed_mesh_has_no_boundary(self):
        sphere = make_icosphere(1)
        topo = TopologyGraph(sphere.faces)
        assert topo.boundary_edges() == []
        assert topo.boundary_loops() == []

    def test_fan_boundary_loop(self):
        topo = TopologyGraph(_fan(6))
        loops = topo.boundary_loops()
        assert loops == [[1, 2, 3, 4, 5, 6]]
        assert topo.is_boundary_edge(1, 2)
        assert not topo.is_boundary_edge(0, 1)

    def test_annulus_has_two_loops(self):
        tube = make_tube(segments=8, rings=3)
        # Drop both end caps (last 2 * segments faces)
        topo = TopologyGraph(tube.faces[:-16])
        loops = topo.boundary_loops()
        assert len(loops) == 2
        assert all(len(loop) == 8 for loop in loops)
        assert loops[0][0] < loops[1][0]

    def test_non_manifold_edge(self):
        faces = np.array([[0, 1, 2], [0, 1, 3]])
        with pytest.raises(TopologyError, match="non-manifold edge"):
            TopologyGraph(faces)

    def test_bowtie_boundary(self):
        # Two triangles sharing only vertex 0
        faces = np.array([[0, 1, 2], [0, 3, 4]])
        with pytest.raises(TopologyError, match="non-manifold boundary"):
            TopologyGraph(faces).boundary_loops()

    def test_neighbors(self):
        topo = TopologyGraph(_fan(5))
        assert topo.neighbors(0) == {1, 2, 3, 4, 5}
        assert topo.neighbors(1) == {0, 2, 5}
        assert topo.neighbors(99) == set()

    def test_boundary_loops_repeatable(self):
        sphere = make_icosphere(2)
        # Open two holes by dropping the faces around two far-apart vertices
        far = int(np.argmin(sphere.vertices @ sphere.vertices[0]))
        holes = np.any(np.isin(sphere.faces, [0, far]), axis=1)
        faces = sphere.faces[~holes]
        topo = TopologyGraph(faces)
        first = topo.boundary_loops()
        assert len(first) == 2
        assert topo.boundary_loops() == first
        assert TopologyGraph(faces[::-1]).boundary_loops() == first


class TestExpand:

    def setup_method(self):
        self.topo = TopologyGraph(_strip(6))

    def test_zero_hops(self):
        interior, boundary = self.topo.expand([0], 0)
        assert len(interior) == 0
        np.testing.assert_array_equal(boundary, [0])

    def test_one_hop(self):
        interior, boundary = self.topo.expand([0], 1)
        np.testing.assert_array_equal(interior, [0])
        assert set(boundary.tolist()) == self.topo.neighbors(0)

    def test_rings_disjoint(self):
        interior, boundary = self.topo.expand([0, 3], 2)
        assert not set(interior.tolist()) & set(boundary.tolist())
        assert {0, 3} <= set(interior.tolist())

    def test_negative(self):
        with pytest.raises(ValueError):
            self.topo.expand([0], -1)

    def test_local_faces(self):
        interior, boundary = self.topo.expand([0], 1)
        region = np.concatenate([interior, boundary])
        faces = self.topo.local_faces(region)
        assert len(faces) > 0
        assert np.all(np.isin(faces, region))


class TestOrientAgainst:

    def test_flips_same_direction_patch(self):
        loop = [1, 2, 3]
        patch = np.array([[1, 2, 3]])
        np.testing.assert_array_equal(orient_against(patch, [loop]), [[1, 3, 2]])

    def test_keeps_opposed_patch(self):
        loop = [1, 2, 3]
        patch = np.array([[3, 2, 1]])
        np.testing.assert_array_equal(orient_against(patch, [loop]), patch)


class TestComponents:

    def test_adjacency_symmetric(self):
        adj = edge_adjacency(_fan(4), 5)
        dense = adj.toarray()
        np.testing.assert_array_equal(dense, dense.T)
        assert dense[0].sum() == 4

    def test_two_components_and_isolated(self):
        faces = np.array([[0, 1, 2], [3, 4, 5]])
        n, labels = connected_components(faces, 7)
        assert n == 3
        assert labels[0] == labels[2]
        assert labels[0] != labels[3]
        assert labels[6] not in (labels[0], labels[3])
