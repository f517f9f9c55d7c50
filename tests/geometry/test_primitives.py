"""Tests for procedural closed meshes."""

import numpy as np
import pytest

from rigforge.geometry.primitives import make_box, make_icosphere, make_tube
from rigforge.geometry.topology import TopologyGraph


def _signed_volume(mesh):
    v = mesh.vertices
    f = mesh.faces
    return float(np.sum(np.einsum("ij,ij->i", v[f[:, 0]], np.cross(v[f[:, 1]], v[f[:, 2]])))) / 6.0


@pytest.mark.parametrize("mesh", [
    make_icosphere(0),
    make_icosphere(2),
    make_tube(),
    make_tube(axis="x", segments=8, rings=3),
    make_box(1.0, 2.0, 3.0),
], ids=["ico0", "ico2", "tube", "tube_x", "box"])
def test_closed_and_outward(mesh):
    topo = TopologyGraph(mesh.faces)
    assert topo.boundary_edges() == []
    assert _signed_volume(mesh) > 0.0


def test_icosphere_counts():
    assert make_icosphere(0).vertex_count == 12
    assert make_icosphere(1).face_count == 80
    assert make_icosphere(2).vertex_count == 162


def test_icosphere_radius_and_center():
    mesh = make_icosphere(1, radius=2.0, center=(1.0, 0.0, -1.0))
    dist = np.linalg.norm(mesh.vertices - [1.0, 0.0, -1.0], axis=1)
    np.testing.assert_array_almost_equal(dist, 2.0)


def test_tube_extent():
    mesh = make_tube(radius=0.5, length=4.0, segments=10, rings=5, center=(0, 0, 1))
    assert mesh.vertex_count == 10 * 6 + 2
    assert mesh.vertices[:, 2].min() == pytest.approx(-1.0)
    assert mesh.vertices[:, 2].max() == pytest.approx(3.0)


def test_tube_axis():
    mesh = make_tube(length=3.0, axis="y")
    assert np.ptp(mesh.vertices[:, 1]) == pytest.approx(3.0)
    assert np.ptp(mesh.vertices[:, 0]) == pytest.approx(1.0)


def test_tube_bad_axis():
    with pytest.raises(ValueError):
        make_tube(axis="w")


def test_box_volume():
    assert _signed_volume(make_box(1.0, 2.0, 3.0)) == pytest.approx(6.0)
