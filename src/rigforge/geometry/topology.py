"""Half-edge style adjacency over a mesh's retained triangles.

Each directed edge ``x -> y`` of a triangle is stored in a networkx
``DiGraph`` with the triangle's third vertex as its ``opposite``
attribute, so a face can be rebuilt from any of its edges.  An edge whose
reverse is missing lies on a boundary.
"""

import logging
from collections import deque
from typing import Iterable

import networkx as nx
import numpy as np
from numpy.typing import NDArray
from scipy.sparse import csr_matrix
from scipy.sparse.csgraph import connected_components as _cc

from rigforge.core.errors import TopologyError

logger = logging.getLogger(__name__)


class TopologyGraph:
    """Directed-edge graph built from an ``(F, 3)`` face array."""

    def __init__(self, faces: NDArray):
        self.graph = nx.DiGraph()
        faces = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
        for a, b, c in faces.tolist():
            for x, y, z in ((a, b, c), (b, c, a), (c, a, b)):
                if self.graph.has_edge(x, y):
                    raise TopologyError(
                        f"directed edge {x}->{y} is shared by two faces",
                        region="non-manifold edge",
                    )
                self.graph.add_edge(x, y, opposite=z)

    @property
    def vertex_count(self) -> int:
        return self.graph.number_of_nodes()

    def opposite(self, x: int, y: int) -> int:
        """Third vertex of the triangle owning directed edge x->y."""
        return self.graph.edges[x, y]["opposite"]

    def faces(self) -> NDArray[np.int64]:
        """Rebuild the face list, each triangle once, starting at its smallest vertex."""
        tris = set()
        for x, y, z in self.graph.edges(data="opposite"):
            tri = (x, y, z)
            k = tri.index(min(tri))
            tris.add(tri[k:] + tri[:k])
        if not tris:
            return np.zeros((0, 3), dtype=np.int64)
        return np.array(sorted(tris), dtype=np.int64)

    def is_boundary_edge(self, x: int, y: int) -> bool:
        return self.graph.has_edge(x, y) and not self.graph.has_edge(y, x)

    def boundary_edges(self) -> list[tuple[int, int]]:
        return [(x, y) for x, y in self.graph.edges if not self.graph.has_edge(y, x)]

    def boundary_loops(self) -> list[list[int]]:
        """Closed cycles of boundary edges.

        Loops follow face winding and start at their smallest vertex; they
        are listed in order of that starting vertex.  Raises TopologyError
        when a vertex has more than one outgoing boundary edge.
        """
        nxt: dict[int, int] = {}
        for x, y in self.boundary_edges():
            if x in nxt:
                raise TopologyError(
                    f"vertex {x} has more than one outgoing boundary edge",
                    region="non-manifold boundary",
                )
            nxt[x] = y

        loops = []
        visited = set()
        for start in sorted(nxt):
            if start in visited:
                continue
            loop = [start]
            visited.add(start)
            cur = nxt[start]
            while cur != start:
                if cur in visited or cur not in nxt:
                    raise TopologyError(
                        f"boundary walk from vertex {start} does not close",
                        region="non-manifold boundary",
                    )
                loop.append(cur)
                visited.add(cur)
                cur = nxt[cur]
            loops.append(loop)
        logger.debug("Extracted %d boundary loops", len(loops))
        return loops

    def neighbors(self, v: int) -> set[int]:
        if v not in self.graph:
            return set()
        return set(self.graph.successors(v)) | set(self.graph.predecessors(v))

    def expand(self, seeds: Iterable[int], k: int) -> tuple[NDArray[np.int64], NDArray[np.int64]]:
        """Breadth-first region growth from *seeds*.

        Returns ``(interior, boundary)``: interior holds the vertices reached
        in fewer than ``k`` hops (seeds are hop 0), boundary those at exactly
        hop ``k``.  With ``k == 0`` the seeds themselves form the boundary.
        """
        if k < 0:
            raise ValueError(f"hop count must be >= 0, got {k}")
        hops: dict[int, int] = {}
        queue = deque()
        for s in seeds:
            s = int(s)
            if s not in hops:
                hops[s] = 0
                queue.append(s)
        while queue:
            v = queue.popleft()
            if hops[v] >= k:
                continue
            for n in self.neighbors(v):
                if n not in hops:
                    hops[n] = hops[v] + 1
                    queue.append(n)
        interior = sorted(v for v, h in hops.items() if h < k)
        boundary = sorted(v for v, h in hops.items() if h == k)
        return np.array(interior, dtype=np.int64), np.array(boundary, dtype=np.int64)

    def local_faces(self, region: Iterable[int]) -> NDArray[np.int64]:
        """Faces whose three vertices all lie in *region*."""
        region = set(int(v) for v in region)
        faces = self.faces()
        if len(faces) == 0:
            return faces
        mask = np.array([all(v in region for v in f) for f in faces.tolist()], dtype=bool)
        return faces[mask]


def orient_against(patch: NDArray, loops: Iterable[Iterable[int]]) -> NDArray[np.int64]:
    """Wind *patch* faces so they traverse the loops' directed edges in reverse.

    ``loops`` follow the winding of the mesh being closed; a consistently
    oriented patch must run each loop edge the other way.  Decided by
    majority over the loop edges the patch contains.
    """
    patch = np.asarray(patch, dtype=np.int64).reshape(-1, 3)
    loop_edges = set()
    for loop in loops:
        loop = list(loop)
        loop_edges.update(zip(loop, loop[1:] + loop[:1]))
    same = opposed = 0
    for a, b, c in patch.tolist():
        for x, y in ((a, b), (b, c), (c, a)):
            if (x, y) in loop_edges:
                same += 1
            elif (y, x) in loop_edges:
                opposed += 1
    if same > opposed:
        return patch[:, [0, 2, 1]]
    return patch


def edge_adjacency(faces: NDArray, vertex_count: int) -> csr_matrix:
    """Symmetric vertex adjacency matrix from triangle edges."""
    faces = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
    rows = np.concatenate([faces[:, 0], faces[:, 1], faces[:, 2]])
    cols = np.concatenate([faces[:, 1], faces[:, 2], faces[:, 0]])
    data = np.ones(len(rows), dtype=np.float64)
    adj = csr_matrix((data, (rows, cols)), shape=(vertex_count, vertex_count))
    return ((adj + adj.T) > 0).astype(np.float64)


def connected_components(faces: NDArray, vertex_count: int) -> tuple[int, NDArray[np.int64]]:
    """Component count and per-vertex labels (isolated vertices get their own label)."""
    n, labels = _cc(edge_adjacency(faces, vertex_count), directed=False)
    return int(n), labels.astype(np.int64)
