"""Mesh surgery -- plane cuts and merges of skinned meshes."""

from rigforge.surgery.cut import MeshCut, Plane, cut
from rigforge.surgery.merge import Attachment, MeshMerge, merge
from rigforge.surgery.operations import cut_object, merge_objects

__all__ = [
    "Attachment",
    "MeshCut",
    "MeshMerge",
    "Plane",
    "cut",
    "cut_object",
    "merge",
    "merge_objects",
]
