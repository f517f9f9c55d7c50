"""Cut and merge on live scene nodes: extract, run the engine, build new nodes.

Input nodes are only read; results are fresh nodes the caller can swap
into its scene.
"""

import logging
from typing import Optional

from rigforge.core.scene_graph import SceneNode
from rigforge.core.settings import SurgeryConfig
from rigforge.skinning.builder import build_skinned_mesh, extract_skinned_mesh
from rigforge.surgery.cut import Plane, cut
from rigforge.surgery.merge import Attachment, merge

logger = logging.getLogger(__name__)


def cut_object(
    node: SceneNode,
    plane: Plane,
    sharpness: float = 1.0,
    cap: Optional[bool] = None,
    config: Optional[SurgeryConfig] = None,
) -> list[SceneNode]:
    """Cut a skinned node; one new node per piece, named ``<name>_piece<k>``."""
    data = extract_skinned_mesh(node)
    pieces = cut(data, plane, sharpness=sharpness, cap=cap, config=config)
    return [build_skinned_mesh(p, f"{node.name}_piece{k}") for k, p in enumerate(pieces)]


def merge_objects(
    node_a: SceneNode,
    node_b: SceneNode,
    attach: Attachment,
    smooth_layers: Optional[int] = None,
    smooth_factor: Optional[float] = None,
    config: Optional[SurgeryConfig] = None,
    name: Optional[str] = None,
) -> SceneNode:
    """Merge two skinned nodes into a new node."""
    a = extract_skinned_mesh(node_a)
    b = extract_skinned_mesh(node_b)
    merged = merge(a, b, attach, smooth_layers, smooth_factor, config)
    name = name or f"{node_a.name}+{node_b.name}"
    logger.debug("Built merged node %s", name)
    return build_skinned_mesh(merged, name)
