"""Headless cut/merge diagnostic on procedural meshes.

Builds a skinned two-bone tube and a skinned sphere, runs a plane cut and
a merge through the engines, and reports piece counts, binding invariants
and seam smoothness.

Usage::

    # Default run (cut at z=1.5, connect merge):
    python -m tools.surgery_diagnostic

    # Bevelled, capped cut and a snap merge:
    python -m tools.surgery_diagnostic --sharpness 0.5 --cap --mode snap

    # Use a custom engine config and save the report:
    python -m tools.surgery_diagnostic --config my_surgery.json --output report.json
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path

import numpy as np

from rigforge.constants import WEIGHT_SUM_TOLERANCE
from rigforge.core.config_loader import load_surgery_config
from rigforge.core.errors import SurgeryError
from rigforge.core.settings import SurgeryConfig
from rigforge.geometry.metrics import laplacian_energy
from rigforge.geometry.primitives import make_icosphere, make_tube
from rigforge.geometry.topology import TopologyGraph
from rigforge.skinning.model import Skeleton, SkinnedMeshData
from rigforge.skinning.weights import SkinWeightSolver
from rigforge.surgery.cut import Plane, cut
from rigforge.surgery.merge import Attachment, MeshMerge

logger = logging.getLogger(__name__)


def make_limb(config: SurgeryConfig) -> SkinnedMeshData:
    """Two-bone tube along Z, skinned by the solver."""
    mesh = make_tube(radius=0.4, length=2.0, segments=12, rings=8, center=(0.0, 0.0, 1.5))
    skeleton = Skeleton(
        np.array([(0.0, 0.0, 0.7), (0.0, 0.0, 1.5), (0.0, 0.0, 2.3)]),
        np.array([(0, 1), (1, 2)]),
    )
    binding = SkinWeightSolver(config.solver).compute_binding(mesh, skeleton)
    return SkinnedMeshData(mesh, skeleton, binding)


def make_body(config: SurgeryConfig) -> SkinnedMeshData:
    """Unit sphere with a single vertical bone."""
    mesh = make_icosphere(subdivisions=2, radius=1.0)
    skeleton = Skeleton(np.array([(0.0, 0.0, -0.5), (0.0, 0.0, 0.5)]), np.array([(0, 1)]))
    binding = SkinWeightSolver(config.solver).compute_binding(mesh, skeleton)
    return SkinnedMeshData(mesh, skeleton, binding)


def binding_report(data: SkinnedMeshData, max_influences: int) -> dict:
    """Weight invariants of one snapshot."""
    w = data.binding.weights
    sums = w.sum(axis=1)
    influences = (w > 0).sum(axis=1)
    return {
        "vertices": data.mesh.vertex_count,
        "faces": data.mesh.face_count,
        "joints": data.skeleton.joint_count,
        "bones": data.skeleton.bone_count,
        "max_sum_error": float(np.abs(sums - 1.0).max()) if len(sums) else 0.0,
        "max_influences": int(influences.max()) if len(influences) else 0,
        "valid": bool(
            (len(sums) == 0 or np.abs(sums - 1.0).max() <= WEIGHT_SUM_TOLERANCE)
            and (len(influences) == 0 or influences.max() <= max_influences)
            and w.min(initial=0.0) >= 0.0
        ),
        "boundary_loops": len(TopologyGraph(data.mesh.faces).boundary_loops()),
    }


def run_cut(config: SurgeryConfig, height: float, sharpness: float, cap: bool) -> dict:
    limb = make_limb(config)
    plane = Plane((0.0, 0.0, 1.0), -height)
    t0 = time.perf_counter()
    pieces = cut(limb, plane, sharpness=sharpness, cap=cap, config=config)
    elapsed = time.perf_counter() - t0
    reports = [binding_report(p, config.solver.max_influences) for p in pieces]
    for p, r in zip(pieces, reports):
        r["laplacian_energy"] = laplacian_energy(p.mesh.vertices, p.mesh.faces)
    logger.info("Cut at z=%.3f: %d pieces in %.3fs", height, len(pieces), elapsed)
    return {"pieces": reports, "seconds": elapsed}


def run_merge(config: SurgeryConfig, mode: str, smooth_layers: int, smooth_factor: float) -> dict:
    limb = make_limb(config)
    body = make_body(config)
    if mode == "split":
        attach = Attachment("split", 0, (0, 1))
    else:
        attach = Attachment(mode, 0, 1)
    engine = MeshMerge(limb, body, attach, config)
    t0 = time.perf_counter()
    merged = engine.run(smooth_layers, smooth_factor)
    elapsed = time.perf_counter() - t0

    stitch = engine.stitch_result
    seam = stitch.seeds
    report = binding_report(merged, config.solver.max_influences)
    report["patch_faces"] = int(len(stitch.patch_faces))
    report["loop_pairs"] = len(stitch.loop_pairs)
    report["seam_energy_before"] = laplacian_energy(stitch.vertices, stitch.faces, seam)
    report["seconds"] = elapsed
    logger.info("Merge (%s): %d vertices in %.3fs", mode, merged.mesh.vertex_count, elapsed)
    return report


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Run a cut and a merge on procedural skinned meshes and report quality.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", type=Path, default=None,
                        help="Surgery config JSON (default: packaged surgery.json)")
    parser.add_argument("--height", type=float, default=1.5,
                        help="Cut plane height along Z (default: 1.5)")
    parser.add_argument("--sharpness", type=float, default=1.0,
                        help="Cut seam sharpness in [0, 1] (default: 1.0)")
    parser.add_argument("--cap", action="store_true", help="Cap cut openings")
    parser.add_argument("--mode", choices=("snap", "split", "connect"), default="connect",
                        help="Merge attachment mode (default: connect)")
    parser.add_argument("--smooth-layers", type=int, default=None)
    parser.add_argument("--smooth-factor", type=float, default=None)
    parser.add_argument("--output", type=Path, default=None, help="Write the report as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(level=log_level, format="%(name)s: %(message)s")

    try:
        config = load_surgery_config(args.config)
        report = {
            "cut": run_cut(config, args.height, args.sharpness, args.cap),
            "merge": run_merge(config, args.mode, args.smooth_layers, args.smooth_factor),
        }
    except SurgeryError as exc:
        logger.error("Surgery failed: %s", exc)
        return 1

    valid = all(p["valid"] for p in report["cut"]["pieces"]) and report["merge"]["valid"]
    print(json.dumps(report, indent=2))
    if args.output is not None:
        args.output.write_text(json.dumps(report, indent=2))
        logger.info("Report written to %s", args.output)
    return 0 if valid else 2


if __name__ == "__main__":
    sys.exit(main())
