"""Tuning settings for the skin weight solver and the surgery engines."""

from dataclasses import dataclass, field, fields
from typing import Any

from rigforge.constants import MAX_INFLUENCES, PATCH_SCALE, SPLIT_SNAP_FRACTION
from rigforge.core.errors import InputError

JOINT_AGGREGATIONS = ("endpoints", "projection")
UNREFERENCED_BONE_POLICIES = ("error", "skip")
RESKIN_MODES = ("patch", "all")


@dataclass
class SolverSettings:
    """Skin weight solver options."""
    max_influences: int = MAX_INFLUENCES
    # "endpoints": a bone's weight goes to both of its joints.
    # "projection": split by the clamped projection parameter along the bone.
    joint_aggregation: str = "endpoints"
    unreferenced_bones: str = "error"

    def validate(self) -> None:
        if self.max_influences < 1:
            raise InputError(f"max_influences must be >= 1, got {self.max_influences}")
        if self.joint_aggregation not in JOINT_AGGREGATIONS:
            raise InputError(f"Unknown joint_aggregation: {self.joint_aggregation!r}")
        if self.unreferenced_bones not in UNREFERENCED_BONE_POLICIES:
            raise InputError(f"Unknown unreferenced_bones policy: {self.unreferenced_bones!r}")


@dataclass
class CutSettings:
    """Cut engine options."""
    bevel_layers: int = 3
    bevel_strength: float = 2.0
    cap: bool = False
    # Cap grid spacing as a multiple of the mean edge length
    cap_spacing_scale: float = 1.0

    def validate(self) -> None:
        if self.bevel_layers < 0:
            raise InputError(f"bevel_layers must be >= 0, got {self.bevel_layers}")
        if self.bevel_strength < 0:
            raise InputError(f"bevel_strength must be >= 0, got {self.bevel_strength}")
        if self.cap_spacing_scale <= 0:
            raise InputError(f"cap_spacing_scale must be > 0, got {self.cap_spacing_scale}")


@dataclass
class MergeSettings:
    """Merge engine options."""
    smooth_layers: int = 2
    smooth_factor: float = 1.0
    patch_scale: float = PATCH_SCALE
    split_snap_fraction: float = SPLIT_SNAP_FRACTION
    reskin: str = "patch"

    def validate(self) -> None:
        if self.smooth_layers < 0:
            raise InputError(f"smooth_layers must be >= 0, got {self.smooth_layers}")
        if self.smooth_factor < 0:
            raise InputError(f"smooth_factor must be >= 0, got {self.smooth_factor}")
        if self.patch_scale <= 0:
            raise InputError(f"patch_scale must be > 0, got {self.patch_scale}")
        if not 0.0 <= self.split_snap_fraction < 0.5:
            raise InputError(f"split_snap_fraction must be in [0, 0.5), got {self.split_snap_fraction}")
        if self.reskin not in RESKIN_MODES:
            raise InputError(f"Unknown reskin mode: {self.reskin!r}")


def _section_from_dict(cls, data: dict[str, Any], section: str):
    if not isinstance(data, dict):
        raise InputError(f"Config section {section!r} must be an object")
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise InputError(f"Unknown keys in config section {section!r}: {', '.join(unknown)}")
    obj = cls(**data)
    obj.validate()
    return obj


@dataclass
class SurgeryConfig:
    """Complete engine configuration."""
    solver: SolverSettings = field(default_factory=SolverSettings)
    cut: CutSettings = field(default_factory=CutSettings)
    merge: MergeSettings = field(default_factory=MergeSettings)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SurgeryConfig":
        unknown = sorted(set(data) - {"solver", "cut", "merge"})
        if unknown:
            raise InputError(f"Unknown config sections: {', '.join(unknown)}")
        return cls(
            solver=_section_from_dict(SolverSettings, data.get("solver", {}), "solver"),
            cut=_section_from_dict(CutSettings, data.get("cut", {}), "cut"),
            merge=_section_from_dict(MergeSettings, data.get("merge", {}), "merge"),
        )

    def validate(self) -> None:
        self.solver.validate()
        self.cut.validate()
        self.merge.validate()
