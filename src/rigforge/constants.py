"""Shared constants and paths for RigForge."""

from pathlib import Path

# Package paths
PACKAGE_ROOT = Path(__file__).parent
ASSETS_DIR = PACKAGE_ROOT / "assets"
CONFIG_DIR = ASSETS_DIR / "config"
SURGERY_CONFIG_FILE = "surgery.json"

# Skin binding
MAX_INFLUENCES = 4
WEIGHT_SUM_TOLERANCE = 1e-6

# Point-in-mesh ray direction (normalized in predicates)
RAY_DIRECTION = (1.0, 1.0, 1.0)

# Numerical guards
EPSILON = 1e-10
COLLINEAR_TOLERANCE = 1e-9

# Merge defaults
PATCH_SCALE = 1.5
SPLIT_SNAP_FRACTION = 0.05
