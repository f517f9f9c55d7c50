"""JSON config file loading utilities."""

import json
import logging
from pathlib import Path
from typing import Any, Optional

from rigforge.constants import CONFIG_DIR, SURGERY_CONFIG_FILE
from rigforge.core.settings import SurgeryConfig

logger = logging.getLogger(__name__)


def load_json(path: Path) -> Any:
    """Load and return parsed JSON from a file."""
    with open(path) as f:
        return json.load(f)


def load_config(name: str) -> Any:
    """Load a config file from assets/config/."""
    return load_json(CONFIG_DIR / name)


def load_surgery_config(path: Optional[Path] = None) -> SurgeryConfig:
    """Load engine settings, from the packaged defaults unless *path* is given."""
    if path is None:
        data = load_config(SURGERY_CONFIG_FILE)
    else:
        data = load_json(Path(path))
    config = SurgeryConfig.from_dict(data)
    logger.debug("Loaded surgery config from %s", path or SURGERY_CONFIG_FILE)
    return config
