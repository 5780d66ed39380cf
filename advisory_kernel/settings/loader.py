"""
Configuration loading.

PipelineConfig defaults can be overridden by ADVISORY_* keys, read first
from a .env file and then from the process environment (which wins).
Keys map to field names by stripping the prefix and lower-casing:

    ADVISORY_CRITICAL_COOLDOWN_SECONDS=15
    ADVISORY_VALUE_OVERRIDE_PRECEDES_CONFIDENCE=false
"""

import logging
import os
from pathlib import Path
from typing import Dict, Optional, Union

from dotenv import dotenv_values

from advisory_kernel.models.config import PipelineConfig

logger = logging.getLogger(__name__)

ENV_PREFIX = "ADVISORY_"
DEFAULT_ENV_PATH = Path(".env")


def _collect_overrides(values: Dict[str, Optional[str]]) -> Dict[str, str]:
    fields = PipelineConfig.model_fields
    overrides = {}
    for key, value in values.items():
        if not key.startswith(ENV_PREFIX) or value is None:
            continue
        name = key[len(ENV_PREFIX):].lower()
        if name not in fields:
            logger.warning("Ignoring unknown setting %s", key)
            continue
        overrides[name] = value
    return overrides


def load_config(env_file: Optional[Union[str, Path]] = None) -> PipelineConfig:
    """
    Build a PipelineConfig from defaults, a .env file and the environment.
    Raises pydantic.ValidationError when a value does not fit its field.
    """
    path = Path(env_file) if env_file else DEFAULT_ENV_PATH

    overrides: Dict[str, str] = {}
    if path.exists():
        overrides.update(_collect_overrides(dotenv_values(path)))
    elif env_file:
        raise FileNotFoundError(f"No .env at {path}")

    overrides.update(_collect_overrides(dict(os.environ)))

    if overrides:
        logger.info("Config overrides applied: %s", ", ".join(sorted(overrides)))
    return PipelineConfig.model_validate(overrides)
