"""Load AgentOptions from ``~/.wdacache/config.yaml`` or an explicit file."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml
from pydantic import ValidationError

from . import WDACACHE_HOME
from .models import AgentOptions

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.yaml"


def default_config_path(home: Optional[Path] = None) -> Path:
    """Path of the config file under the wdacache home directory."""
    return (home or Path(WDACACHE_HOME)).expanduser() / CONFIG_FILENAME


def load_options(
    path: Optional[Union[str, Path]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> AgentOptions:
    """Load agent options from YAML and apply overrides on top.

    A missing file yields defaults. A file that cannot be parsed or does
    not validate is logged and ignored, so a broken config never blocks a
    session that passes its options explicitly.

    Args:
        path: Config file. Defaults to ``$WDACACHE_HOME/config.yaml``.
        overrides: Options that win over the file, e.g. CLI flags, keyed
            by snake_case field name. Keys whose value is None are skipped.

    Returns:
        Validated AgentOptions.
    """
    config_file = Path(path).expanduser() if path else default_config_path()
    data: dict[str, Any] = {}
    if config_file.exists():
        try:
            loaded = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
            if not isinstance(loaded, dict):
                raise ValueError(f"expected a mapping, got {type(loaded).__name__}")
            data.update(
                AgentOptions.model_validate(loaded).model_dump(exclude_unset=True)
            )
        except (yaml.YAMLError, ValueError, ValidationError) as exc:
            logger.warning("Failed to load config %s: %s — using defaults", config_file, exc)
    else:
        logger.debug("No config at %s", config_file)

    for key, value in (overrides or {}).items():
        if value is not None:
            data[key] = value
    return AgentOptions.model_validate(data)
