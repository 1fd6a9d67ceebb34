"""YAML configuration loading for the visibility core.

Handles loading and validation of the default-visibility file that
overrides the built-in default-by-type table.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


EVERYONE = "everyone"


@dataclass
class VisibilityConfig:
    """Default-by-type visibility loaded from YAML.

    ``defaults`` maps a resource type to the roles it grants, or to
    ``None`` when every principal is allowed.
    """

    defaults: Dict[str, Optional[List[str]]] = field(default_factory=dict)
    fallback: Optional[List[str]] = None  # None keeps the built-in fallback


def _parse_roles(resource_type: str, value: Any) -> Optional[List[str]]:
    if isinstance(value, str):
        if value.strip().lower() == EVERYONE:
            return None
        return [value.strip().lower()]
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return [item.strip().lower() for item in value if item.strip()]
    raise ValueError(
        f"Default visibility for '{resource_type}' must be a list of roles "
        f"or '{EVERYONE}', got {type(value).__name__}"
    )


def parse_visibility_config(config_dict: Dict[str, Any]) -> VisibilityConfig:
    """Parse the ``visibility`` section of a configuration dictionary.

    Args:
        config_dict: Full configuration dictionary

    Returns:
        VisibilityConfig instance

    Raises:
        ValueError: If the section has the wrong shape
    """
    section = config_dict.get("visibility") or {}
    if not isinstance(section, dict):
        raise ValueError("'visibility' section must be a mapping")

    raw_defaults = section.get("defaults") or {}
    if not isinstance(raw_defaults, dict):
        raise ValueError("'visibility.defaults' must be a mapping")

    defaults = {
        str(resource_type).strip().lower(): _parse_roles(str(resource_type), roles)
        for resource_type, roles in raw_defaults.items()
    }

    fallback = None
    if "fallback" in section:
        fallback = _parse_roles("fallback", section["fallback"])
        if fallback is None:
            raise ValueError("'visibility.fallback' must list roles explicitly")
    return VisibilityConfig(defaults=defaults, fallback=fallback)


def load_config(config_path: str) -> Dict[str, Any]:
    """Load configuration from YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If the file is not valid YAML or its root is not a mapping
    """
    config_file = Path(config_path)

    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    try:
        with config_file.open("r") as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

    if config is None:
        config = {}

    if not isinstance(config, dict):
        raise ValueError(
            f"Configuration root must be a mapping, got {type(config).__name__}"
        )

    return _expand_env_vars(config)


def _expand_env_vars(obj: Any) -> Any:
    """Recursively expand environment variables in configuration."""
    if isinstance(obj, dict):
        return {key: _expand_env_vars(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        return os.path.expandvars(obj)
    else:
        return obj


def load_visibility_config(config_path: str) -> VisibilityConfig:
    """Load and parse the default-visibility YAML file."""
    return parse_visibility_config(load_config(config_path))
