"""Process-wide configuration for the bidding agent.

The YAML file is read once, validated against AppConfig and cached. Runtime
overrides (CLI flags) go through set_config_value(), which validates a copy
first so a bad override leaves the active config untouched.

Usage:
    from cachebid.config import load_config, get, get_validated_config

    load_config("config/config.yaml")
    threshold = get("pricing.threshold_bps")
    batch = get_validated_config().automation.max_batch_size
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import yaml

from .config_schema import AppConfig, validate_config_dict


DEFAULT_CONFIG_PATH: Path = Path(__file__).parent.parent / "config" / "config.yaml"

# Raw YAML mapping as loaded (plus overrides) and the model validated from it
_raw: dict[str, Any] | None = None
_active: AppConfig | None = None


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with open(path) as f:
        loaded: Any = yaml.safe_load(f)
    return loaded if isinstance(loaded, dict) else {}


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Read, validate and activate a config file.

    Args:
        config_path: YAML file to load (default: config/config.yaml)

    Raises:
        FileNotFoundError: the file does not exist
        pydantic.ValidationError: unknown keys or out-of-range values
    """
    global _raw, _active

    raw = _read_yaml(Path(config_path) if config_path else DEFAULT_CONFIG_PATH)
    validated = validate_config_dict(raw)
    _raw, _active = raw, validated
    return validated


def get_validated_config() -> AppConfig:
    """The active AppConfig, loading the default file on first use."""
    if _active is None:
        return load_config()
    return _active


def get(key: str, default: Any = None) -> Any:
    """Look up a value by dot path, e.g. get("escrow.min_fund_amount").

    Schema defaults are visible even when the file leaves a key out.
    """
    value: Any = get_validated_config().model_dump()
    for part in key.split("."):
        if not isinstance(value, dict) or part not in value:
            return default
        value = value[part]
    return value


def set_config_value(key: str, value: Any) -> None:
    """Override one value by dot path and re-validate.

    Raises:
        pydantic.ValidationError: the override makes the config invalid;
            the active config is unchanged
    """
    global _raw, _active

    if _raw is None:
        load_config()
    candidate = copy.deepcopy(_raw) if _raw is not None else {}

    *parents, leaf = key.split(".")
    section = candidate
    for part in parents:
        section = section.setdefault(part, {})
    section[leaf] = value

    _active = validate_config_dict(candidate)
    _raw = candidate


def reset_config() -> None:
    """Forget the active config (tests)."""
    global _raw, _active
    _raw = None
    _active = None
