"""Runtime configuration for codeatlas - centralized configuration management."""

import json
import os
from pathlib import Path
from typing import Any

import yaml

from codeatlas.utils.constants import DEFAULT_OUTPUT_DIR, ERROR_LOG_FILE, STATE_DIR
from codeatlas.utils.logging import logger

DEFAULTS = {
    "paths": {
        "output_dir": str(DEFAULT_OUTPUT_DIR),
        "error_log": str(ERROR_LOG_FILE),
        "snapshot": "",
    },
    "limits": {
        "max_file_size": 2 * 1024 * 1024,
        "max_files": 0,
        "max_seconds": 0.0,
        "chunk_threshold": 1500,
        "chunk_max_tokens": 1500,
        "hub_limit": 20,
        "max_cycles": 100,
        "bridge_sample_size": 200,
        "bridge_limit": 20,
        "max_graph_depth": 0,
    },
    "extraction": {
        "concurrent": False,
        "max_workers": 4,
        "pretty_json": True,
        "families": [],
    },
}

CONFIG_FILENAMES = ("config.json", "config.yml", "config.yaml")


def _read_user_config(state_dir: Path) -> dict[str, Any] | None:
    """Read the first config file present in the state directory."""
    for name in CONFIG_FILENAMES:
        path = state_dir / name
        if not path.exists():
            continue
        try:
            with open(path, encoding="utf-8") as f:
                if path.suffix == ".json":
                    return json.load(f)
                return yaml.safe_load(f)
        except (json.JSONDecodeError, yaml.YAMLError, OSError) as e:
            logger.warning(f"Could not load config file from {path}: {e}")
            logger.info("Continuing with default configuration")
            return None
    return None


def _coerce(default_value: Any, raw: str) -> Any:
    # bool is checked before int since bool subclasses int
    if isinstance(default_value, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default_value, int):
        return int(raw)
    if isinstance(default_value, float):
        return float(raw)
    if isinstance(default_value, list):
        return [v.strip() for v in raw.split(",") if v.strip()]
    return raw


def load_runtime_config(root: str | Path = ".") -> dict[str, Any]:
    """
    Load runtime configuration from .codeatlas/config.{json,yml} and environment.

    Config priority (highest to lowest):
    1. Environment variables (CODEATLAS_<SECTION>_<KEY>)
    2. .codeatlas/config.json, config.yml or config.yaml
    3. Built-in defaults

    Values whose type does not match the default are ignored. An int given
    where a float is expected is accepted.

    Args:
        root: Root directory to look for the config file

    Returns:
        Configuration dictionary with merged values
    """

    import copy

    cfg = copy.deepcopy(DEFAULTS)

    user = _read_user_config(Path(root) / STATE_DIR)
    if isinstance(user, dict):
        for section in cfg:
            if section in user and isinstance(user[section], dict):
                for key, value in user[section].items():
                    if key not in cfg[section]:
                        continue
                    default_value = cfg[section][key]
                    if isinstance(default_value, float) and isinstance(value, int):
                        value = float(value)
                    if isinstance(value, type(default_value)):
                        cfg[section][key] = value

    for section in cfg:
        for key in cfg[section]:
            env_var = f"CODEATLAS_{section.upper()}_{key.upper()}"
            if env_var in os.environ:
                value = os.environ[env_var]
                try:
                    cfg[section][key] = _coerce(cfg[section][key], value)
                except (ValueError, AttributeError) as e:
                    logger.warning(
                        f"Invalid value for environment variable {env_var}: '{value}' - {e}"
                    )
                    logger.info(f"Using default value: {cfg[section][key]}")

    return cfg
