"""
Load stack configs from configs/<name>.json.
Resolve paths relative to project root (directory containing configs/).
"""

import json
import os

# Project root: directory containing configs/
_ROOT = os.path.dirname(os.path.abspath(__file__))


def _config_path(name: str) -> str:
    return os.path.join(_ROOT, "configs", f"{name}.json")


def load_config(name: str) -> dict:
    """Load config by name. Raises FileNotFoundError if config does not exist."""
    path = _config_path(name)
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Config not found: {path}")
    with open(path) as f:
        return json.load(f)


def resolve_model_path(name: str) -> str:
    """Return default model path for a config: models/<name>/model.bin."""
    return os.path.join(_ROOT, "models", name, "model.bin")


def list_configs() -> list[str]:
    """Return list of config names that have a config file."""
    configs_dir = os.path.join(_ROOT, "configs")
    if not os.path.isdir(configs_dir):
        return []
    return sorted(
        os.path.splitext(f)[0]
        for f in os.listdir(configs_dir)
        if f.endswith(".json")
    )
