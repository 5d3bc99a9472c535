"""Configuration loading."""

from pathlib import Path
from typing import Optional

import yaml

from .config_models import AppConfig

CONFIG_FILENAME = "recall-feedback.yaml"


def find_config(project_dir: Optional[Path] = None) -> Optional[Path]:
    """Find config file in standard locations."""
    locations = [
        Path(project_dir or Path.cwd()) / CONFIG_FILENAME,
        Path.home() / ".recall-feedback" / "config.yaml",
    ]
    for loc in locations:
        if loc.exists():
            return loc
    return None


def load_config(config_path: Optional[Path] = None, project_dir: Optional[Path] = None) -> dict:
    """Load configuration as a plain dict. Use load_config_model() for typed access."""
    return load_config_model(config_path, project_dir).to_dict()


def load_config_model(
    config_path: Optional[Path] = None, project_dir: Optional[Path] = None
) -> AppConfig:
    """Load configuration as Pydantic model with validation."""
    base_config = {}

    path = config_path or find_config(project_dir)
    if path and path.exists():
        try:
            with open(path) as f:
                base_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in config file: {e}")
        if not isinstance(base_config, dict):
            raise ValueError(f"Config file must hold a mapping, got {type(base_config).__name__}")

    try:
        return AppConfig.from_dict(base_config)
    except Exception as e:
        raise ValueError(f"Config validation failed: {e}")
