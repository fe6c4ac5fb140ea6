# review_pipeline/config/loader.py
"""
Configuration loading with auto-creation of defaults.

Uses platformdirs for cross-platform config directory management.
"""

import logging
import os
from pathlib import Path

import yaml
from platformdirs import user_config_path

from .schema import ReviewConfig

logger = logging.getLogger(__name__)

API_KEY_ENV_VARS = ("REVIEW_PIPELINE_API_KEY", "OPENAI_API_KEY")


def get_config_path() -> Path:
    """Get path to config file, ensuring config directory exists."""
    config_dir = user_config_path("review-pipeline", ensure_exists=True)
    return config_dir / "config.yaml"


def _apply_env_overrides(config: ReviewConfig) -> ReviewConfig:
    """Fill llm.api_key from the environment when the file leaves it unset."""
    if config.llm.api_key:
        return config

    for var in API_KEY_ENV_VARS:
        value = os.environ.get(var)
        if value:
            llm = config.llm.model_copy(update={"api_key": value})
            return config.model_copy(update={"llm": llm})

    return config


def load_config(path: Path | str | None = None) -> ReviewConfig:
    """
    Load configuration from YAML file.

    If no path is given, the per-user config file is used and created with
    defaults when missing. An explicit path must exist.

    Returns:
        Validated ReviewConfig (api_key possibly taken from the environment)

    Raises:
        FileNotFoundError: If an explicit path does not exist
        pydantic.ValidationError: If the file contents are invalid
    """
    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        config_path = get_config_path()

        if not config_path.exists():
            default_config = ReviewConfig()
            config_dict = default_config.model_dump(mode="json")

            with config_path.open("w") as f:
                yaml.safe_dump(config_dict, f, default_flow_style=False, sort_keys=False)

            logger.info(f"Created default config at {config_path}")
            return _apply_env_overrides(default_config)

    with config_path.open("r") as f:
        config_data = yaml.safe_load(f) or {}

    config = ReviewConfig(**config_data)
    logger.info(f"Loaded config from {config_path}")
    return _apply_env_overrides(config)
