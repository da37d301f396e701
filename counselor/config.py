"""Counselor Configuration System.

Loads and validates configuration from ~/.counselor/config.json.
Uses Pydantic for schema validation with sensible defaults.

Usage:
    from counselor.config import get_config, save_config

    config = get_config()
    print(config.model.model_id)
    print(config.generation.max_tokens)

    # Modify and save
    config.generation.display_every_n_tokens = 8
    save_config(config)
"""

from __future__ import annotations

import json
import logging
import os
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError

from counselor.errors import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_PATH = Path.home() / ".counselor" / "config.json"

# Current config schema version for migration tracking
CONFIG_VERSION = 2


class ModelSettings(BaseModel):
    """Model configuration for text generation.

    Attributes:
        model_id: Model identifier from the registry (e.g., "phi-3-mini-4k").
        model_path: Explicit HuggingFace repo or local directory. Overrides model_id.
        temperature: Sampling temperature.
        top_p: Nucleus sampling threshold (1.0 disables it).
        cache_limit_mb: Engine buffer-cache budget applied once at first load.
        memory_buffer_multiplier: Safety factor for the pre-load memory check.
    """

    model_id: str = "phi-3-mini-4k"
    model_path: str | None = None
    temperature: float = Field(default=0.6, ge=0.0, le=2.0)
    top_p: float = Field(default=1.0, gt=0.0, le=1.0)
    cache_limit_mb: int = Field(default=20, ge=1)
    memory_buffer_multiplier: float = Field(default=1.3, ge=1.0, le=4.0)


class GenerationSettings(BaseModel):
    """Decoding loop settings.

    Attributes:
        max_tokens: Hard cap on produced tokens per session.
        display_every_n_tokens: Publish partial output every N tokens.
            4 updates smoothly without measurable throughput loss.
        end_marker: Decoded token text that ends the assistant turn.
    """

    max_tokens: int = Field(default=240, ge=1)
    display_every_n_tokens: int = Field(default=4, ge=1)
    end_marker: str = "<|end|>"


class LoggingSettings(BaseModel):
    """Logging preferences.

    Attributes:
        level: Root log level.
        structured: Emit one JSON object per record instead of plain text.
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    structured: bool = False


class CounselorConfig(BaseModel):
    """Counselor configuration schema.

    Attributes:
        config_version: Schema version for migration tracking.
        model: Model selection and sampling parameters.
        generation: Stop policy and throttle cadence.
        logging: Logging preferences.
    """

    config_version: int = CONFIG_VERSION
    model: ModelSettings = Field(default_factory=ModelSettings)
    generation: GenerationSettings = Field(default_factory=GenerationSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


# Module-level singleton with thread safety
_config: CounselorConfig | None = None
_config_lock = threading.Lock()


def _migrate_v1_to_v2(data: dict[str, Any]) -> dict[str, Any]:
    """Move the flat v1 ``max_tokens``/``display_every`` keys into ``generation``."""
    generation = data.get("generation")
    if not isinstance(generation, dict):
        generation = data["generation"] = {}
    if "max_tokens" in data:
        generation.setdefault("max_tokens", data.pop("max_tokens"))
    if "display_every" in data:
        generation.setdefault("display_every_n_tokens", data.pop("display_every"))
    return data


_MIGRATIONS: dict[int, Callable[[dict[str, Any]], dict[str, Any]]] = {
    2: _migrate_v1_to_v2,
}


def _migrate_config(data: dict[str, Any]) -> dict[str, Any]:
    """Migrate config data from older versions to current schema.

    Args:
        data: Raw config data loaded from file.

    Returns:
        Migrated config data compatible with current schema.

    Raises:
        ConfigurationError: If ``config_version`` is not an integer.
    """
    version = data.get("config_version", 1)
    if not isinstance(version, int) or isinstance(version, bool):
        raise ConfigurationError(
            f"config_version must be an integer, got {version!r}",
            config_key="config_version",
        )

    for target_version in sorted(_MIGRATIONS.keys()):
        if version < target_version:
            logger.info("Migrating config from version %d to %d", version, target_version)
            data = _MIGRATIONS[target_version](data)
            version = target_version

    data["config_version"] = CONFIG_VERSION
    return data


def load_config(config_path: Path | None = None) -> CounselorConfig:
    """Load configuration from file, return defaults if missing/invalid.

    Args:
        config_path: Optional path to config file. Defaults to ~/.counselor/config.json.

    Returns:
        CounselorConfig instance with loaded or default values.
    """
    path = config_path or CONFIG_PATH

    if not path.exists():
        logger.debug("Config file not found at %s, using defaults", path)
        return CounselorConfig()

    try:
        with path.open() as f:
            data: dict[str, Any] = json.load(f)
    except json.JSONDecodeError as e:
        logger.warning("Invalid JSON in config file %s: %s, using defaults", path, e)
        return CounselorConfig()
    except OSError as e:
        logger.warning("Cannot read config file %s: %s, using defaults", path, e)
        return CounselorConfig()

    if not isinstance(data, dict):
        logger.warning("Config file %s does not contain an object, using defaults", path)
        return CounselorConfig()

    try:
        data = _migrate_config(data)
    except ConfigurationError as e:
        logger.warning("Config migration failed for %s: %s, using defaults", path, e)
        return CounselorConfig()

    try:
        return CounselorConfig.model_validate(data)
    except ValidationError as e:
        logger.warning("Config validation failed: %s, using defaults", e)
        return CounselorConfig()


def save_config(config: CounselorConfig, config_path: Path | None = None) -> bool:
    """Save configuration to file.

    Args:
        config: Configuration to save.
        config_path: Optional path to config file. Defaults to ~/.counselor/config.json.

    Returns:
        True if saved successfully, False otherwise.
    """
    path = config_path or CONFIG_PATH

    try:
        path.parent.mkdir(parents=True, exist_ok=True)

        with path.open("w") as f:
            json.dump(config.model_dump(), f, indent=2)

        os.chmod(path, 0o600)

        logger.debug("Configuration saved to %s", path)
        return True

    except OSError as e:
        logger.error("Failed to save config to %s: %s", path, e)
        return False


def get_config() -> CounselorConfig:
    """Get singleton configuration instance.

    Uses double-check locking for thread safety.
    """
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:
                _config = load_config()
    return _config


def reset_config() -> None:
    """Reset singleton configuration for testing."""
    global _config
    with _config_lock:
        _config = None
