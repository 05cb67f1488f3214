"""Configuration manager for wikidelta using TOML files."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import toml
from pydantic import BaseModel, Field, ValidationError

from .config import BASE_DIR, CONFIG_FILE
from .scheduler import BatchConfig
from .threshold import ThresholdConfig

logger = logging.getLogger(__name__)


class BatchSettings(BaseModel):
    batch_size: int = Field(default=10, ge=1, description="Operations per batch")
    parallelism: int = Field(default=4, ge=1, description="Worker threads used for execution")
    retry_attempts: int = Field(default=2, ge=0, description="Retries per failed operation")
    retry_delay: float = Field(default=1.0, ge=0, description="Base backoff delay in seconds")
    timeout: Optional[float] = Field(default=30.0, gt=0, description="Per-wave timeout in seconds")
    stop_on_dependency_failure: bool = False

    def to_batch_config(self) -> BatchConfig:
        return BatchConfig(**self.model_dump())


class ThresholdSettings(BaseModel):
    min_threshold: float = Field(default=20, ge=0, le=100)
    max_threshold: float = Field(default=80, ge=0, le=100)
    window_size: int = Field(default=10, ge=1)
    small_project_threshold: int = Field(default=50, ge=1)
    medium_project_threshold: int = Field(default=200, ge=1)
    large_project_threshold: int = Field(default=500, ge=1)

    def to_threshold_config(self) -> ThresholdConfig:
        return ThresholdConfig(**self.model_dump())


class ImpactSettings(BaseModel):
    max_depth: int = Field(default=2, ge=1, description="Reverse-dependency hops followed")


class WikideltaSettings(BaseModel):
    batch: BatchSettings = Field(default_factory=BatchSettings)
    threshold: ThresholdSettings = Field(default_factory=ThresholdSettings)
    impact: ImpactSettings = Field(default_factory=ImpactSettings)


SECTIONS = ("batch", "threshold", "impact")


def load_full_config() -> Dict[str, Any]:
    """Load the entire TOML config (all sections)."""
    if not CONFIG_FILE.exists():
        return {}
    try:
        with open(CONFIG_FILE, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (toml.TomlDecodeError, OSError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", CONFIG_FILE, exc)
        return {}


def _save_full_config(config: Dict[str, Any]) -> bool:
    """Write entire config dict to TOML file, preserving all sections."""
    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    try:
        with open(CONFIG_FILE, "w", encoding="utf-8") as f:
            toml.dump(config, f)
        return True
    except OSError as exc:
        logger.warning("Could not write config %s: %s", CONFIG_FILE, exc)
        return False


def load_settings() -> WikideltaSettings:
    """Load validated settings.

    Each section is validated on its own; a section that fails validation
    falls back to its defaults without discarding the others.
    """
    raw = load_full_config()
    sections: Dict[str, Any] = {}
    for name, model in (("batch", BatchSettings), ("threshold", ThresholdSettings), ("impact", ImpactSettings)):
        try:
            sections[name] = model.model_validate(raw.get(name, {}))
        except ValidationError as exc:
            logger.warning("Invalid [%s] settings, using defaults: %s", name, exc)
            sections[name] = model()
    return WikideltaSettings(**sections)


def save_settings(settings: WikideltaSettings) -> bool:
    """Save settings, preserving unrelated sections already in the file."""
    config = load_full_config()
    for name, values in settings.model_dump(exclude_none=True).items():
        config[name] = values
    return _save_full_config(config)


def set_setting(key: str, value: str) -> WikideltaSettings:
    """Update one ``section.field`` setting from its string form.

    Raises:
        KeyError: If *key* does not name a known setting
        ValueError: If *value* does not validate for that setting
    """
    section, _, field_name = key.partition(".")
    if section not in SECTIONS or not field_name:
        raise KeyError(f"Unknown setting '{key}'. Use <section>.<name>, e.g. batch.batch_size")

    settings = load_settings()
    current = getattr(settings, section)
    if field_name not in type(current).model_fields:
        raise KeyError(f"Unknown setting '{key}'")

    data = current.model_dump()
    data[field_name] = value
    try:
        updated = type(current).model_validate(data)
    except ValidationError as exc:
        raise ValueError(str(exc)) from exc

    setattr(settings, section, updated)
    save_settings(settings)
    return settings


def config_location() -> str:
    return str(CONFIG_FILE if CONFIG_FILE.exists() else BASE_DIR)
