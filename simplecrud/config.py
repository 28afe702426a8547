# File: simplecrud/config.py
"""
SimpleCRUD - Configuration Loading
===================================
Two layers:

    AppConfig      one application: title, database, login URL, templates
                   and the list of CRUD specs.  Loaded from YAML or JSON
                   with ``load_config_file``.
    CrudSettings   process settings from ``SIMPLECRUD_*`` environment
                   variables (and an optional ``.env`` file).

Precedence when both are present: command-line flags, then settings, then
file values.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from simplecrud.errors import ConfigurationError
from simplecrud.models import CrudSpec

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("simplecrud.config")


class AppConfig(BaseModel):
    """A whole application described in one configuration file."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    title: str = Field(default="SimpleCRUD")
    database_url: Optional[str] = Field(default=None)
    login_url: str = Field(default="/login")
    template_dir: Optional[str] = Field(default=None)
    cruds: List[CrudSpec] = Field(default_factory=list)


class CrudSettings(BaseSettings):
    """Process-level settings read from the environment."""

    model_config = SettingsConfigDict(
        env_prefix="SIMPLECRUD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: Optional[str] = None
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"
    login_url: Optional[str] = None
    template_dir: Optional[str] = None


# ---------------------------------------------------------------------------
# File loading
# ---------------------------------------------------------------------------


def _load_json_file(path: Path) -> Dict[str, Any]:
    """Load and parse a JSON file. Raises ValueError on parse errors."""
    try:
        data: Any = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object at top level, got {type(data).__name__}.")
    return data


def _load_yaml_file(path: Path) -> Dict[str, Any]:
    """Load and parse a YAML file. Raises ValueError on parse errors."""
    try:
        data: Any = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"Expected a YAML mapping at top level, got {type(data).__name__}.")
    return data


def load_raw_config(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Read a configuration file, dispatching on its extension.

    Raises:
        FileNotFoundError: the file does not exist.
        ValueError: the file cannot be parsed.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")
    suffix: str = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        return _load_yaml_file(path)
    if suffix == ".json":
        return _load_json_file(path)
    logger.info("Unknown extension '%s', trying JSON then YAML.", suffix)
    try:
        return _load_json_file(path)
    except ValueError:
        return _load_yaml_file(path)


def load_config_file(path: Union[str, Path]) -> AppConfig:
    """
    Load an ``AppConfig`` from YAML or JSON.

    Raises:
        FileNotFoundError / ValueError: unreadable file.
        ConfigurationError: the content does not describe a valid application.
    """
    raw: Dict[str, Any] = load_raw_config(path)
    try:
        config: AppConfig = AppConfig.model_validate(raw)
    except PydanticValidationError as exc:
        details: str = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise ConfigurationError(f"Invalid configuration in {path}: {details}") from exc
    logger.info("Loaded %d CRUD definition(s) from %s.", len(config.cruds), path)
    return config


__all__: List[str] = [
    "AppConfig",
    "CrudSettings",
    "load_config_file",
    "load_raw_config",
]
