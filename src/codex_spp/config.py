"""Configuration management for codex-spp."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import SppError

RUNTIME_DIR = ".codex-spp"
RUNTIME_CONFIG = f"{RUNTIME_DIR}/config.yaml"
TEMPLATE_CONFIG = "template_spp.config.yaml"

DEFAULT_EXCLUDE_PATHS = (".git", RUNTIME_DIR, "node_modules", "target", ".venv", "__pycache__")


class ConfigLoadError(SppError):
    """Raised when the governance config file cannot be read or validated."""


class SppSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    log_level: str = Field(default="INFO", validation_alias="SPP_LOG_LEVEL")
    config_path: Path | None = Field(default=None, validation_alias="SPP_CONFIG_PATH")
    history_path: Path | None = Field(default=None, validation_alias="SPP_HISTORY_PATH")
    codex_home: Path | None = Field(default=None, validation_alias="CODEX_HOME")
    repo_root: Path | None = Field(default=None, validation_alias="SPP_REPO_ROOT")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "SPP_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("config_path", "history_path", "codex_home", "repo_root", mode="before")
    @classmethod
    def _empty_path_is_unset(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


def configure_logging(level: str) -> None:
    """Configure root logging for codex-spp processes."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


@lru_cache(maxsize=1)
def get_settings() -> SppSettings:
    """Return cached settings instance."""

    settings = SppSettings()
    if settings.history_path is not None:
        settings.history_path = settings.history_path.expanduser()
    if settings.codex_home is not None:
        settings.codex_home = settings.codex_home.expanduser()
    return settings


class CodexModeConfig(BaseModel):
    """Sandbox and approval policy handed to the assistant in one mode."""

    sandbox: str
    approval: str = "on-request"


class CodexConfig(BaseModel):
    normal: CodexModeConfig = Field(
        default_factory=lambda: CodexModeConfig(sandbox="workspace-write")
    )
    drive: CodexModeConfig = Field(default_factory=lambda: CodexModeConfig(sandbox="read-only"))


class AttributionConfig(BaseModel):
    codex_author_emails: list[str] = Field(default_factory=list)
    trailer_marker: str = Field(
        default="co-authored-by: codex",
        description="Case-insensitive substring marking an assistant co-authored commit.",
    )

    @field_validator("codex_author_emails", mode="before")
    @classmethod
    def _ensure_list(cls, value: Any):
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value


class RecorderConfig(BaseModel):
    """Tuning for the drive session recorder process."""

    history_path: Path | None = Field(
        default=None,
        description="Explicit assistant history file; platform default when unset.",
    )
    poll_interval_seconds: float = Field(default=2.0, gt=0)
    max_event_bytes: int = Field(default=65_536, ge=256)
    max_file_bytes: int = Field(default=1_048_576, ge=1)
    exclude_paths: list[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDE_PATHS))

    @field_validator("exclude_paths", mode="before")
    @classmethod
    def _normalize_excludes(cls, value: Any):
        if value is None:
            return list(DEFAULT_EXCLUDE_PATHS)
        if isinstance(value, str):
            value = [value]
        return [str(item).strip().strip("/") for item in value if str(item).strip().strip("/")]


class GovernanceConfig(BaseModel):
    """Repository-level governance policy."""

    log_schema_version: str = "1.0"
    weekly_ratio_target: float = Field(default=0.70, ge=0.0, le=1.0)
    max_log_bytes: int = Field(default=524_288_000, ge=0)
    diff_snapshot_enabled: bool = False
    codex: CodexConfig = Field(default_factory=CodexConfig)
    attribution: AttributionConfig = Field(default_factory=AttributionConfig)
    recorder: RecorderConfig = Field(default_factory=RecorderConfig)


def _read_config(path: Path) -> GovernanceConfig:
    try:
        document = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigLoadError(f"Failed to read {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigLoadError(f"Failed to parse YAML in {path}: {exc}") from exc

    if document is None:
        return GovernanceConfig()
    if not isinstance(document, dict):
        raise ConfigLoadError(f"Config in {path} must be a mapping")

    try:
        return GovernanceConfig.model_validate(document)
    except ValidationError as exc:
        raise ConfigLoadError(f"Config validation error in {path}: {exc}") from exc


def load_config(repo_root: Path, explicit: Path | None = None) -> GovernanceConfig:
    """Load the governance config for a repository.

    Resolution order: an explicit path, the runtime config under
    ``.codex-spp/``, the repository template, then built-in defaults.
    """

    if explicit is not None:
        explicit = Path(explicit)
        if not explicit.exists():
            raise ConfigLoadError(f"Config file not found: {explicit}")
        return _read_config(explicit)

    for candidate in (repo_root / RUNTIME_CONFIG, repo_root / TEMPLATE_CONFIG):
        if candidate.exists():
            return _read_config(candidate)
    return GovernanceConfig()


def dump_config(config: GovernanceConfig) -> str:
    """Render a config as YAML suitable for writing to the runtime config file."""

    return yaml.safe_dump(config.model_dump(mode="json"), sort_keys=False)


__all__ = [
    "AttributionConfig",
    "CodexConfig",
    "CodexModeConfig",
    "ConfigLoadError",
    "GovernanceConfig",
    "RecorderConfig",
    "SppSettings",
    "configure_logging",
    "dump_config",
    "get_settings",
    "load_config",
]
