from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from gitsync.exceptions import ConfigError
from gitsync.logging import get_logger

__all__ = [
    "DEFAULT_BRANCH",
    "DEFAULT_REMOTE",
    "GitAuthorConfig",
    "GitSyncConfig",
    "get_user_config_path",
    "load_config",
]

logger = get_logger(__name__)

#: Branch assumed when none is specified (matches project-creation flows).
DEFAULT_BRANCH = "main"

#: Remote every sync flow talks to.
DEFAULT_REMOTE = "origin"

PROJECT_CONFIG_FILENAME = "gitsync.yaml"


class GitAuthorConfig(BaseModel):
    """Identity recorded on commits made by the engine.

    Passed explicitly on every commit-creating call so that neither backend
    depends on the user's global git configuration.
    """

    name: str = "[gitsync]"
    email: str = "git@gitsync.local"

    @field_validator("email")
    @classmethod
    def check_email(cls, v: str) -> str:
        if "@" not in v:
            raise ValueError("author email must contain '@'")
        return v


class YamlConfigSource(PydanticBaseSettingsSource):
    """Custom settings source that loads from YAML files."""

    def __init__(
        self,
        settings_cls: type[BaseSettings],
        yaml_file: Path | None = None,
    ):
        super().__init__(settings_cls)
        self.yaml_file = yaml_file
        self._config_data: dict[str, Any] = {}
        if yaml_file and yaml_file.exists():
            try:
                with open(yaml_file) as f:
                    loaded = yaml.safe_load(f)
                    if loaded is None:
                        logger.warning("config_file_empty", path=str(yaml_file))
                    elif loaded:
                        self._config_data = loaded
            except yaml.YAMLError as e:
                raise ConfigError(
                    message=f"Invalid YAML in {yaml_file}: {e}",
                    field=None,
                    value=None,
                ) from e

    def get_field_value(
        self, field: FieldInfo, field_name: str
    ) -> tuple[Any, str, bool]:
        """Get value for a specific field from the YAML config."""
        if field_name in self._config_data:
            return self._config_data[field_name], field_name, False
        return None, field_name, False

    def __call__(self) -> dict[str, Any]:
        """Return the complete config data."""
        return self._config_data


class GitSyncConfig(BaseSettings):
    """Root configuration object for the synchronization engine.

    ``enable_native_git`` is the process-wide backend flag. It is read by the
    backend selector on every call, so the surrounding settings layer may
    flip it at runtime (``config.enable_native_git = False``).
    """

    model_config = SettingsConfigDict(
        env_prefix="GITSYNC_",
        env_nested_delimiter="__",
        extra="ignore",
        validate_assignment=True,
    )

    enable_native_git: bool = True
    git_executable: str = "git"
    default_branch: str = DEFAULT_BRANCH
    remote_name: str = DEFAULT_REMOTE
    author: GitAuthorConfig = Field(default_factory=GitAuthorConfig)
    command_timeout_seconds: float = Field(default=120.0, gt=0, le=3600)
    network_timeout_seconds: float = Field(default=600.0, gt=0, le=7200)
    log_depth: int = Field(default=100_000, ge=1)
    verbosity: Literal["error", "warning", "info", "debug"] = "warning"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customize the order of settings sources.

        Priority (highest to lowest):
        1. Init settings (explicit keyword arguments)
        2. Environment variables (GITSYNC_*)
        3. Project YAML config (./gitsync.yaml)
        4. User YAML config (~/.config/gitsync/config.yaml)
        """
        project_config_path = _project_config_override or (
            Path.cwd() / PROJECT_CONFIG_FILENAME
        )
        return (
            init_settings,
            env_settings,
            YamlConfigSource(settings_cls, project_config_path),
            YamlConfigSource(settings_cls, get_user_config_path()),
        )


# Project config path chosen by load_config(); consulted by the settings sources.
_project_config_override: Path | None = None


def get_user_config_path() -> Path:
    """Get the path to the user configuration file.

    Returns:
        Path to ~/.config/gitsync/config.yaml
    """
    return Path.home() / ".config" / "gitsync" / "config.yaml"


def load_config(config_path: Path | None = None) -> GitSyncConfig:
    """Load configuration with hierarchy: defaults -> user -> project -> env.

    Args:
        config_path: Optional path to project config file. Defaults to
            ./gitsync.yaml

    Returns:
        GitSyncConfig instance with merged configuration

    Raises:
        ConfigError: If configuration is invalid
    """
    global _project_config_override

    if config_path is None:
        config_path = Path.cwd() / PROJECT_CONFIG_FILENAME

    if not config_path.exists():
        logger.info("project_config_not_found", path=str(config_path))

    _project_config_override = config_path
    try:
        return GitSyncConfig()
    except ValidationError as e:
        first_error = e.errors()[0]
        field = ".".join(str(loc) for loc in first_error["loc"])
        raise ConfigError(
            message=f"Invalid configuration: {first_error['msg']}",
            field=field,
            value=first_error.get("input"),
        ) from e
    finally:
        _project_config_override = None
