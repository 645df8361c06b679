from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from recall.domain.constants import DEFAULT_ROLLOVER_HOUR


class AppConfig(BaseSettings):
    """
    Configuration model for recall.
    Supports loading from:
    1. Environment variables (RECALL_*)
    2. Config file (~/.config/recall/config.toml)
    3. Manual overrides (CLI)
    """

    model_config = SettingsConfigDict(
        env_prefix="RECALL_",
        extra="ignore",
    )

    # Storage
    backend: Literal["memory", "yaml"] = "yaml"
    collection_path: Path = Field(
        default_factory=lambda: Path.home() / ".local/share/recall/collection.yaml"
    )
    log_dir: Path = Field(default_factory=lambda: Path.home() / ".config/recall/logs")

    # Scheduling
    rollover_hour: int = Field(default=DEFAULT_ROLLOVER_HOUR, ge=0, le=23)
    utc_offset_minutes: int = Field(default=0, ge=-14 * 60, le=14 * 60)
    undo_limit: int | None = Field(default=None, gt=0)
    random_seed: int | None = None

    verbose: int = Field(default=0, ge=0)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        from pydantic_settings import TomlConfigSettingsSource

        # Find the first existing file
        toml_file = next((f for f in _config_files() if f.exists()), None)

        # Earlier sources win: CLI overrides, then environment, then the file.
        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (
            init_settings,
            env_settings,
        )

    @field_validator("collection_path", "log_dir", mode="before")
    @classmethod
    def expand_path(cls, v: Any) -> Any:
        if v is None:
            return v
        return Path(v).expanduser()


def _config_files() -> list[Path]:
    # Re-evaluated per call so tests can point HOME elsewhere.
    home = Path.home()
    return [home / ".config/recall/config.toml", home / ".recall.toml"]


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/recall/config.toml (if exists)
    3. Environment variables (RECALL_*)
    4. cli_overrides (passed from Typer)
    """
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    return AppConfig(**overrides)
