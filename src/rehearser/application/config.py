from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from rehearser.domain.constants import (
    DEFAULT_DIFFICULTY_CEILING,
    DEFAULT_DIFFICULTY_FLOOR,
    MIN_CALIBRATION_SAMPLES,
)

CONFIG_DIR = Path.home() / ".config/rehearser"


def _default_database_url() -> str:
    return f"sqlite:///{CONFIG_DIR / 'rehearser.db'}"


class AppConfig(BaseSettings):
    """
    Configuration model for rehearser.
    Supports loading from:
    1. Environment variables (REHEARSER_*)
    2. Config file (~/.config/rehearser/config.toml)
    3. Manual overrides (CLI)
    """

    model_config = SettingsConfigDict(
        env_prefix="REHEARSER_",
        extra="ignore",
    )

    # Storage
    backend: Literal["sql", "memory"] = "sql"
    database_url: str = Field(default_factory=_default_database_url)

    # Scheduling policy
    strict_scores: bool = False
    difficulty_floor: float = Field(default=DEFAULT_DIFFICULTY_FLOOR, gt=0)
    difficulty_ceiling: float = Field(default=DEFAULT_DIFFICULTY_CEILING, gt=0)
    min_calibration_samples: int = Field(default=MIN_CALIBRATION_SAMPLES, ge=1)

    verbose: int = 1

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

        toml_files = [
            CONFIG_DIR / "config.toml",
            Path.home() / ".rehearser.toml",
        ]

        # First existing file wins; sources earlier in the tuple take priority.
        toml_file = next((f for f in toml_files if f.exists()), None)

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

    @field_validator("database_url", mode="before")
    @classmethod
    def expand_sqlite_home(cls, v: Any) -> str:
        v = str(v)
        prefix = "sqlite:///~"
        if v.startswith(prefix):
            return "sqlite:///" + str(Path("~" + v[len(prefix):]).expanduser())
        return v

    @model_validator(mode="after")
    def check_difficulty_bounds(self) -> "AppConfig":
        if self.difficulty_floor > self.difficulty_ceiling:
            raise ValueError("difficulty_floor must not exceed difficulty_ceiling")
        return self


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/rehearser/config.toml (if exists)
    3. Environment variables (REHEARSER_*)
    4. cli_overrides (passed from Typer)
    """
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    return AppConfig(**overrides)
