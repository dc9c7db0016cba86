from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from mneme.domain.constants import (
    DATA_FILE_NAME,
    DEFAULT_BASE_EASE,
    DEFAULT_FSRS_MAXIMUM_INTERVAL,
    DEFAULT_FSRS_WEIGHTS,
    DEFAULT_INITIAL_INTERVALS,
    DEFAULT_LEARNING_STEPS,
    DEFAULT_MAXIMUM_INTERVAL,
    DEFAULT_RELEARNING_STEPS,
    DEFAULT_REQUEST_RETENTION,
    HISTORY_LIMIT,
    MIN_EASE,
)
from mneme.domain.schedule.models import Algorithm

from .scheduling.fsrs_engine import FsrsConfig
from .scheduling.sm2_engine import Sm2Config


def config_files() -> list[Path]:
    return [
        Path.home() / ".config/mneme/config.toml",
        Path.home() / ".mneme.toml",
    ]


class FsrsParameters(BaseModel):
    """FSRS tuning values. Steps are in minutes."""

    request_retention: float = Field(default=DEFAULT_REQUEST_RETENTION, gt=0, lt=1)
    maximum_interval: int = Field(default=DEFAULT_FSRS_MAXIMUM_INTERVAL, ge=1)
    weights: list[float] = Field(default_factory=lambda: list(DEFAULT_FSRS_WEIGHTS))
    enable_fuzz: bool = True
    learning_steps: list[int] = Field(default_factory=lambda: list(DEFAULT_LEARNING_STEPS))
    relearning_steps: list[int] = Field(default_factory=lambda: list(DEFAULT_RELEARNING_STEPS))
    enable_short_term: bool = True

    @field_validator("learning_steps", "relearning_steps")
    @classmethod
    def positive_steps(cls, v: list[int]) -> list[int]:
        if any(step <= 0 for step in v):
            raise ValueError("learning steps must be positive minutes")
        return v


class SchedulerSettings(BaseSettings):
    """
    Configuration for the scheduler and its outer layers.
    Supports loading from:
    1. Manual overrides (CLI)
    2. Environment variables (MNEME_*, nested with __)
    3. Config file (~/.config/mneme/config.toml or ~/.mneme.toml)
    """

    model_config = SettingsConfigDict(
        env_prefix="MNEME_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # SM-2
    base_ease: int = Field(default=DEFAULT_BASE_EASE, ge=MIN_EASE)
    maximum_interval: int = Field(default=DEFAULT_MAXIMUM_INTERVAL, ge=1)
    load_balance: bool = False
    use_initial_schedule: bool = True
    initial_schedule_custom_intervals: list[int] = Field(
        default_factory=lambda: list(DEFAULT_INITIAL_INTERVALS)
    )

    # Algorithm selection
    default_scheduling_algorithm: Algorithm = Algorithm.FSRS
    fsrs: FsrsParameters = Field(default_factory=FsrsParameters)

    # Storage
    data_path: Path = Field(
        default_factory=lambda: Path.home() / ".config/mneme" / DATA_FILE_NAME
    )
    vault_root: Path | None = None
    history_limit: int = Field(default=HISTORY_LIMIT, ge=1)

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

        # First existing file wins
        toml_file = next((f for f in config_files() if f.exists()), None)

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

    @field_validator("initial_schedule_custom_intervals")
    @classmethod
    def non_negative_intervals(cls, v: list[int]) -> list[int]:
        if any(days < 0 for days in v):
            raise ValueError("initial intervals must be non-negative")
        return v

    @field_validator("data_path", mode="before")
    @classmethod
    def expand_data_path(cls, v: Any) -> Path:
        return Path(v).expanduser()

    @field_validator("vault_root", mode="before")
    @classmethod
    def resolve_vault_root(cls, v: Any) -> Path | None:
        if v is None:
            return None
        return Path(v).expanduser().resolve()

    def sm2_config(self) -> Sm2Config:
        return Sm2Config(
            base_ease=self.base_ease,
            maximum_interval=self.maximum_interval,
            load_balance=self.load_balance,
            use_initial_schedule=self.use_initial_schedule,
            initial_intervals=tuple(self.initial_schedule_custom_intervals),
        )

    def fsrs_config(self) -> FsrsConfig:
        return FsrsConfig(
            request_retention=self.fsrs.request_retention,
            maximum_interval=self.fsrs.maximum_interval,
            weights=tuple(self.fsrs.weights),
            enable_fuzz=self.fsrs.enable_fuzz,
            learning_steps=tuple(self.fsrs.learning_steps),
            relearning_steps=tuple(self.fsrs.relearning_steps),
            enable_short_term=self.fsrs.enable_short_term,
        )


def resolve_settings(overrides: dict[str, Any] | None = None) -> SchedulerSettings:
    """
    Multi-layered settings resolution.
    1. Defaults in SchedulerSettings
    2. ~/.config/mneme/config.toml (if exists)
    3. Environment variables (MNEME_*)
    4. overrides (passed from Typer), None values dropped
    """
    clean = {k: v for k, v in (overrides or {}).items() if v is not None}
    return SchedulerSettings(**clean)
