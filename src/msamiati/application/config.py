from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

from msamiati.domain.constants import (
    CATALOG_TABLE,
    DEFAULT_SAVE_DEBOUNCE,
    DEFAULT_SYNC_PAGE_SIZE,
    DEFAULT_WORDS_PER_DAY,
    REQUEST_TIMEOUT,
)

CONFIG_FILES = [
    Path.home() / ".config/msamiati/config.toml",
    Path.home() / ".msamiati.toml",
]


def find_config_file() -> Path | None:
    for f in CONFIG_FILES:
        if f.exists():
            return f
    return None


class AppConfig(BaseSettings):
    """
    Configuration for msamiati.
    Supports loading from:
    1. Environment variables (MSAMIATI_*)
    2. Config file (~/.config/msamiati/config.toml or ~/.msamiati.toml)
    3. Manual overrides (CLI)
    """

    model_config = SettingsConfigDict(
        env_prefix="MSAMIATI_",
        extra="ignore",
    )

    # Paths
    data_dir: Path = Field(default_factory=lambda: Path.home() / ".local/share/msamiati")
    log_dir: Path = Field(default_factory=lambda: Path.home() / ".config/msamiati/logs")

    # Remote catalog
    catalog_url: str | None = None
    catalog_key: str | None = None
    catalog_table: str = CATALOG_TABLE
    request_timeout: float = Field(default=REQUEST_TIMEOUT, gt=0)

    # Study
    words_per_day: int = Field(default=DEFAULT_WORDS_PER_DAY, ge=1)
    sync_page_size: int = Field(default=DEFAULT_SYNC_PAGE_SIZE, ge=1)

    # Persistence
    save_debounce_seconds: float = Field(default=DEFAULT_SAVE_DEBOUNCE, ge=0)
    encrypt_state: bool = True

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
        # Earlier sources win: overrides > env > file > defaults
        toml_file = find_config_file()
        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (init_settings, env_settings)

    @field_validator("data_dir", "log_dir", mode="before")
    @classmethod
    def expand_path(cls, v: Any) -> Path:
        return Path(v).expanduser()

    @field_validator("catalog_url", mode="before")
    @classmethod
    def strip_catalog_url(cls, v: Any) -> str | None:
        if not v:
            return None
        return str(v).rstrip("/")

    @property
    def catalog_configured(self) -> bool:
        return self.catalog_url is not None


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/msamiati/config.toml (if exists)
    3. Environment variables (MSAMIATI_*)
    4. cli_overrides (passed from Typer)
    """
    # Typer passes None for options the user did not give
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    return AppConfig(**overrides)
