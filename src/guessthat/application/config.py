from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from guessthat.domain.constants import (
    DEFAULT_API_BASE,
    DEFAULT_CATEGORY,
    DEFAULT_DIFFICULTY,
    DEFAULT_LANGUAGE,
    REQUEST_TIMEOUT,
    RESERVE,
    THRESHOLD,
    TOPUP_SIZE,
    TRASH_TTL,
)
from guessthat.domain.models import Bucket, Difficulty

CONFIG_DIR = Path.home() / ".config/guessthat"


class AppConfig(BaseSettings):
    """
    Configuration model for guessthat.
    Supports loading from:
    1. Environment variables (GUESSTHAT_*)
    2. Config file (~/.config/guessthat/config.toml)
    3. Manual overrides (CLI)
    """

    model_config = SettingsConfigDict(
        env_prefix="GUESSTHAT_",
        extra="ignore",
    )

    # Storage
    db_path: Path = Field(default_factory=lambda: CONFIG_DIR / "cards.db")

    # Remote card service
    api_base: str = DEFAULT_API_BASE
    request_timeout: float = REQUEST_TIMEOUT
    offline: bool = False

    # Default bucket
    language: str = DEFAULT_LANGUAGE
    category: str = DEFAULT_CATEGORY
    difficulty: Difficulty = DEFAULT_DIFFICULTY

    # Replenishment and trash tunables
    threshold: int = Field(default=THRESHOLD, ge=0)
    topup_size: int = Field(default=TOPUP_SIZE, ge=1)
    reserve: int = Field(default=RESERVE, ge=0)
    trash_ttl: int = Field(default=TRASH_TTL, ge=0)

    # 0 = warnings only, 1 = info, 2+ = debug
    verbose: int = Field(default=1, ge=0)

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

        toml_file = CONFIG_DIR / "config.toml"
        if toml_file.exists():
            # init (CLI) beats env beats file
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (init_settings, env_settings)

    @field_validator("db_path", mode="before")
    @classmethod
    def expand_path(cls, v: Any) -> Path:
        return Path(v).expanduser().resolve()

    @field_validator("difficulty", mode="before")
    @classmethod
    def lower_difficulty(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @property
    def bucket(self) -> Bucket:
        return Bucket(self.language, self.category, self.difficulty)


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/guessthat/config.toml (if exists)
    3. Environment variables (GUESSTHAT_*)
    4. cli_overrides (passed from Typer); None values are ignored
    """
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    return AppConfig(**overrides)
