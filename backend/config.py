"""Application configuration using pydantic-settings."""

from typing import Any

from pydantic import field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from services.keychain import CREDENTIAL_KEYS, get_credential

# Questrade refuses activity queries spanning more than 31 days.
MAX_WINDOW_DAYS = 31


class KeychainSettingsSource(PydanticBaseSettingsSource):
    """Load credential fields from the system keychain via ``keyring``.

    Only fields whose uppercase name appears in
    :data:`~services.keychain.CREDENTIAL_KEYS` are looked up.
    All other fields return ``None`` so the next source in the chain
    handles them.
    """

    def get_field_value(
        self, field: FieldInfo, field_name: str
    ) -> tuple[Any, str, bool]:
        env_name = field_name.upper()
        if env_name not in CREDENTIAL_KEYS:
            return None, field_name, False
        value = get_credential(env_name)
        return value, field_name, False

    def __call__(self) -> dict[str, Any]:
        d: dict[str, Any] = {}
        for field_name, field_info in self.settings_cls.model_fields.items():
            value, key, is_complex = self.get_field_value(field_info, field_name)
            if value is not None:
                d[key] = value
        return d


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            KeychainSettingsSource(settings_cls),
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )

    # Database
    DATABASE_URL: str = "sqlite:///./questrade.db"

    # Questrade credentials. The seed refresh token is only used when no
    # token has been stored yet; every exchange invalidates the previous one.
    QUESTRADE_REFRESH_TOKEN: str = ""
    QUESTRADE_LOGIN_URL: str = "https://login.questrade.com"
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # Token lifecycle
    TOKEN_EXPIRY_MARGIN_SECONDS: int = 60
    ALWAYS_ROTATE_TOKEN: bool = False

    # Activity sync
    SYNC_WINDOW_DAYS: int = 30
    SYNC_HORIZON_DAYS: int = 900

    @field_validator("QUESTRADE_REFRESH_TOKEN", mode="before")
    @classmethod
    def strip_refresh_token(cls, v: str) -> str:
        """Strip whitespace picked up when the token is pasted from a browser."""
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("QUESTRADE_LOGIN_URL")
    @classmethod
    def normalize_login_url(cls, v: str) -> str:
        """Drop the trailing slash so endpoint paths can be appended."""
        return v.rstrip("/")

    @field_validator("SYNC_WINDOW_DAYS")
    @classmethod
    def validate_window_days(cls, v: int) -> int:
        """Keep windows inside the provider's maximum queryable span."""
        if not 1 <= v <= MAX_WINDOW_DAYS:
            raise ValueError(
                f"SYNC_WINDOW_DAYS must be between 1 and {MAX_WINDOW_DAYS}, got {v}"
            )
        return v

    @field_validator("SYNC_HORIZON_DAYS", "TOKEN_EXPIRY_MARGIN_SECONDS")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"value must be non-negative, got {v}")
        return v

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize LOG_LEVEL to an uppercase Python logging level."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"LOG_LEVEL must be one of {valid}, got {v!r}")
        return v.upper()

    # App settings
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"


settings = Settings()
