"""Configuration (settings and environment).

The only place that reads the process environment. Codecs, the query
compiler and the REST client take explicit arguments; ``client.py`` turns
these settings into a configured client.
"""

from functools import lru_cache

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment and .env.

    Credentials are required unless FIRESTORE_EMULATOR_HOST points at a
    local emulator, which accepts unauthenticated requests.
    """

    debug: bool = False

    # Firestore
    project_id: str = ""
    # Host:port of a local emulator (env FIRESTORE_EMULATOR_HOST); plain HTTP, no auth.
    firestore_emulator_host: str | None = None
    request_timeout_seconds: float = 30.0

    # Service account: use key (env) or path (file).
    firebase_service_account_key: SecretStr | None = None
    firebase_service_account_path: str | None = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_credentials(self) -> "Settings":
        """Require service account credentials unless an emulator host is set."""
        if self.request_timeout_seconds <= 0:
            raise ValueError("REQUEST_TIMEOUT_SECONDS must be positive")
        if self.firestore_emulator_host:
            if not self.project_id:
                raise ValueError(
                    "PROJECT_ID is required when FIRESTORE_EMULATOR_HOST is set "
                    "(any id works against the emulator)."
                )
            return self
        has_key = (
            self.firebase_service_account_key
            and self.firebase_service_account_key.get_secret_value()
        )
        if not has_key and not self.firebase_service_account_path:
            raise ValueError(
                "Set FIREBASE_SERVICE_ACCOUNT_KEY (full JSON string) or "
                "FIREBASE_SERVICE_ACCOUNT_PATH (path to JSON file), "
                "or FIRESTORE_EMULATOR_HOST for a local emulator."
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """Return cached settings. Call get_settings.cache_clear() after changing env."""
    return Settings()
