"""Client settings loaded from environment variables."""

from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings

DEFAULT_CHAT_ORIGIN = "https://openrouter.ai"
CHAT_COMPLETIONS_PATH = "/api/v1/chat/completions"


class Settings(BaseSettings):
    # Upstream chat API
    api_key: str = Field(
        default="",
        validation_alias=AliasChoices("CALLAI_API_KEY", "OPENROUTER_API_KEY"),
    )
    chat_url: str = Field(default="", validation_alias="CALLAI_CHAT_URL")  # origin only, path is appended
    referer: str = Field(default="https://vibes.diy", validation_alias="CALLAI_REFERER")
    title: str = Field(default="Vibes", validation_alias="CALLAI_TITLE")
    request_timeout: float = Field(default=60.0, validation_alias="CALLAI_REQUEST_TIMEOUT")

    # Key refresh service
    refresh_endpoint: str = Field(
        default="https://vibecode.garden",
        validation_alias=AliasChoices("CALLAI_REFRESH_ENDPOINT", "CALLAI_REKEY_ENDPOINT"),
    )
    refresh_token: str = Field(
        default="use-vibes",
        validation_alias=AliasChoices(
            "CALL_AI_REFRESH_TOKEN", "CALL_AI_KEY_TOKEN", "CALLAI_REFRESH_TOKEN"
        ),
    )
    refresh_min_interval: float = Field(default=2.0, validation_alias="CALLAI_REFRESH_MIN_INTERVAL")
    refresh_poll_interval: float = Field(default=0.1, validation_alias="CALLAI_REFRESH_POLL_INTERVAL")

    # Model fallback
    fallback_model: str = Field(default="openrouter/auto", validation_alias="CALLAI_FALLBACK_MODEL")
    # Comma-separated phrases added to the built-in invalid-model patterns
    invalid_model_patterns: str = Field(default="", validation_alias="CALLAI_INVALID_MODEL_PATTERNS")

    # Logging
    debug: bool = Field(default=False, validation_alias="CALLAI_DEBUG")
    log_level: str = Field(default="WARNING", validation_alias="CALLAI_LOG_LEVEL")
    log_file: str = Field(default="", validation_alias="CALLAI_LOG_FILE")  # Empty = stdout only

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "populate_by_name": True,
        "extra": "ignore",
    }

    @property
    def chat_endpoint(self) -> str:
        """Full chat completions URL for the configured origin."""
        origin = (self.chat_url or DEFAULT_CHAT_ORIGIN).rstrip("/")
        return f"{origin}{CHAT_COMPLETIONS_PATH}"

    @property
    def extra_invalid_model_patterns(self) -> list[str]:
        """Parse comma-separated patterns, dropping blanks."""
        return [p.strip().lower() for p in self.invalid_model_patterns.split(",") if p.strip()]

    @property
    def effective_log_level(self) -> str:
        return "DEBUG" if self.debug else self.log_level.upper()

    @property
    def logging_requested(self) -> bool:
        """Handlers are only attached when the caller opted in."""
        return self.debug or bool(self.log_file)


@lru_cache
def get_settings() -> Settings:
    return Settings()
