"""Runtime configuration for qonvo."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven runtime settings."""

    model_config = SettingsConfigDict(env_prefix="QONVO_", env_file=".env", extra="ignore")

    app_name: str = "qonvo"
    log_level: str = "INFO"
    error_logging: bool = Field(
        default=True,
        description="Master switch for logging non-silent voice errors.",
    )
    conversation_pause_ms: int = Field(
        default=1000,
        ge=0,
        description="Requested pause after each spoken response before listening again.",
    )
    conversation_min_pause_ms: int = Field(
        default=500,
        ge=0,
        description="Floor for the post-response pause so the recognizer does not hear the synthesizer.",
    )
    conversation_retry_delay_ms: int = Field(default=1000, ge=0)
    conversation_caption: bool = True
    no_speech_pause_ms: int = Field(
        default=0,
        ge=0,
        description="Delay before re-listening after a turn ended in silence.",
    )
    language: str = "en-US"
    phrase_time_limit: float = 5.0


settings = Settings()
