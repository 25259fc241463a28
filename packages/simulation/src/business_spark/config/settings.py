"""Configuration settings for the Business Spark simulation."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class FlatSettings(BaseSettings):
    """Flat settings loaded from environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # LLM API keys (only the selected provider needs one)
    google_api_key: SecretStr = Field(
        default=SecretStr(""), validation_alias="GOOGLE_API_KEY"
    )
    anthropic_api_key: SecretStr = Field(
        default=SecretStr(""), validation_alias="ANTHROPIC_API_KEY"
    )

    # Provider and model selections (defaults to cheapest capable models)
    llm_provider: Literal["gemini", "claude", "ollama"] = Field(
        default="gemini", validation_alias="LLM_PROVIDER"
    )
    gemini_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL")
    claude_model: str = Field(
        default="claude-haiku-4-5", validation_alias="CLAUDE_MODEL"
    )
    ollama_base_url: str = Field(
        default="http://localhost:11434", validation_alias="OLLAMA_BASE_URL"
    )
    ollama_model: str = Field(default="qwen3:30b", validation_alias="OLLAMA_MODEL")

    # LLM parameters
    llm_max_tokens: int = Field(default=4096, validation_alias="LLM_MAX_TOKENS")
    llm_temperature: float = Field(default=0.7, validation_alias="LLM_TEMPERATURE")

    # Turn processing
    turn_timeout_seconds: float = Field(
        default=60.0, validation_alias="TURN_TIMEOUT_SECONDS"
    )
    state_file: Path = Field(
        default=Path("business_spark_state.json"), validation_alias="STATE_FILE"
    )

    # WebSocket
    ws_host: str = Field(default="127.0.0.1", validation_alias="WS_HOST")
    ws_port: int = Field(default=8765, validation_alias="WS_PORT")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )


@lru_cache
def get_settings() -> FlatSettings:
    """Get cached settings instance."""
    return FlatSettings()
