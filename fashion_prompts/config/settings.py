"""
Configuration settings for the Fashion Prompt Studio service.
"""
from pydantic_settings import BaseSettings
from pydantic import Field
from functools import lru_cache
from pathlib import Path


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Vision LLM Configuration
    llm_provider: str = Field(default="groq", alias="LLM_PROVIDER")
    groq_api_key: str = Field(default="", alias="GROQ_API_KEY")
    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    vision_model: str = Field(default="meta-llama/llama-4-maverick-17b-128e-instruct", alias="VISION_MODEL")
    vision_fallback_model: str = Field(default="meta-llama/llama-4-scout-17b-16e-instruct", alias="VISION_FALLBACK_MODEL")
    llm_temperature: float = Field(default=0.7, alias="LLM_TEMPERATURE")
    llm_max_tokens: int = Field(default=2000, alias="LLM_MAX_TOKENS")
    llm_timeout_seconds: float = Field(default=120.0, alias="LLM_TIMEOUT_SECONDS")
    name_translation_language: str = Field(default="Korean", alias="NAME_TRANSLATION_LANGUAGE")

    # Discord / Midjourney relay
    discord_api_base: str = Field(default="https://discord.com/api/v10", alias="DISCORD_API_BASE")
    discord_server_id: str = Field(default="", alias="DISCORD_SERVER_ID")
    discord_channel_id: str = Field(default="", alias="DISCORD_CHANNEL_ID")
    midjourney_application_id: str = Field(default="936929561302675456", alias="MIDJOURNEY_APPLICATION_ID")
    relay_connect_timeout_seconds: float = Field(default=30.0, alias="RELAY_CONNECT_TIMEOUT_SECONDS")
    relay_prompt_timeout_seconds: float = Field(default=240.0, alias="RELAY_PROMPT_TIMEOUT_SECONDS")
    relay_prompt_delay_seconds: float = Field(default=1.0, alias="RELAY_PROMPT_DELAY_SECONDS")
    relay_poll_interval_seconds: float = Field(default=5.0, alias="RELAY_POLL_INTERVAL_SECONDS")
    fast_mode_suffix: str = Field(default="--fast", alias="FAST_MODE_SUFFIX")

    # Batch Configuration
    max_batch_items: int = Field(default=30, alias="MAX_BATCH_ITEMS")
    batch_item_delay_seconds: float = Field(default=0.5, alias="BATCH_ITEM_DELAY_SECONDS")

    # Progress stream
    progress_ping_interval_seconds: float = Field(default=30.0, alias="PROGRESS_PING_INTERVAL_SECONDS")
    progress_close_grace_seconds: float = Field(default=1.0, alias="PROGRESS_CLOSE_GRACE_SECONDS")

    # Logging Configuration
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_dir: Path = Field(default=Path("./logs"), alias="LOG_DIR")
    log_json: bool = Field(default=True, alias="LOG_JSON")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        populate_by_name = True

    @property
    def llm_api_key(self) -> str:
        """API key of the configured vision provider."""
        if self.llm_provider == "openai":
            return self.openai_api_key
        return self.groq_api_key

    def ensure_directories(self) -> None:
        """Create necessary directories if they don't exist."""
        self.log_dir.mkdir(parents=True, exist_ok=True)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()
    settings.ensure_directories()
    return settings
