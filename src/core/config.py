"""Application configuration using Pydantic Settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "tldreply"
    debug: bool = False
    log_level: str = "INFO"

    # Telegram Bot API
    telegram_bot_token: str = ""
    telegram_api_base_url: str = "https://api.telegram.org"
    telegram_webhook_secret: str = ""

    # LLM Configuration
    llm_provider: str = "gemini"  # Options: "gemini", "openai"

    # Gemini Configuration (used when a group has no key of its own)
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.0-flash-001"

    # OpenAI Configuration
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"

    # TLDR command
    tldr_cooldown_seconds: int = 60
    key_update_timeout_minutes: int = 30
    tldr_batch_size: int = 1000
    llm_max_attempts: int = 3
    llm_backoff_base_seconds: float = 1.0

    # Message cache
    message_retention_hours: int = 48
    message_cleanup_interval_minutes: int = 60
    state_sweep_interval_minutes: int = 5
    timezone: str = "UTC"

    @property
    def telegram_api_url(self) -> str:
        """Base URL for Bot API method calls."""
        return f"{self.telegram_api_base_url.rstrip('/')}/bot{self.telegram_bot_token}"

    @property
    def default_api_key(self) -> str:
        """Globally configured key for the active LLM provider."""
        if self.llm_provider.lower() == "openai":
            return self.openai_api_key
        return self.gemini_api_key


settings = Settings()
