"""
Configuration settings for the resilient LLM layer.

All settings are loaded from environment variables with sensible defaults.
Use .env file for local development.
Durations are in seconds.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Application ===
    APP_NAME: str = "Resilient LLM"
    APP_VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"  # development | production

    # === Provider ===
    PROVIDER_NAME: str = "anthropic"  # Prefix of every ServiceIdentity
    ANTHROPIC_API_KEY: str = ""
    ANTHROPIC_BASE_URL: str = "https://api.anthropic.com"
    ANTHROPIC_API_VERSION: str = "2023-06-01"
    DEFAULT_MODEL: str = "claude-3-sonnet-20240229"
    MAX_TOKENS: int = 4000
    TEMPERATURE: float = 0.3
    REQUEST_TIMEOUT: float = 60.0  # per HTTP request

    # === Rate Limiting ===
    RATE_LIMIT_MAX_CONCURRENT: int = 5
    RATE_LIMIT_REQUESTS_PER_MINUTE: int = 10  # Spread evenly: 60 / rpm between starts
    RATE_LIMIT_MAX_QUEUE: int = 100  # Load-shedding high-water mark

    # === Retry ===
    RETRY_MAX_RETRIES: int = 3
    RETRY_INITIAL_DELAY: float = 1.0
    RETRY_MAX_DELAY: float = 30.0
    RETRY_BACKOFF_FACTOR: float = 2.0
    RETRY_JITTER_FACTOR: float = 0.3
    RETRY_OVERALL_TIMEOUT: float | None = 60.0

    # === Circuit Breaker ===
    CIRCUIT_FAILURE_THRESHOLD: int = 5
    CIRCUIT_PREMIUM_FAILURE_THRESHOLD: int = 8  # Premium traffic tolerates more failures
    CIRCUIT_RESET_TIMEOUT: float = 30.0
    CIRCUIT_HALF_OPEN_SUCCESS_THRESHOLD: int = 2

    # === Dynamic Timeout ===
    DYNAMIC_TIMEOUT_ENABLED: bool = False
    DYNAMIC_TIMEOUT_BASE: float = 10.0
    DYNAMIC_TIMEOUT_PER_1K_TOKENS: float = 1.0
    DYNAMIC_TIMEOUT_CAP: float = 300.0

    # === Monitoring ===
    PROMETHEUS_ENABLED: bool = True

    @property
    def rate_limit_min_interval(self) -> float:
        """Minimum spacing between operation starts, derived from requests/minute."""
        if self.RATE_LIMIT_REQUESTS_PER_MINUTE <= 0:
            return 0.0
        return 60.0 / self.RATE_LIMIT_REQUESTS_PER_MINUTE


# Global settings instance
settings = Settings()
