"""Configuration management using Pydantic Settings"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = "sqlite:///./fintrack.db"

    # Service
    service_name: str = "fintrack-pipeline"
    log_level: str = "INFO"
    default_user_id: str = "default"

    # Remote enrichment (chat-completions compatible endpoint)
    enrichment_enabled: bool = False
    enrichment_api_base: str = "https://openrouter.ai/api/v1"
    enrichment_api_key: str = ""
    enrichment_model: str = "deepseek/deepseek-r1"
    enrichment_timeout_seconds: float = 30.0
    enrichment_max_concurrency: int = 4

    # Analytics thresholds
    trend_threshold: float = 0.05  # Relative month-over-month change
    anomaly_sigma: float = 2.5
    new_merchant_floor: float = 5000.0
    late_night_floor: float = 1000.0
    daily_frequency_limit: int = 5
    category_increase_threshold: float = 0.25
    empty_window_days: int = 30


settings = Settings()
