"""
Application configuration via pydantic-settings.
All config read from environment variables with sensible defaults for local dev.
"""

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    # App
    app_name: str = "skycast-api"
    app_version: str = "0.1.0"
    environment: str = Field(default="development", pattern=r"^(development|staging|production)$")
    debug: bool = False

    # Database — empty string keeps city records in process memory
    database_url: str = ""

    # Cache
    cache_backend: str = Field(default="memory", pattern=r"^(memory|redis)$")
    redis_url: str = Field(default="redis://localhost:6379/0")

    # CORS
    cors_origins: list[str] = Field(default=["http://localhost:3000"])

    # Sentry
    sentry_dsn: str = ""
    sentry_traces_sample_rate: float = Field(default=0.1, ge=0.0, le=1.0)

    # Weather (OpenWeatherMap)
    # Free tier is rate-limited; cached entries absorb repeat lookups.
    openweathermap_api_key: str = ""
    openweathermap_base_url: str = "https://api.openweathermap.org/data/2.5"
    weather_api_timeout_s: float = Field(default=10.0, gt=0)
    weather_max_retries: int = Field(default=2, ge=0)
    weather_retry_base_delay_s: float = Field(default=1.0, ge=0)
    weather_current_ttl_s: int = Field(default=300, gt=0)
    weather_forecast_ttl_s: int = Field(default=900, gt=0)
    weather_default_units: str = "metric"

    # Ceiling for a combined current + forecast lookup
    city_lookup_timeout_s: float = Field(default=25.0, gt=0)

    # City suggestions
    suggest_min_query_length: int = 2
    suggest_default_limit: int = Field(default=10, ge=1, le=100)

    model_config = {"env_prefix": "", "env_file": ".env", "extra": "ignore"}


settings = Settings()
