from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Award provider
    award_api_base_url: str = "http://localhost:8000"
    award_api_path: str = "/api/v2/flights/ita-matrix"
    award_api_timeout_seconds: float = 60.0
    award_default_currency: str = "USD"
    award_sales_city: str = "NYC"
    award_page_size: int = 50

    # Enrichment scheduler
    enrichment_batch_size: int = 2
    enrichment_batch_delay_seconds: float = 0.5  # between batches

    # Request cache
    request_cache_backend: str = "memory"  # "memory" or "redis"
    request_cache_ttl_seconds: int = 30 * 60
    search_cache_ttl_seconds: int = 60 * 60
    redis_url: str = "redis://localhost:6379/0"

    # Mileage valuation
    mileage_per_cent_value: float = 0.015  # 1.5 cents per mile
    strikethrough_threshold: float = 0.90  # itinerary card
    savings_badge_threshold: float = 0.85  # individual offer
    time_window_minutes: int = 300

    # CORS
    cors_origins: str = "http://localhost:5173"

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",")]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
