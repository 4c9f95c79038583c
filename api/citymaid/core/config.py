from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "citymaid-api"
    environment: str = "dev"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    supabase_url: str | None = None
    supabase_anon_key: str | None = None
    supabase_service_role_key: str | None = None
    auth_timeout_seconds: float = 5.0
    storage_timeout_seconds: float = 15.0
    storage_receipts_bucket: str = "payment-receipts"
    storage_photos_bucket: str = "post-photos"
    storage_public_base_url: str | None = None
    upload_max_bytes: int = 5 * 1024 * 1024
    contact_unlock_price: int = 399
    homepage_feature_price: int = 299
    public_posts_default_limit: int = 12
    public_posts_max_limit: int = 50
    otel_enabled: bool = True
    otel_service_name: str = "citymaid-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="CM_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
