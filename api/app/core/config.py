from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "app-store-api"
    environment: str = "dev"
    catalog_backend: Literal["postgres", "memory"] = "postgres"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    # Enabled only on the replica that owns the canonical catalog.
    populated_genres_refresh_enabled: bool = False
    populated_genres_refresh_seconds: float = 10.0
    supabase_url: str | None = None
    supabase_anon_key: str | None = None
    auth_timeout_seconds: float = 5.0
    image_bucket: str = "app-store-images"
    gcs_access_id: str | None = None
    image_upload_acl: str = "public-read"
    otel_enabled: bool = True
    otel_service_name: str = "app-store-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="APPSTORE_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
