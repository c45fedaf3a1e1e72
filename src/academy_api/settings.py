"""
academy_api.settings

Central configuration model (Pydantic Settings).

Responsibilities:
- Provide strongly-typed, env-driven settings for every layer (API, services, clients).
- Hide secrets from repr/logging (JWT secret, app key, LiveKit/marketplace/media secrets).
- Offer a cached settings instance for dependency injection.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="ACADEMY_", case_sensitive=False)

    # Environment controls toggle behavior like auto-init DB tables and the dev token route.
    env: Literal["dev", "test", "prod"] = "dev"
    service_name: str = "academy-api"
    log_level: str = "INFO"
    # False switches to the coloured console renderer.
    log_json: bool = True

    api_host: str = "0.0.0.0"
    api_port: int = 8080
    # Proxies trusted to set X-Forwarded-For (visit tracking reads the client IP from it).
    forwarded_allow_ips: str = "127.0.0.1"

    # Auth
    jwt_alg: str = "HS256"
    jwt_issuer: str = "academy-api"
    jwt_audience: str = "academy-clients"
    jwt_secret: str = Field(default="dev-secret-change-me", repr=False)

    # Used to hash visitor IPs; never store raw addresses.
    app_key: str = Field(default="dev-app-key", repr=False)

    # Persistence
    database_url: str = "sqlite+aiosqlite:///./academy.db"
    database_echo: bool = False
    database_pool_size: int = 5

    # LiveKit
    livekit_api_key: str = "devkey"
    livekit_api_secret: str = Field(default="devsecret", repr=False)
    livekit_server_url: str = "ws://localhost:7880"
    livekit_token_ttl_seconds: int = 21600
    live_join_window_minutes: int = 15

    # IP geolocation (visit tracking)
    ipgeolocation_api_key: str | None = Field(default=None, repr=False)
    ipgeolocation_url: str = "https://api.ipgeolocation.io/v2/ipgeo"
    ipgeolocation_timeout_seconds: float = 5.0

    # Marketplace seller panel
    marketplace_api_url: str = "http://localhost:8003"
    marketplace_internal_secret: str = Field(default="", repr=False)
    marketplace_timeout_seconds: float = 10.0

    # External certificate rendering service
    certificate_service_url: str = "http://localhost:8004"
    certificate_service_email: str = "service@academy.local"
    certificate_service_password: str = Field(default="", repr=False)
    certificate_service_timeout_seconds: float = 30.0

    # Media streaming for digital products
    media_url: str = "http://localhost:8005"
    media_stream_secret: str = Field(default="dev-stream-secret", repr=False)
    media_stream_ttl_minutes: int = 60

    # Chat archival / search
    archive_storage_root: str = "./storage"
    archival_batch_size: int = 1000
    archival_threshold_days: int = 90
    search_index_lock_ttl_seconds: int = 3600


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    # Cache avoids re-parsing env vars for each request dependency.
    return Settings()


# --- Module Notes -----------------------------------------------------------
# Every external integration reads its URL, timeout and secret from here so that
# per-environment deployment only changes env vars.
