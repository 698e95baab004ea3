from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TOKEN_SIGNING_SECRET = "storefront-dev-token-secret-change-me"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="SF_", extra="ignore")

    app_name: str = "Storefront Checkout"
    env: str = "dev"
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"

    database_url: str = "sqlite+pysqlite:///./storefront.db"

    # Client-local durable storage (one JSON blob per concern).
    local_cart_path: Path = Path("/tmp/storefront/rp_cart_v1.json")
    local_profile_path: Path = Path("/tmp/storefront/rp_profile.json")

    cart_sync_debounce_seconds: float = Field(default=0.8, ge=0)

    # Remote cart backend: sql | http
    remote_cart_backend: str = "sql"
    cart_api_url: str = "http://localhost:8000"
    cart_api_timeout_seconds: int = 10

    # Shipping backend: http | static
    shipping_backend: str = "http"
    shipping_api_url: str = "http://shipment-service:8080"
    shipping_timeout_seconds: int = 15
    default_parcel_weight_grams: int = 1000
    origin_postal_code: str | None = None

    # Payment backend: http | simulated
    payment_backend: str = "http"
    payment_api_url: str = "http://payment-service:8080"
    payment_timeout_seconds: int = 20
    payment_return_url: str = "http://localhost:5173/payment/success"

    auth_enabled: bool = True
    dev_user_id: str = "dev-customer-001"
    token_signing_secret: str = DEFAULT_TOKEN_SIGNING_SECRET
    token_ttl_seconds: int = 3600

    def model_post_init(self, __context) -> None:
        if self.env.lower() == "dev":
            return
        if self.token_signing_secret == DEFAULT_TOKEN_SIGNING_SECRET:
            raise ValueError(
                "insecure default secrets are not allowed outside dev mode; set env vars: SF_TOKEN_SIGNING_SECRET"
            )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
