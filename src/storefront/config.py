"""Process-level settings read from the environment.

Protean infrastructure (databases, brokers, event store) is configured in
``domain.toml``; this module only covers what lives outside the domain: the
inventory ledger database, payment gateway credentials and logging.
"""

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Runtime
    environment: str = Field(
        default="development",
        validation_alias=AliasChoices("environment", "PROTEAN_ENV"),
        description="Config overlay name, shared with Protean (development/test/production)",
    )
    log_level: str | None = Field(default=None, description="Overrides the per-environment log level")

    # Inventory ledger
    inventory_database_uri: str = Field(
        default="sqlite:///storefront_inventory.db",
        description="SQLAlchemy URL of the stock ledger database",
    )

    # Stripe
    stripe_secret_key: str = Field(default="", description="Stripe secret API key (sk_test_... or sk_live_...)")
    stripe_webhook_secret: str = Field(default="", description="Stripe webhook signing secret")

    # SSLCommerz
    sslcommerz_store_id: str = Field(default="", description="SSLCommerz store id")
    sslcommerz_store_password: str = Field(default="", description="SSLCommerz store password")
    sslcommerz_is_live: bool = Field(default=False, description="Use the live SSLCommerz endpoint")

    # Gateways
    frontend_url: str = Field(default="http://localhost:5173", description="Base URL for gateway redirects")
    gateway_timeout: float = Field(
        default=10.0,
        gt=0,
        validation_alias=AliasChoices("gateway_timeout", "GATEWAY_TIMEOUT_SECONDS"),
        description="Per-request timeout for gateway HTTP calls (seconds)",
    )
    use_fake_gateway: bool = Field(default=False, description="Route every provider to the fake gateway")

    model_config = SettingsConfigDict(
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str | None) -> str | None:
        if v is None:
            return v
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"
