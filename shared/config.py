"""
Shared configuration management for the Spoil Me commerce layer.
"""

from decimal import Decimal
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="SPOILME_",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # External services
    redis_url: str = Field(default="redis://localhost:6379/0")

    # Ledger persistence
    ledger_backend: str = Field(default="memory", description="memory | redis")
    ledger_key_prefix: str = Field(default="spoilme")

    # Pricing
    member_price_ratio: Decimal = Field(default=Decimal("0.80"))

    # Loyalty
    purchase_spend_unit_zar: Decimal = Field(default=Decimal("10"))
    purchase_spend_unit_usd: Decimal = Field(default=Decimal("3"))
    review_points: int = Field(default=100)
    share_points: int = Field(default=50)
    social_follow_points: int = Field(default=100)
    points_per_redemption_unit: int = Field(default=1000)
    redemption_unit_zar: Decimal = Field(default=Decimal("10"))
    redemption_unit_usd: Decimal = Field(default=Decimal("5"))
    non_member_redemption_cap_points: int = Field(default=10000)
    durable_share_cooldown: bool = Field(default=False)

    # Checkout
    free_shipping_threshold_zar: Decimal = Field(default=Decimal("500"), description="ZAR subtotal for free shipping")
    free_shipping_methods: List[str] = Field(default=["pudo", "paxi"])

    # Vault ladder
    vault_new_member_cap: int = Field(default=5)
    vault_established_cap: int = Field(default=7)
    vault_established_after_months: int = Field(default=1)
    vault_unlimited_after_months: int = Field(default=3)
    vault_unlimited_cap: int = Field(default=10000)

    # Membership lapse policy
    lapse_grace_period_days: int = Field(default=7)
    lapse_reset_on_payment_failure: bool = Field(default=True)
    lapse_reset_on_cancellation: bool = Field(default=True)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port)
