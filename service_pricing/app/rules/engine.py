"""
Tiered price resolution for the Pricing Service.
"""

from decimal import Decimal
from typing import Optional

from shared.config import BaseConfig
from shared.errors import InvalidInputError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from .models import (
    Currency, MembershipTier, PricingContext, PriceQuote, Product,
    ZERO, to_money, context_to_log
)
from .promotions import is_promo_active


class PriceResolver:
    """Single source of truth for the price a user pays.

    Precedence, in order:

    1. No promo, non-member: base price.
    2. No promo, member: member price (80% of base unless configured).
    3. Promo, non-member: promo price.
    4. Promo, member: the tier's promo override when configured, else the
       cheaper of member price and promo price with no tier badge.

    Option modifiers are added after resolution and the result is clamped
    at zero. Quotes are never cached; a currency switch re-resolves.
    """

    def __init__(self, config: Optional[BaseConfig] = None, metrics: Optional[MetricsCollector] = None):
        self.config = config or BaseConfig()
        self.metrics = metrics
        self.logger = get_logger("pricing.price_resolver")

    def base_price(self, product: Product, currency: Currency) -> Decimal:
        """Base price in ``currency``; USD falls back to the ZAR amount."""
        zar = product.base_price.get(Currency.ZAR)
        if zar is None:
            raise InvalidInputError(
                "Product has no ZAR base price",
                {"product_id": product.product_id}
            )
        price = product.base_price.get(currency) if currency == Currency.USD else zar
        if price is None:
            price = zar
        self._require_non_negative(product, "base_price", price)
        return Decimal(price)

    def standard_member_price(self, product: Product, currency: Currency, base_price: Decimal) -> Decimal:
        """Configured member price, defaulting to a ratio of the base price."""
        member_price = product.member_price.get(currency)
        if member_price is None:
            return base_price * self.config.member_price_ratio
        self._require_non_negative(product, "member_price", member_price)
        # Zero means "not configured"
        if Decimal(member_price) == ZERO:
            return base_price * self.config.member_price_ratio
        return Decimal(member_price)

    def compare_at_price(self, product: Product, currency: Currency) -> Optional[Decimal]:
        """RRP in ``currency``. An unset USD amount does not fall back to ZAR."""
        value = product.compare_at_price.get(currency)
        if value is None:
            return None
        self._require_non_negative(product, "compare_at_price", value)
        return Decimal(value)

    def resolve_price(self, ctx: PricingContext) -> PriceQuote:
        """Resolve the quote for one unit of ``ctx.product``."""
        if self.metrics:
            with self.metrics.time_operation("price_quote_duration_seconds"):
                quote = self._resolve(ctx)
            self.metrics.increment_counter(
                "price_quotes_total",
                applied_tier=quote.applied_tier.value,
                promo=str(quote.is_promo_active).lower()
            )
            return quote
        return self._resolve(ctx)

    def _resolve(self, ctx: PricingContext) -> PriceQuote:
        product = ctx.product
        currency = ctx.currency
        membership = ctx.membership

        base_price = self.base_price(product, currency)
        for field_name in (
            "promo_price", "promo_basic_member_price", "promo_premium_member_price", "promo_deluxe_member_price"
        ):
            value = getattr(product, field_name)
            if value is not None:
                self._require_non_negative(product, field_name, value)
        member_price = self.standard_member_price(product, currency, base_price)
        promo_active = is_promo_active(product, ctx.now)
        promo_price = Decimal(product.promo_price) if promo_active else None

        applied_tier = MembershipTier.NONE
        if not membership.is_member:
            unit_price = promo_price if promo_active else base_price
        elif not promo_active:
            unit_price = member_price
        else:
            override = self._positive(product.tier_promo_price(membership.tier))
            if override is not None:
                unit_price = override
                applied_tier = membership.tier
            else:
                unit_price = min(member_price, promo_price)

        for modifier in ctx.modifiers:
            unit_price += Decimal(modifier.delta)
        unit_price = max(ZERO, to_money(unit_price))

        compare_at = self.compare_at_price(product, currency)
        if compare_at is not None:
            compare_at = to_money(compare_at)
            if compare_at <= unit_price:
                compare_at = None

        basic_override = self._positive(product.promo_basic_member_price)
        if promo_active and basic_override is not None:
            upsell = basic_override
        else:
            upsell = member_price

        quote = PriceQuote(
            unit_price=unit_price,
            applied_tier=applied_tier,
            is_promo_active=promo_active,
            currency=currency,
            compare_at_price=compare_at,
            member_upsell_price=max(ZERO, to_money(upsell))
        )

        self.logger.debug(
            "Price resolved",
            unit_price=str(quote.unit_price),
            applied_tier=quote.applied_tier.value,
            promo_active=promo_active,
            **context_to_log(ctx)
        )
        return quote

    @staticmethod
    def _positive(value: Optional[Decimal]) -> Optional[Decimal]:
        if value is None or Decimal(value) <= ZERO:
            return None
        return Decimal(value)

    @staticmethod
    def _require_non_negative(product: Product, field_name: str, value: Decimal):
        if Decimal(value) < ZERO:
            raise InvalidInputError(
                "Prices must be non-negative",
                {"product_id": product.product_id, "field": field_name, "value": str(value)}
            )
