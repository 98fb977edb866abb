"""
Unit tests for the price resolver.
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_pricing.app.rules.engine import PriceResolver
from service_pricing.app.rules.models import (
    Currency, MembershipState, MembershipTier, OptionModifier, PricingContext, Product
)
from shared.config import BaseConfig
from shared.errors import InvalidInputError
from shared.metrics import get_metrics_collector


NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def member(tier=MembershipTier.DELUXE, months=0):
    return MembershipState(user_id="user-1", is_member=True, tier=tier, membership_months=months)


def guest():
    return MembershipState(user_id="user-1")


class TestPriceResolver:
    """Test cases for PriceResolver."""

    @pytest.fixture
    def resolver(self):
        """Create PriceResolver instance."""
        return PriceResolver(BaseConfig())

    @pytest.fixture
    def plain_product(self):
        """Product without a promotion."""
        return Product(product_id="ring-1", base_price={Currency.ZAR: Decimal("1000")})

    @pytest.fixture
    def promo_product(self):
        """Product with an active promotion and a deluxe override."""
        return Product(
            product_id="ring-2",
            base_price={Currency.ZAR: Decimal("1000")},
            promo_price=Decimal("700"),
            promo_starts_at="2026-10-01T00:00:00Z",
            promo_expires_at="2026-11-01T00:00:00Z",
            promo_deluxe_member_price=Decimal("600")
        )

    def quote(self, resolver, product, membership, currency=Currency.ZAR, modifiers=None):
        return resolver.resolve_price(PricingContext(
            product=product,
            currency=currency,
            now=NOW,
            membership=membership,
            modifiers=modifiers or []
        ))

    def test_default_member_price(self, resolver, plain_product):
        """Test members pay 80% of base without a configured member price."""
        quote = self.quote(resolver, plain_product, member())

        assert quote.unit_price == Decimal("800.00")
        assert quote.applied_tier == MembershipTier.NONE
        assert quote.is_promo_active is False

    def test_tier_promo_override(self, resolver, promo_product):
        """Test the deluxe promo override wins for a deluxe member."""
        quote = self.quote(resolver, promo_product, member())

        assert quote.unit_price == Decimal("600.00")
        assert quote.applied_tier == MembershipTier.DELUXE
        assert quote.is_promo_active is True

    def test_non_member_promo(self, resolver, promo_product):
        """Test non-members pay the promo price."""
        quote = self.quote(resolver, promo_product, guest())

        assert quote.unit_price == Decimal("700.00")
        assert quote.applied_tier == MembershipTier.NONE
        assert quote.is_promo_active is True

    def test_non_member_base_price(self, resolver, plain_product):
        """Test non-members without a promo pay base."""
        quote = self.quote(resolver, plain_product, guest())
        assert quote.unit_price == Decimal("1000.00")

    def test_member_without_tier_override(self, resolver, promo_product):
        """Test members fall back to the cheaper of member and promo price."""
        quote = self.quote(resolver, promo_product, member(MembershipTier.BASIC))

        assert quote.unit_price == Decimal("700.00")
        assert quote.applied_tier == MembershipTier.NONE

    def test_member_price_cheaper_than_promo(self, resolver):
        """Test a member price below the promo price is kept."""
        product = Product(
            product_id="ring-3",
            base_price={Currency.ZAR: Decimal("1000")},
            promo_price=Decimal("900")
        )
        quote = self.quote(resolver, product, member(MembershipTier.PREMIUM))

        assert quote.unit_price == Decimal("800.00")
        assert quote.applied_tier == MembershipTier.NONE

    def test_zero_tier_override_is_ignored(self, resolver, promo_product):
        """Test a zero override counts as unset."""
        promo_product.promo_deluxe_member_price = Decimal("0")
        quote = self.quote(resolver, promo_product, member())

        assert quote.unit_price == Decimal("700.00")
        assert quote.applied_tier == MembershipTier.NONE

    def test_configured_member_price(self, resolver):
        """Test a configured member price replaces the ratio."""
        product = Product(
            product_id="ring-4",
            base_price={Currency.ZAR: Decimal("1000")},
            member_price={Currency.ZAR: Decimal("850")}
        )
        assert self.quote(resolver, product, member()).unit_price == Decimal("850.00")

    def test_custom_member_ratio(self, plain_product):
        """Test the member ratio comes from config."""
        resolver = PriceResolver(BaseConfig(member_price_ratio=Decimal("0.90")))
        assert self.quote(resolver, plain_product, member()).unit_price == Decimal("900.00")

    def test_member_never_pays_more_than_member_price(self, resolver):
        """Test member quotes never exceed the standard member price."""
        for promo in (Decimal("500"), Decimal("799.99"), Decimal("800"), Decimal("950")):
            product = Product(
                product_id="ring-5",
                base_price={Currency.ZAR: Decimal("1000")},
                promo_price=promo
            )
            for tier in (MembershipTier.BASIC, MembershipTier.PREMIUM, MembershipTier.DELUXE):
                assert self.quote(resolver, product, member(tier)).unit_price <= Decimal("800.00")

    def test_resolution_is_idempotent(self, resolver, promo_product):
        """Test identical inputs give identical quotes."""
        first = self.quote(resolver, promo_product, member())
        second = self.quote(resolver, promo_product, member())
        assert first == second

    def test_usd_price(self, resolver):
        """Test USD pricing uses the USD base price."""
        product = Product(
            product_id="ring-6",
            base_price={Currency.ZAR: Decimal("1000"), Currency.USD: Decimal("60")}
        )
        quote = self.quote(resolver, product, guest(), Currency.USD)

        assert quote.unit_price == Decimal("60.00")
        assert quote.currency == Currency.USD

    def test_usd_falls_back_to_zar_amount(self, resolver, plain_product):
        """Test a missing USD base price falls back to the ZAR amount."""
        quote = self.quote(resolver, plain_product, guest(), Currency.USD)
        assert quote.unit_price == Decimal("1000.00")

    def test_compare_at_shown_when_higher(self, resolver):
        """Test compare-at price is shown above the paid price."""
        product = Product(
            product_id="ring-7",
            base_price={Currency.ZAR: Decimal("1000")},
            compare_at_price={Currency.ZAR: Decimal("1500")}
        )
        quote = self.quote(resolver, product, guest())
        assert quote.compare_at_price == Decimal("1500.00")

    def test_compare_at_hidden_when_not_higher(self, resolver):
        """Test compare-at price at or below the paid price is hidden."""
        product = Product(
            product_id="ring-8",
            base_price={Currency.ZAR: Decimal("1000")},
            compare_at_price={Currency.ZAR: Decimal("1000")}
        )
        assert self.quote(resolver, product, guest()).compare_at_price is None

    def test_compare_at_has_no_usd_fallback(self, resolver):
        """Test compare-at price does not fall back to ZAR."""
        product = Product(
            product_id="ring-9",
            base_price={Currency.ZAR: Decimal("1000")},
            compare_at_price={Currency.ZAR: Decimal("1500")}
        )
        assert self.quote(resolver, product, guest(), Currency.USD).compare_at_price is None

    def test_modifiers_are_added(self, resolver, plain_product):
        """Test option deltas are added after resolution."""
        quote = self.quote(
            resolver, plain_product, member(),
            modifiers=[OptionModifier(name="18k gold", delta=Decimal("250"))]
        )
        assert quote.unit_price == Decimal("1050.00")

    def test_negative_modifier_clamps_at_zero(self, resolver, plain_product):
        """Test resolved price never goes negative."""
        quote = self.quote(
            resolver, plain_product, guest(),
            modifiers=[OptionModifier(name="discount", delta=Decimal("-5000"))]
        )
        assert quote.unit_price == Decimal("0.00")

    def test_member_upsell_price(self, resolver, plain_product, promo_product):
        """Test the upsell price shown to non-members."""
        assert self.quote(resolver, plain_product, guest()).member_upsell_price == Decimal("800.00")

        promo_product.promo_basic_member_price = Decimal("650")
        assert self.quote(resolver, promo_product, guest()).member_upsell_price == Decimal("650.00")

    def test_missing_base_price(self, resolver):
        """Test a product without a ZAR base price is rejected."""
        product = Product(product_id="ring-10", base_price={})
        with pytest.raises(InvalidInputError):
            self.quote(resolver, product, guest())

    def test_negative_base_price(self, resolver):
        """Test negative prices are rejected."""
        product = Product(product_id="ring-11", base_price={Currency.ZAR: Decimal("-1")})
        with pytest.raises(InvalidInputError) as exc_info:
            self.quote(resolver, product, guest())
        assert exc_info.value.code == "INVALID_INPUT"

    def test_metrics_recorded(self, promo_product):
        """Test quotes are counted per applied tier."""
        metrics = get_metrics_collector("pricing")
        resolver = PriceResolver(BaseConfig(), metrics)

        self.quote(resolver, promo_product, member())

        value = metrics.registry.get_sample_value(
            "price_quotes_total", {"applied_tier": "deluxe", "promo": "true"}
        )
        assert value == 1.0

    def test_negative_member_price_rejected(self, resolver):
        """Test a negative member price is rejected, not replaced by the default."""
        product = Product(
            product_id="ring-12",
            base_price={Currency.ZAR: Decimal("1000")},
            member_price={Currency.ZAR: Decimal("-50")}
        )
        with pytest.raises(InvalidInputError) as exc_info:
            self.quote(resolver, product, member(MembershipTier.BASIC))
        assert exc_info.value.details["field"] == "member_price"

    def test_zero_member_price_is_unset(self, resolver):
        """Test a zero member price falls back to the ratio."""
        product = Product(
            product_id="ring-13",
            base_price={Currency.ZAR: Decimal("1000")},
            member_price={Currency.ZAR: Decimal("0")}
        )
        assert self.quote(resolver, product, member()).unit_price == Decimal("800.00")

    def test_negative_compare_at_rejected(self, resolver):
        """Test a negative compare-at price is rejected."""
        product = Product(
            product_id="ring-14",
            base_price={Currency.ZAR: Decimal("1000")},
            compare_at_price={Currency.ZAR: Decimal("-1")}
        )
        with pytest.raises(InvalidInputError):
            self.quote(resolver, product, guest())

    def test_negative_tier_override_rejected(self, resolver, promo_product):
        """Test a negative tier promo override is rejected."""
        promo_product.promo_deluxe_member_price = Decimal("-600")
        with pytest.raises(InvalidInputError):
            self.quote(resolver, promo_product, member())
