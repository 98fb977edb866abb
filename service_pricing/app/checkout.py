"""
Cart pricing and the amount handed to payment initiation.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_FLOOR
from enum import Enum
from typing import List, Optional, Tuple

from shared.config import BaseConfig
from shared.errors import InvalidInputError
from shared.logging import get_logger
from .rules.engine import PriceResolver
from .rules.models import (
    Currency, MembershipState, MembershipTier, OptionModifier, PricingContext, Product, ZERO, to_money
)
from .rules.promotions import parse_promo_bound
from .ledger.loyalty import LoyaltyLedger


class ShippingMethod(str, Enum):
    PUDO = "pudo"
    PAXI = "paxi"
    DOOR = "door"
    INTERNATIONAL = "international"


class VoucherType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


@dataclass
class CartLine:
    product: Product
    quantity: int
    variant_key: Optional[str] = None
    modifiers: List[OptionModifier] = field(default_factory=list)


@dataclass(frozen=True)
class ShippingSelection:
    """Courier option picked at checkout and its quoted cost."""
    method: ShippingMethod
    cost: Decimal = ZERO


@dataclass(frozen=True)
class Voucher:
    code: str
    discount_type: VoucherType
    value: Decimal
    min_spend: Optional[Decimal] = None
    expires_at: Optional[str] = None


@dataclass(frozen=True)
class PricedLine:
    product_id: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    applied_tier: MembershipTier
    is_promo_active: bool
    variant_key: Optional[str] = None


@dataclass(frozen=True)
class CartQuote:
    currency: Currency
    lines: Tuple[PricedLine, ...]
    subtotal: Decimal


@dataclass(frozen=True)
class PaymentInitiation:
    """What the payment form generators receive.

    ``amount = subtotal + shipping_cost - voucher_discount - discount_amount``,
    never below zero.
    """
    amount: Decimal
    currency: Currency
    subtotal: Decimal
    points_redeemed: int = 0
    discount_amount: Decimal = ZERO
    shipping_method: Optional[ShippingMethod] = None
    shipping_cost: Decimal = ZERO
    voucher_code: Optional[str] = None
    voucher_discount: Decimal = ZERO


class CheckoutCalculator:
    """Prices a cart through the resolver and applies shipping, vouchers and points."""

    def __init__(self, resolver: PriceResolver, loyalty: LoyaltyLedger, config: Optional[BaseConfig] = None):
        self.resolver = resolver
        self.loyalty = loyalty
        self.config = config or loyalty.config
        self.logger = get_logger("pricing.checkout")

    def quote_cart(
        self,
        lines: List[CartLine],
        currency: Currency,
        now: datetime,
        membership: MembershipState
    ) -> CartQuote:
        priced = []
        subtotal = ZERO
        for line in lines:
            if line.quantity < 1:
                raise InvalidInputError(
                    "Cart quantities must be at least 1",
                    {"product_id": line.product.product_id, "quantity": line.quantity}
                )
            quote = self.resolver.resolve_price(PricingContext(
                product=line.product,
                currency=currency,
                now=now,
                membership=membership,
                modifiers=line.modifiers
            ))
            line_total = to_money(quote.unit_price * line.quantity)
            subtotal += line_total
            priced.append(PricedLine(
                product_id=line.product.product_id,
                quantity=line.quantity,
                unit_price=quote.unit_price,
                line_total=line_total,
                applied_tier=quote.applied_tier,
                is_promo_active=quote.is_promo_active,
                variant_key=line.variant_key
            ))
        return CartQuote(currency=currency, lines=tuple(priced), subtotal=to_money(subtotal))

    def shipping_cost(self, subtotal: Decimal, currency: Currency, shipping: Optional[ShippingSelection]) -> Decimal:
        """Quoted courier cost, waived for local lockers above the ZAR threshold."""
        if shipping is None:
            return ZERO
        if Decimal(shipping.cost) < ZERO:
            raise InvalidInputError("Shipping cost cannot be negative", {"cost": str(shipping.cost)})

        free = (
            currency == Currency.ZAR
            and subtotal >= self.config.free_shipping_threshold_zar
            and shipping.method.value in self.config.free_shipping_methods
        )
        return ZERO if free else to_money(shipping.cost)

    def voucher_discount(self, voucher: Optional[Voucher], subtotal: Decimal, now: datetime) -> Decimal:
        """Voucher value against ``subtotal``.

        Below ``min_spend`` the voucher is void rather than rejected; the
        discount never exceeds the subtotal.
        """
        if voucher is None:
            return ZERO
        if Decimal(voucher.value) < ZERO:
            raise InvalidInputError("Voucher value cannot be negative", {"code": voucher.code})

        expires_at = parse_promo_bound(voucher.expires_at)
        if expires_at is not None and expires_at <= parse_promo_bound(now):
            raise InvalidInputError("Voucher has expired", {"code": voucher.code})

        if voucher.min_spend is not None and subtotal < Decimal(voucher.min_spend):
            return ZERO

        if voucher.discount_type == VoucherType.PERCENTAGE:
            discount = subtotal * Decimal(voucher.value) / Decimal("100")
        else:
            discount = Decimal(voucher.value)
        return to_money(min(discount, subtotal))

    async def prepare_payment(
        self,
        lines: List[CartLine],
        currency: Currency,
        now: datetime,
        membership: MembershipState,
        requested_points: int = 0,
        request_id: Optional[str] = None,
        shipping: Optional[ShippingSelection] = None,
        voucher: Optional[Voucher] = None
    ) -> PaymentInitiation:
        """Price the cart and redeem points against the live balance.

        Free shipping and voucher minimums look at the cart subtotal. Points
        are clamped to what the user may spend and to the whole blocks left
        after the voucher, so they never pay for shipping.
        """
        if not lines:
            raise InvalidInputError("Cart is empty")

        cart = self.quote_cart(lines, currency, now, membership)
        shipping_cost = self.shipping_cost(cart.subtotal, currency, shipping)
        voucher_discount = self.voucher_discount(voucher, cart.subtotal, now)
        merchandise = cart.subtotal - voucher_discount

        points = 0
        discount = ZERO

        if requested_points:
            points = await self.loyalty.max_redeemable(membership, requested_points)
            unit = self.loyalty.redemption_unit(currency)
            absorbable_blocks = int((merchandise / unit).to_integral_value(rounding=ROUND_FLOOR))
            points = min(points, absorbable_blocks * self.loyalty.config.points_per_redemption_unit)
            if points > 0:
                result = await self.loyalty.apply_redemption(membership, points, currency, request_id)
                points = result.points_redeemed
                discount = result.discount_amount

        amount = max(ZERO, to_money(merchandise + shipping_cost - discount))
        self.logger.info(
            "Payment prepared",
            user_id=membership.user_id,
            currency=currency.value,
            subtotal=cart.subtotal,
            shipping_cost=shipping_cost,
            voucher_discount=voucher_discount,
            points_redeemed=points,
            amount=amount
        )
        return PaymentInitiation(
            amount=amount,
            currency=currency,
            subtotal=cart.subtotal,
            points_redeemed=points,
            discount_amount=discount,
            shipping_method=shipping.method if shipping else None,
            shipping_cost=shipping_cost,
            voucher_code=voucher.code if voucher else None,
            voucher_discount=voucher_discount
        )
