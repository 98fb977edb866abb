"""
Pricing data models for the Pricing Service.
"""

from typing import Dict, Any, Optional, List, Union
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum

from pydantic import BaseModel, Field

from shared.errors import InvalidInputError

CENT = Decimal("0.01")
ZERO = Decimal("0")

# Catalog types that are sold per size
SIZED_PRODUCT_TYPES = {"ring"}


class Currency(str, Enum):
    """Supported storefront currencies."""
    ZAR = "ZAR"
    USD = "USD"


class MembershipTier(str, Enum):
    """Membership tiers, lowest first."""
    NONE = "none"
    BASIC = "basic"
    PREMIUM = "premium"
    DELUXE = "deluxe"


class MembershipStatus(str, Enum):
    """Billing status of a membership."""
    NONE = "none"
    ACTIVE = "active"
    GRACE_PERIOD = "grace_period"
    CANCELLED_PENDING = "cancelled_pending"
    LAPSED = "lapsed"


def parse_currency(value: Union[str, Currency, None]) -> Currency:
    """Parse a currency code, raising InvalidInputError when unknown."""
    if isinstance(value, Currency):
        return value
    try:
        return Currency(str(value).strip().upper())
    except ValueError:
        raise InvalidInputError("Unsupported currency", {"currency": value})


def to_money(value: Union[Decimal, int, float, str]) -> Decimal:
    """Quantize a numeric value to cents."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class OptionModifier:
    """Selected product option adding a flat delta, e.g. a material."""
    name: str
    delta: Decimal = ZERO


@dataclass
class Product:
    """Catalog product as read from the product store.

    Per-currency amounts are keyed by ``Currency``. Only the ZAR base
    price is mandatory. Promo amounts are single figures applied in
    whichever currency is selected.
    """
    product_id: str
    base_price: Dict[Currency, Decimal]
    compare_at_price: Dict[Currency, Decimal] = field(default_factory=dict)
    member_price: Dict[Currency, Decimal] = field(default_factory=dict)
    promo_price: Optional[Decimal] = None
    promo_starts_at: Optional[Union[str, datetime]] = None
    promo_expires_at: Optional[Union[str, datetime]] = None
    promo_basic_member_price: Optional[Decimal] = None
    promo_premium_member_price: Optional[Decimal] = None
    promo_deluxe_member_price: Optional[Decimal] = None
    stock: int = 0
    size_stock: Optional[Dict[str, int]] = None
    is_sold_out: bool = False
    name: Optional[str] = None
    product_type: Optional[str] = None

    def tier_promo_price(self, tier: MembershipTier) -> Optional[Decimal]:
        """Return the promo override configured for a tier, if any."""
        return {
            MembershipTier.BASIC: self.promo_basic_member_price,
            MembershipTier.PREMIUM: self.promo_premium_member_price,
            MembershipTier.DELUXE: self.promo_deluxe_member_price,
        }.get(tier)

    @property
    def is_sized(self) -> bool:
        """Whether a size must be chosen before adding to cart."""
        if self.product_type and self.product_type.strip().lower() in SIZED_PRODUCT_TYPES:
            return True
        return self.size_stock is not None


@dataclass
class MembershipState:
    """Membership snapshot for the current user."""
    user_id: str
    is_member: bool = False
    tier: MembershipTier = MembershipTier.NONE
    membership_months: int = 0
    status: MembershipStatus = MembershipStatus.NONE
    status_changed_at: Optional[datetime] = None

    @property
    def is_at_least_basic(self) -> bool:
        return self.is_member and self.tier != MembershipTier.NONE


@dataclass
class PricingContext:
    """Per-request input to the price resolver."""
    product: Product
    currency: Currency
    now: datetime
    membership: MembershipState
    modifiers: List[OptionModifier] = field(default_factory=list)


@dataclass(frozen=True)
class PriceQuote:
    """Resolved price for one unit of a product."""
    unit_price: Decimal
    applied_tier: MembershipTier
    is_promo_active: bool
    currency: Currency
    compare_at_price: Optional[Decimal] = None
    member_upsell_price: Optional[Decimal] = None


# API models

class MembershipModel(BaseModel):
    """Membership snapshot as sent by callers."""
    user_id: str = Field(..., description="User ID")
    is_member: bool = Field(False, description="Paid membership flag")
    tier: MembershipTier = Field(MembershipTier.NONE, description="Membership tier")
    membership_months: int = Field(0, ge=0, description="Consecutive paid months")
    status: MembershipStatus = Field(MembershipStatus.NONE, description="Billing status")
    status_changed_at: Optional[datetime] = Field(None, description="Last status transition")

    def to_state(self) -> MembershipState:
        return MembershipState(
            user_id=self.user_id,
            is_member=self.is_member,
            tier=self.tier,
            membership_months=self.membership_months,
            status=self.status,
            status_changed_at=self.status_changed_at
        )

    @classmethod
    def from_state(cls, state: MembershipState) -> "MembershipModel":
        return cls(
            user_id=state.user_id,
            is_member=state.is_member,
            tier=state.tier,
            membership_months=state.membership_months,
            status=state.status,
            status_changed_at=state.status_changed_at
        )


class ProductModel(BaseModel):
    """Product record as stored in the catalog."""
    product_id: str
    name: Optional[str] = None
    price: Decimal = Field(..., description="ZAR base price")
    price_usd: Optional[Decimal] = None
    compare_at_price: Optional[Decimal] = None
    compare_at_price_usd: Optional[Decimal] = None
    member_price: Optional[Decimal] = None
    member_price_usd: Optional[Decimal] = None
    promo_price: Optional[Decimal] = None
    promo_starts_at: Optional[str] = None
    promo_expires_at: Optional[str] = None
    promo_basic_member_price: Optional[Decimal] = None
    promo_premium_member_price: Optional[Decimal] = None
    promo_deluxe_member_price: Optional[Decimal] = None
    stock: int = 0
    ring_stock: Optional[Dict[str, int]] = None
    is_sold_out: bool = False
    type: Optional[str] = Field(None, description="Catalog type, e.g. Ring")

    def to_product(self) -> Product:
        def per_currency(zar: Optional[Decimal], usd: Optional[Decimal]) -> Dict[Currency, Decimal]:
            values = {}
            if zar is not None:
                values[Currency.ZAR] = zar
            if usd is not None:
                values[Currency.USD] = usd
            return values

        return Product(
            product_id=self.product_id,
            name=self.name,
            base_price=per_currency(self.price, self.price_usd),
            compare_at_price=per_currency(self.compare_at_price, self.compare_at_price_usd),
            member_price=per_currency(self.member_price, self.member_price_usd),
            promo_price=self.promo_price,
            promo_starts_at=self.promo_starts_at,
            promo_expires_at=self.promo_expires_at,
            promo_basic_member_price=self.promo_basic_member_price,
            promo_premium_member_price=self.promo_premium_member_price,
            promo_deluxe_member_price=self.promo_deluxe_member_price,
            stock=self.stock,
            size_stock=self.ring_stock,
            is_sold_out=self.is_sold_out,
            product_type=self.type
        )


class ModifierModel(BaseModel):
    name: str
    delta: Decimal = Decimal("0")


class PriceQuoteRequest(BaseModel):
    """Request model for a price quote."""
    product: ProductModel
    currency: str = Field("ZAR", description="ZAR or USD")
    now: Optional[datetime] = Field(None, description="Evaluation time, defaults to server time")
    membership: MembershipModel
    modifiers: List[ModifierModel] = Field(default_factory=list)


class PriceQuoteResponse(BaseModel):
    """Response model for a price quote."""
    unit_price: Decimal
    applied_tier: MembershipTier
    is_promo_active: bool
    currency: Currency
    compare_at_price: Optional[Decimal] = None
    member_upsell_price: Optional[Decimal] = None

    @classmethod
    def from_quote(cls, quote: PriceQuote) -> "PriceQuoteResponse":
        return cls(
            unit_price=quote.unit_price,
            applied_tier=quote.applied_tier,
            is_promo_active=quote.is_promo_active,
            currency=quote.currency,
            compare_at_price=quote.compare_at_price,
            member_upsell_price=quote.member_upsell_price
        )


class PromoStatusRequest(BaseModel):
    product: ProductModel
    now: Optional[datetime] = None


class CartGuardRequest(BaseModel):
    """Request model for the add-to-cart guard."""
    product: ProductModel
    variant_key: Optional[str] = Field(None, description="Selected size for ring-type products")
    quantity_in_cart: int = Field(0, description="Units of this exact variant already in cart")


class CartGuardResponse(BaseModel):
    allowed: bool
    reason: str
    available_stock: int


def context_to_log(ctx: PricingContext) -> Dict[str, Any]:
    """Flatten a pricing context for structured logs."""
    return {
        "product_id": ctx.product.product_id,
        "currency": ctx.currency.value,
        "tier": ctx.membership.tier.value,
        "is_member": ctx.membership.is_member,
    }
