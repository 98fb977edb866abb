"""
Request and response models for the ledger, membership and checkout routes.
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .rules.models import MembershipModel, MembershipTier, ModifierModel, ProductModel
from .ledger.loyalty import AccrualReason
from .membership import BillingEvent
from .checkout import ShippingMethod, ShippingSelection, Voucher, VoucherType


class VaultCheckRequest(BaseModel):
    membership: MembershipModel
    month_key: Optional[str] = Field(None, description="YYYY-MM, defaults to the current month")


class VaultCheckResponse(BaseModel):
    allowed: bool
    remaining: int
    cap: int
    purchased: int
    denial: Optional[str] = None
    month_key: str


class VaultPurchaseRequest(BaseModel):
    membership: MembershipModel
    item_id: str
    month_key: Optional[str] = None
    request_id: Optional[str] = Field(None, description="Cart action id for duplicate submissions")


class VaultEntryResponse(BaseModel):
    user_id: str
    month_key: str
    item_ids: List[str]
    count: int


class LoyaltyAccountResponse(BaseModel):
    user_id: str
    points_balance: int
    social_rewards: Dict[str, bool] = Field(default_factory=dict)


class AccrueRequest(BaseModel):
    user_id: str
    reason: AccrualReason
    currency: str = "ZAR"
    order_total: Optional[Decimal] = None
    product_id: Optional[str] = None
    has_shared: bool = Field(False, description="Share flag of the current product view")
    platform: Optional[str] = None
    request_id: Optional[str] = None


class AccrueResponse(BaseModel):
    points_added: int
    has_shared: bool
    points_balance: int


class MaxRedeemableRequest(BaseModel):
    membership: MembershipModel
    requested_points: int
    currency: str = "ZAR"


class MaxRedeemableResponse(BaseModel):
    max_redeemable_points: int
    discount_amount: Decimal


class RedeemRequest(BaseModel):
    membership: MembershipModel
    points: int
    currency: str = "ZAR"
    request_id: Optional[str] = None


class RedeemResponse(BaseModel):
    points_redeemed: int
    discount_amount: Decimal
    currency: str
    balance_after: int


class AdjustPointsRequest(BaseModel):
    user_id: str
    delta: int
    request_id: Optional[str] = None


class MembershipEventRequest(BaseModel):
    membership: MembershipModel
    event: BillingEvent
    tier: Optional[MembershipTier] = None
    now: Optional[datetime] = None


class CheckoutLineModel(BaseModel):
    product: ProductModel
    quantity: int = Field(1, description="Units of this line")
    variant_key: Optional[str] = None
    modifiers: List[ModifierModel] = Field(default_factory=list)


class ShippingModel(BaseModel):
    method: ShippingMethod
    cost: Decimal = Field(Decimal("0"), description="Courier quote before any free-shipping waiver")

    def to_selection(self) -> ShippingSelection:
        return ShippingSelection(method=self.method, cost=self.cost)


class VoucherModel(BaseModel):
    code: str
    discount_type: VoucherType
    value: Decimal
    min_spend: Optional[Decimal] = None
    expires_at: Optional[str] = None

    def to_voucher(self) -> Voucher:
        return Voucher(
            code=self.code,
            discount_type=self.discount_type,
            value=self.value,
            min_spend=self.min_spend,
            expires_at=self.expires_at
        )


class CheckoutRequest(BaseModel):
    membership: MembershipModel
    currency: str = "ZAR"
    lines: List[CheckoutLineModel]
    requested_points: int = 0
    request_id: Optional[str] = None
    now: Optional[datetime] = None
    shipping: Optional[ShippingModel] = None
    voucher: Optional[VoucherModel] = None


class PaymentInitiationResponse(BaseModel):
    amount: Decimal
    currency: str
    subtotal: Decimal
    points_redeemed: int
    discount_amount: Decimal
    shipping_method: Optional[ShippingMethod] = None
    shipping_cost: Decimal = Decimal("0")
    voucher_code: Optional[str] = None
    voucher_discount: Decimal = Decimal("0")
