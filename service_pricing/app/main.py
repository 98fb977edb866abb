"""
Pricing service for the Spoil Me commerce layer.
"""

from datetime import datetime, timezone
from typing import Optional

from shared.base_service import BaseService
from shared.logging import set_user_context

from .rules.engine import PriceResolver
from .rules.models import (
    OptionModifier, PricingContext, parse_currency,
    MembershipModel, PriceQuoteRequest, PriceQuoteResponse, PromoStatusRequest,
    CartGuardRequest, CartGuardResponse
)
from .rules.promotions import is_promo_active
from .rules.stock import evaluate_cart_guard
from .ledger.store import LedgerStore, InMemoryLedgerStore
from .ledger.redis_store import RedisLedgerStore
from .ledger.vault import VaultLadderTracker, month_key
from .ledger.loyalty import LoyaltyLedger, ShareViewState
from .membership import MembershipLifecycle
from .checkout import CheckoutCalculator, CartLine
from .api_models import (
    VaultCheckRequest, VaultCheckResponse, VaultPurchaseRequest, VaultEntryResponse,
    LoyaltyAccountResponse, AccrueRequest, AccrueResponse,
    MaxRedeemableRequest, MaxRedeemableResponse, RedeemRequest, RedeemResponse,
    AdjustPointsRequest, MembershipEventRequest, CheckoutRequest, PaymentInitiationResponse
)


def _now(value: Optional[datetime] = None) -> datetime:
    return value or datetime.now(timezone.utc)


class PricingService(BaseService):
    """Pricing, entitlement and loyalty service."""

    def __init__(self, store: Optional[LedgerStore] = None):
        super().__init__("pricing", 8013)

        self.store = store or self._create_store()
        self.resolver = PriceResolver(self.config, self.metrics)
        self.vault = VaultLadderTracker(self.store, self.config, self.metrics)
        self.loyalty = LoyaltyLedger(self.store, self.config, self.metrics)
        self.lifecycle = MembershipLifecycle(config=self.config)
        self.checkout = CheckoutCalculator(self.resolver, self.loyalty)

        self._setup_pricing_routes()

    def _create_store(self) -> LedgerStore:
        if self.config.ledger_backend == "redis":
            return RedisLedgerStore(self.config.redis_url)
        return InMemoryLedgerStore()

    def _setup_pricing_routes(self):
        """Set up pricing-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "pricing",
                "message": "Spoil Me commerce layer - Pricing Service",
                "version": "1.0.0",
                "capabilities": ["price_resolution", "cart_guard", "vault_ladder", "loyalty_ledger"]
            }

        @self.app.post("/pricing/quote", response_model=PriceQuoteResponse)
        async def quote_price(request: PriceQuoteRequest):
            """Resolve the unit price a user pays."""
            set_user_context(request.membership.user_id)
            ctx = PricingContext(
                product=request.product.to_product(),
                currency=parse_currency(request.currency),
                now=_now(request.now),
                membership=request.membership.to_state(),
                modifiers=[OptionModifier(name=m.name, delta=m.delta) for m in request.modifiers]
            )
            return PriceQuoteResponse.from_quote(self.resolver.resolve_price(ctx))

        @self.app.post("/pricing/promo-status")
        async def promo_status(request: PromoStatusRequest):
            """Report whether a product's promotion is live."""
            product = request.product.to_product()
            return {
                "product_id": product.product_id,
                "is_promo_active": is_promo_active(product, _now(request.now))
            }

        @self.app.post("/cart/can-add", response_model=CartGuardResponse)
        async def can_add(request: CartGuardRequest):
            """Check whether one more unit may be added to the cart."""
            decision = evaluate_cart_guard(
                request.product.to_product(),
                request.variant_key,
                request.quantity_in_cart
            )
            return CartGuardResponse(
                allowed=decision.allowed,
                reason=decision.reason.value,
                available_stock=decision.available_stock
            )

        @self.app.post("/checkout/prepare", response_model=PaymentInitiationResponse)
        async def prepare_checkout(request: CheckoutRequest):
            """Price the cart, apply shipping, voucher and points, and return the payable amount."""
            membership = request.membership.to_state()
            set_user_context(membership.user_id)
            lines = [
                CartLine(
                    product=line.product.to_product(),
                    quantity=line.quantity,
                    variant_key=line.variant_key,
                    modifiers=[OptionModifier(name=m.name, delta=m.delta) for m in line.modifiers]
                )
                for line in request.lines
            ]
            payment = await self.checkout.prepare_payment(
                lines,
                parse_currency(request.currency),
                _now(request.now),
                membership,
                requested_points=request.requested_points,
                request_id=request.request_id,
                shipping=request.shipping.to_selection() if request.shipping else None,
                voucher=request.voucher.to_voucher() if request.voucher else None
            )
            return PaymentInitiationResponse(
                amount=payment.amount,
                currency=payment.currency.value,
                subtotal=payment.subtotal,
                points_redeemed=payment.points_redeemed,
                discount_amount=payment.discount_amount,
                shipping_method=payment.shipping_method,
                shipping_cost=payment.shipping_cost,
                voucher_code=payment.voucher_code,
                voucher_discount=payment.voucher_discount
            )

        @self.app.post("/vault/check", response_model=VaultCheckResponse)
        async def vault_check(request: VaultCheckRequest):
            """Check the monthly vault ladder for a user."""
            key = request.month_key or month_key(_now())
            decision = await self.vault.can_purchase_vault_item(request.membership.to_state(), key)
            return VaultCheckResponse(
                allowed=decision.allowed,
                remaining=decision.remaining,
                cap=decision.cap,
                purchased=decision.purchased,
                denial=decision.denial.value if decision.denial else None,
                month_key=key
            )

        @self.app.post("/vault/purchases", response_model=VaultEntryResponse)
        async def vault_purchase(request: VaultPurchaseRequest):
            """Record a vault purchase against the monthly cap."""
            key = request.month_key or month_key(_now())
            entry = await self.vault.record_vault_purchase(
                request.membership.to_state(),
                request.item_id,
                key,
                request_id=request.request_id
            )
            return VaultEntryResponse(
                user_id=entry.user_id,
                month_key=entry.month_key,
                item_ids=entry.item_ids,
                count=entry.count
            )

        @self.app.get("/loyalty/{user_id}", response_model=LoyaltyAccountResponse)
        async def loyalty_account(user_id: str):
            """Get a user's points balance."""
            account = await self.loyalty.get_account(user_id)
            return LoyaltyAccountResponse(
                user_id=account.user_id,
                points_balance=account.points_balance,
                social_rewards=account.social_rewards
            )

        @self.app.post("/loyalty/accrue", response_model=AccrueResponse)
        async def accrue(request: AccrueRequest):
            """Credit points for a purchase, review, share or follow."""
            share_view = None
            if request.product_id:
                share_view = ShareViewState(product_id=request.product_id, has_shared=request.has_shared)
            added = await self.loyalty.accrue(
                request.user_id,
                request.reason,
                currency=parse_currency(request.currency),
                order_total=request.order_total,
                product_id=request.product_id,
                share_view=share_view,
                platform=request.platform,
                request_id=request.request_id
            )
            account = await self.loyalty.get_account(request.user_id)
            return AccrueResponse(
                points_added=added,
                has_shared=share_view.has_shared if share_view else False,
                points_balance=account.points_balance
            )

        @self.app.post("/loyalty/max-redeemable", response_model=MaxRedeemableResponse)
        async def max_redeemable(request: MaxRedeemableRequest):
            """Clamp a redemption request to what the user may spend."""
            points = await self.loyalty.max_redeemable(
                request.membership.to_state(),
                request.requested_points
            )
            return MaxRedeemableResponse(
                max_redeemable_points=points,
                discount_amount=self.loyalty.discount_for(points, parse_currency(request.currency))
            )

        @self.app.post("/loyalty/redeem", response_model=RedeemResponse)
        async def redeem(request: RedeemRequest):
            """Spend points for an order discount."""
            result = await self.loyalty.apply_redemption(
                request.membership.to_state(),
                request.points,
                parse_currency(request.currency),
                request_id=request.request_id
            )
            return RedeemResponse(
                points_redeemed=result.points_redeemed,
                discount_amount=result.discount_amount,
                currency=result.currency.value,
                balance_after=result.balance_after
            )

        @self.app.post("/loyalty/adjust", response_model=LoyaltyAccountResponse)
        async def adjust(request: AdjustPointsRequest):
            """Admin points adjustment."""
            await self.loyalty.adjust_points(request.user_id, request.delta, request.request_id)
            account = await self.loyalty.get_account(request.user_id)
            return LoyaltyAccountResponse(
                user_id=account.user_id,
                points_balance=account.points_balance,
                social_rewards=account.social_rewards
            )

        @self.app.post("/membership/events", response_model=MembershipModel)
        async def membership_event(request: MembershipEventRequest):
            """Apply a billing event to a membership snapshot."""
            state = self.lifecycle.apply_event(
                request.membership.to_state(),
                request.event,
                _now(request.now),
                tier=request.tier
            )
            return MembershipModel.from_state(state)

    async def _check_dependencies(self):
        """Check pricing service dependencies."""
        try:
            return {"ledger": "ok" if await self.store.health_check() else "error"}
        except Exception:
            return {"ledger": "error"}

    async def start(self):
        """Start pricing service components."""
        await self.store.start()
        self.logger.info("Pricing service started", ledger_backend=self.config.ledger_backend)

    async def stop(self):
        """Stop pricing service components."""
        await self.store.stop()
        self.logger.info("Pricing service stopped")


def create_app(store: Optional[LedgerStore] = None):
    """Create pricing service application."""
    service = PricingService(store)
    return service.app


if __name__ == "__main__":
    service = PricingService()
    service.run()
