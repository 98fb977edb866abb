"""
Loyalty ledger: accrual and capped redemption of points.
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_FLOOR
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from shared.config import BaseConfig
from shared.errors import (
    InvalidInputError, EntitlementDeniedError, LimitExceededError, ConcurrencyConflictError
)
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..rules.models import Currency, MembershipState, ZERO, to_money
from .store import LedgerStore

# Remembered request ids per account, oldest dropped first
MAX_APPLIED_REQUESTS = 200


class AccrualReason(str, Enum):
    PURCHASE = "purchase"
    REVIEW = "review"
    SHARE = "share"
    SOCIAL_FOLLOW = "social_follow"


@dataclass
class ShareViewState:
    """Share flag held by a single product view.

    A fresh view (e.g. a page reload) starts unshared again.
    """
    product_id: str
    has_shared: bool = False


@dataclass
class LoyaltyAccount:
    user_id: str
    points_balance: int = 0
    social_rewards: Dict[str, bool] = field(default_factory=dict)
    shared_products: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class RedemptionResult:
    points_redeemed: int
    discount_amount: Decimal
    currency: Currency
    balance_after: int


class LoyaltyLedger:
    """Points accrual and redemption against a versioned account document."""

    def __init__(
        self,
        store: LedgerStore,
        config: Optional[BaseConfig] = None,
        metrics: Optional[MetricsCollector] = None
    ):
        self.store = store
        self.config = config or BaseConfig()
        self.metrics = metrics
        self.logger = get_logger("pricing.loyalty_ledger")

    def _key(self, user_id: str) -> str:
        return f"{self.config.ledger_key_prefix}:loyalty:{user_id}"

    def spend_unit(self, currency: Currency) -> Decimal:
        if currency == Currency.USD:
            return self.config.purchase_spend_unit_usd
        return self.config.purchase_spend_unit_zar

    def redemption_unit(self, currency: Currency) -> Decimal:
        if currency == Currency.USD:
            return self.config.redemption_unit_usd
        return self.config.redemption_unit_zar

    def discount_for(self, points: int, currency: Currency) -> Decimal:
        """Currency discount for ``points``; partial blocks are worth nothing."""
        blocks = points // self.config.points_per_redemption_unit
        return to_money(blocks * self.redemption_unit(currency))

    def redemption_cap(self, membership: MembershipState) -> Optional[int]:
        """Per-order point cap, or None when only the balance limits it."""
        if membership.is_at_least_basic:
            return None
        return self.config.non_member_redemption_cap_points

    async def get_account(self, user_id: str) -> LoyaltyAccount:
        record = await self.store.get(self._key(user_id))
        return self._account(user_id, record.value)

    async def accrue(
        self,
        user_id: str,
        reason: AccrualReason,
        currency: Currency = Currency.ZAR,
        order_total: Optional[Decimal] = None,
        product_id: Optional[str] = None,
        share_view: Optional[ShareViewState] = None,
        platform: Optional[str] = None,
        request_id: Optional[str] = None
    ) -> int:
        """Credit points for a purchase, review, share or social follow.

        Returns the points added, which is 0 when a share or follow was
        already rewarded.
        """
        if reason == AccrualReason.PURCHASE:
            if order_total is None or Decimal(order_total) < ZERO:
                raise InvalidInputError(
                    "Purchase accrual needs a non-negative order total",
                    {"order_total": None if order_total is None else str(order_total)}
                )
            points = int((Decimal(order_total) / self.spend_unit(currency)).to_integral_value(rounding=ROUND_FLOOR))
        elif reason == AccrualReason.REVIEW:
            points = self.config.review_points
        elif reason == AccrualReason.SHARE:
            if not product_id and share_view is not None:
                product_id = share_view.product_id
            if not product_id:
                raise InvalidInputError("Share accrual needs a product id")
            if not self.config.durable_share_cooldown:
                if share_view is None:
                    raise InvalidInputError("Share accrual needs the product view state")
                if share_view.has_shared:
                    return 0
            points = self.config.share_points
        elif reason == AccrualReason.SOCIAL_FOLLOW:
            if not platform:
                raise InvalidInputError("Social follow accrual needs a platform")
            points = self.config.social_follow_points
        else:
            raise InvalidInputError("Unknown accrual reason", {"reason": str(reason)})

        def apply(account: Dict[str, Any]) -> Tuple[Dict[str, Any], int]:
            if reason == AccrualReason.SHARE and self.config.durable_share_cooldown:
                if product_id in account["shared_products"]:
                    return account, 0
                account["shared_products"].append(product_id)
            if reason == AccrualReason.SOCIAL_FOLLOW:
                if account["social_rewards"].get(platform):
                    return account, 0
                account["social_rewards"][platform] = True
            account["points_balance"] += points
            return account, points

        added = await self._mutate(user_id, apply, request_id, ledger_op="accrue")

        if reason == AccrualReason.SHARE and share_view is not None:
            share_view.has_shared = True

        if added:
            self.logger.info("Points accrued", user_id=user_id, reason=reason.value, points=added)
            if self.metrics:
                self.metrics.increment_counter(
                    "loyalty_points_total", amount=added, direction="accrued", reason=reason.value
                )
        return added

    async def max_redeemable(self, membership: MembershipState, requested_points: int) -> int:
        """Clamp a request to the balance, the non-member cap and whole blocks."""
        if requested_points < 0:
            raise InvalidInputError(
                "Requested points cannot be negative",
                {"requested_points": requested_points}
            )
        account = await self.get_account(membership.user_id)
        limit = account.points_balance
        cap = self.redemption_cap(membership)
        if cap is not None:
            limit = min(limit, cap)

        clamped = min(requested_points, limit)
        block = self.config.points_per_redemption_unit
        return (clamped // block) * block

    async def apply_redemption(
        self,
        membership: MembershipState,
        points: int,
        currency: Currency = Currency.ZAR,
        request_id: Optional[str] = None
    ) -> RedemptionResult:
        """Spend ``points`` for a discount, validated against the live balance."""
        block = self.config.points_per_redemption_unit
        if points <= 0 or points % block != 0:
            raise InvalidInputError(
                f"Redemption must be a positive multiple of {block} points",
                {"points": points}
            )

        cap = self.redemption_cap(membership)
        if cap is not None and points > cap:
            raise EntitlementDeniedError(
                "Redemption above the non-member cap requires a membership",
                {"points": points, "cap": cap}
            )

        def apply(account: Dict[str, Any]) -> Tuple[Dict[str, Any], List[int]]:
            if points > account["points_balance"]:
                raise LimitExceededError(
                    "Not enough points",
                    {"points": points, "points_balance": account["points_balance"]}
                )
            account["points_balance"] -= points
            return account, [points, account["points_balance"]]

        redeemed, balance_after = await self._mutate(membership.user_id, apply, request_id, ledger_op="redeem")

        self.logger.info(
            "Points redeemed",
            user_id=membership.user_id,
            points=redeemed,
            balance_after=balance_after
        )
        if self.metrics:
            self.metrics.increment_counter(
                "loyalty_points_total", amount=redeemed, direction="redeemed", reason="order"
            )

        return RedemptionResult(
            points_redeemed=redeemed,
            discount_amount=self.discount_for(redeemed, currency),
            currency=currency,
            balance_after=balance_after
        )

    async def adjust_points(self, user_id: str, delta: int, request_id: Optional[str] = None) -> int:
        """Admin adjustment; the balance never drops below zero.

        Returns the new balance.
        """
        def apply(account: Dict[str, Any]) -> Tuple[Dict[str, Any], int]:
            account["points_balance"] = max(0, account["points_balance"] + delta)
            return account, account["points_balance"]

        balance = await self._mutate(user_id, apply, request_id, ledger_op="adjust")
        self.logger.info("Points adjusted", user_id=user_id, delta=delta, balance=balance)
        return balance

    async def _mutate(
        self,
        user_id: str,
        apply: Callable[[Dict[str, Any]], Tuple[Dict[str, Any], Any]],
        request_id: Optional[str],
        ledger_op: str
    ) -> Any:
        """Read, apply and compare-and-set one account document.

        A ``request_id`` already applied returns its recorded result
        without touching the balance.
        """
        key = self._key(user_id)
        record = await self.store.get(key)
        account = self._document(user_id, record.value)

        # Request ids are scoped per operation
        applied_key = f"{ledger_op}:{request_id}" if request_id else None
        if applied_key and applied_key in account["applied_requests"]:
            self.logger.debug("Duplicate loyalty request ignored", request_id=request_id, op=ledger_op)
            return account["applied_requests"][applied_key]

        account, result = apply(account)

        if applied_key:
            account["applied_requests"][applied_key] = result
            while len(account["applied_requests"]) > MAX_APPLIED_REQUESTS:
                oldest = next(iter(account["applied_requests"]))
                del account["applied_requests"][oldest]

        if not await self.store.compare_and_set(key, record.version, account):
            if self.metrics:
                self.metrics.increment_counter("ledger_conflicts_total", ledger="loyalty")
            self.logger.warning("Loyalty ledger conflict", user_id=user_id, op=ledger_op)
            raise ConcurrencyConflictError(
                "Loyalty account changed concurrently",
                {"user_id": user_id, "op": ledger_op}
            )
        return result

    @staticmethod
    def _document(user_id: str, value: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        value = dict(value or {})
        return {
            "user_id": user_id,
            "points_balance": int(value.get("points_balance", 0)),
            "social_rewards": dict(value.get("social_rewards", {})),
            "shared_products": list(value.get("shared_products", [])),
            "applied_requests": dict(value.get("applied_requests", {})),
        }

    @classmethod
    def _account(cls, user_id: str, value: Optional[Dict[str, Any]]) -> LoyaltyAccount:
        doc = cls._document(user_id, value)
        return LoyaltyAccount(
            user_id=user_id,
            points_balance=doc["points_balance"],
            social_rewards=doc["social_rewards"],
            shared_products=doc["shared_products"]
        )
