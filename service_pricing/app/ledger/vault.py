"""
Vault ladder tracker.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional

from shared.config import BaseConfig
from shared.errors import (
    InvalidInputError, EntitlementDeniedError, LimitExceededError, ConcurrencyConflictError
)
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..rules.models import MembershipState, MembershipStatus, MembershipTier
from .store import LedgerStore

MONTH_KEY_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")

# Billing states that suspend vault access even for deluxe members
LOCKED_STATUSES = {MembershipStatus.GRACE_PERIOD, MembershipStatus.LAPSED}


def month_key(now: datetime) -> str:
    """Calendar month key, e.g. ``2026-10``."""
    return f"{now.year:04d}-{now.month:02d}"


class VaultDenial(str, Enum):
    ENTITLEMENT_DENIED = "entitlement_denied"
    LIMIT_EXCEEDED = "limit_exceeded"


@dataclass(frozen=True)
class VaultDecision:
    """Outcome of a vault ladder check."""
    allowed: bool
    remaining: int
    cap: int
    purchased: int
    denial: Optional[VaultDenial] = None


@dataclass
class VaultLedgerEntry:
    """Vault purchases for one user in one calendar month."""
    user_id: str
    month_key: str
    item_ids: List[str] = field(default_factory=list)
    applied_requests: List[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.item_ids)


class VaultLadderTracker:
    """Monthly vault purchase caps keyed by consecutive membership months."""

    def __init__(
        self,
        store: LedgerStore,
        config: Optional[BaseConfig] = None,
        metrics: Optional[MetricsCollector] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.store = store
        self.config = config or BaseConfig()
        self.metrics = metrics
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.logger = get_logger("pricing.vault_ladder")

    def ladder_cap(self, membership_months: int) -> int:
        """Monthly cap for a member with ``membership_months`` paid months."""
        if membership_months >= self.config.vault_unlimited_after_months:
            return self.config.vault_unlimited_cap
        if membership_months >= self.config.vault_established_after_months:
            return self.config.vault_established_cap
        return self.config.vault_new_member_cap

    def has_vault_access(self, membership: MembershipState) -> bool:
        return (
            membership.is_member
            and membership.tier == MembershipTier.DELUXE
            and membership.status not in LOCKED_STATUSES
        )

    def _key(self, user_id: str, key: str) -> str:
        return f"{self.config.ledger_key_prefix}:vault:{user_id}:{key}"

    def _validate_month_key(self, key: str):
        if not MONTH_KEY_PATTERN.match(key or ""):
            raise InvalidInputError("Month key must look like YYYY-MM", {"month_key": key})

    async def get_entry(self, user_id: str, key: str) -> VaultLedgerEntry:
        """Read the entry for a month; an untouched month is empty."""
        self._validate_month_key(key)
        record = await self.store.get(self._key(user_id, key))
        value = record.value or {}
        return VaultLedgerEntry(
            user_id=user_id,
            month_key=key,
            item_ids=list(value.get("item_ids", [])),
            applied_requests=list(value.get("applied_requests", []))
        )

    async def can_purchase_vault_item(self, membership: MembershipState, key: str) -> VaultDecision:
        """Check whether one more vault unit may be bought in month ``key``."""
        self._validate_month_key(key)

        if not self.has_vault_access(membership):
            decision = VaultDecision(
                allowed=False, remaining=0, cap=0, purchased=0,
                denial=VaultDenial.ENTITLEMENT_DENIED
            )
        else:
            entry = await self.get_entry(membership.user_id, key)
            cap = self.ladder_cap(membership.membership_months)
            remaining = max(0, cap - entry.count)
            decision = VaultDecision(
                allowed=remaining > 0,
                remaining=remaining,
                cap=cap,
                purchased=entry.count,
                denial=None if remaining > 0 else VaultDenial.LIMIT_EXCEEDED
            )

        if self.metrics:
            self.metrics.increment_counter(
                "vault_decisions_total",
                decision=decision.denial.value if decision.denial else "allowed"
            )
        return decision

    async def record_vault_purchase(
        self,
        membership: MembershipState,
        item_id: str,
        key: str,
        request_id: Optional[str] = None
    ) -> VaultLedgerEntry:
        """Append ``item_id`` to the month's entry with compare-and-set.

        A repeated ``request_id`` returns the entry unchanged. Distinct
        units of the same item count individually against the cap.
        """
        self._validate_month_key(key)
        if not item_id:
            raise InvalidInputError("Vault item id is required")

        current_key = month_key(self.clock())
        if key < current_key:
            raise InvalidInputError(
                "Closed months cannot be modified",
                {"month_key": key, "current_month_key": current_key}
            )

        if not self.has_vault_access(membership):
            self.logger.info(
                "Vault purchase denied",
                user_id=membership.user_id,
                tier=membership.tier.value,
                status=membership.status.value
            )
            raise EntitlementDeniedError(
                "Vault access requires an active deluxe membership",
                {"user_id": membership.user_id, "tier": membership.tier.value}
            )

        store_key = self._key(membership.user_id, key)
        record = await self.store.get(store_key)
        value = record.value or {}
        item_ids = list(value.get("item_ids", []))
        applied_requests = list(value.get("applied_requests", []))

        if request_id and request_id in applied_requests:
            self.logger.debug("Duplicate vault purchase ignored", request_id=request_id)
            return VaultLedgerEntry(membership.user_id, key, item_ids, applied_requests)

        cap = self.ladder_cap(membership.membership_months)
        if len(item_ids) >= cap:
            self.logger.info(
                "Vault monthly limit reached",
                user_id=membership.user_id,
                month_key=key,
                cap=cap
            )
            raise LimitExceededError(
                "Monthly vault limit reached",
                {"cap": cap, "remaining": 0, "month_key": key}
            )

        item_ids.append(item_id)
        if request_id:
            applied_requests.append(request_id)

        written = await self.store.compare_and_set(
            store_key,
            record.version,
            {"item_ids": item_ids, "applied_requests": applied_requests}
        )
        if not written:
            if self.metrics:
                self.metrics.increment_counter("ledger_conflicts_total", ledger="vault")
            self.logger.warning("Vault ledger conflict", user_id=membership.user_id, month_key=key)
            raise ConcurrencyConflictError(
                "Vault ledger changed concurrently",
                {"user_id": membership.user_id, "month_key": key}
            )

        self.logger.info(
            "Vault purchase recorded",
            user_id=membership.user_id,
            item_id=item_id,
            month_key=key,
            count=len(item_ids),
            cap=cap
        )
        return VaultLedgerEntry(membership.user_id, key, item_ids, applied_requests)
