"""
Membership billing transitions feeding the vault ladder.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from shared.config import BaseConfig
from shared.errors import InvalidInputError
from shared.logging import get_logger
from .rules.models import MembershipState, MembershipStatus, MembershipTier


class BillingEvent(str, Enum):
    PAYMENT_COMPLETED = "payment_completed"
    PAYMENT_FAILED = "payment_failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


@dataclass(frozen=True)
class LapsePolicy:
    """When a billing problem counts as a lapse that resets the ladder.

    ``reset_on_payment_failure`` applies once ``grace_period_days`` have
    passed since the failed payment without a successful one.
    ``reset_on_cancellation`` applies when a cancelled membership expires.
    """
    grace_period_days: int = 7
    reset_on_payment_failure: bool = True
    reset_on_cancellation: bool = True

    @classmethod
    def from_config(cls, config: BaseConfig) -> "LapsePolicy":
        return cls(
            grace_period_days=config.lapse_grace_period_days,
            reset_on_payment_failure=config.lapse_reset_on_payment_failure,
            reset_on_cancellation=config.lapse_reset_on_cancellation
        )


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class MembershipLifecycle:
    """Applies billing events to a ``MembershipState``.

    States: none -> active -> (grace_period | cancelled_pending) -> lapsed.
    The first successful payment creates the membership at month 0, each
    further payment adds a month, and a renewal after a lapse continues
    from whatever the lapse left (0 when the policy reset it).
    """

    def __init__(self, policy: Optional[LapsePolicy] = None, config: Optional[BaseConfig] = None):
        self.policy = policy or LapsePolicy.from_config(config or BaseConfig())
        self.logger = get_logger("pricing.membership")

    def grace_expired(self, state: MembershipState, now: datetime) -> bool:
        if state.status != MembershipStatus.GRACE_PERIOD:
            return False
        if state.status_changed_at is None:
            return True
        deadline = _as_utc(state.status_changed_at) + timedelta(days=self.policy.grace_period_days)
        return _as_utc(now) >= deadline

    def refresh(self, state: MembershipState, now: datetime) -> MembershipState:
        """Lapse a membership whose grace period ran out."""
        if self.grace_expired(state, now):
            return self._lapse(state, now, reset=self.policy.reset_on_payment_failure)
        return state

    def apply_event(
        self,
        state: MembershipState,
        event: BillingEvent,
        now: datetime,
        tier: Optional[MembershipTier] = None
    ) -> MembershipState:
        """Return the state after ``event``; the input is not modified."""
        state = self.refresh(state, now)

        if event == BillingEvent.PAYMENT_COMPLETED:
            new_state = self._payment_completed(state, now, tier)
        elif event == BillingEvent.PAYMENT_FAILED:
            new_state = self._payment_failed(state, now)
        elif event == BillingEvent.CANCELLED:
            new_state = replace(state, status=MembershipStatus.CANCELLED_PENDING, status_changed_at=now)
        elif event == BillingEvent.EXPIRED:
            reset = (
                self.policy.reset_on_cancellation
                if state.status == MembershipStatus.CANCELLED_PENDING
                else self.policy.reset_on_payment_failure
            )
            new_state = self._lapse(state, now, reset=reset)
        else:
            raise InvalidInputError("Unknown billing event", {"event": str(event)})

        self.logger.info(
            "Membership transition",
            user_id=state.user_id,
            billing_event=event.value,
            from_status=state.status.value,
            to_status=new_state.status.value,
            membership_months=new_state.membership_months
        )
        return new_state

    def _payment_completed(
        self,
        state: MembershipState,
        now: datetime,
        tier: Optional[MembershipTier]
    ) -> MembershipState:
        tier = tier or state.tier
        if tier == MembershipTier.NONE:
            raise InvalidInputError("A paid membership needs a tier", {"user_id": state.user_id})

        if state.status == MembershipStatus.LAPSED:
            months = state.membership_months
        elif state.status == MembershipStatus.NONE and not state.is_member:
            months = 0
        else:
            months = state.membership_months + 1

        return replace(
            state,
            is_member=True,
            tier=tier,
            membership_months=months,
            status=MembershipStatus.ACTIVE,
            status_changed_at=now
        )

    def _payment_failed(self, state: MembershipState, now: datetime) -> MembershipState:
        if state.status == MembershipStatus.GRACE_PERIOD:
            return state
        if self.policy.grace_period_days <= 0:
            return self._lapse(state, now, reset=self.policy.reset_on_payment_failure)
        return replace(state, status=MembershipStatus.GRACE_PERIOD, status_changed_at=now)

    @staticmethod
    def _lapse(state: MembershipState, now: datetime, reset: bool) -> MembershipState:
        return replace(
            state,
            is_member=False,
            tier=MembershipTier.NONE,
            membership_months=0 if reset else state.membership_months,
            status=MembershipStatus.LAPSED,
            status_changed_at=now
        )
