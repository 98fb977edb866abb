"""
Unit tests for membership billing transitions.
"""

import pytest
from datetime import datetime, timedelta, timezone

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_pricing.app.membership import BillingEvent, LapsePolicy, MembershipLifecycle
from service_pricing.app.rules.models import MembershipState, MembershipStatus, MembershipTier
from shared.errors import InvalidInputError


NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def active(months=2):
    return MembershipState(
        user_id="user-1",
        is_member=True,
        tier=MembershipTier.DELUXE,
        membership_months=months,
        status=MembershipStatus.ACTIVE,
        status_changed_at=NOW - timedelta(days=30)
    )


class TestMembershipLifecycle:
    """Test cases for MembershipLifecycle."""

    @pytest.fixture
    def lifecycle(self):
        """Create lifecycle with the default policy."""
        return MembershipLifecycle(LapsePolicy())

    def test_first_payment_starts_at_month_zero(self, lifecycle):
        """Test a new membership starts the ladder at zero."""
        state = lifecycle.apply_event(
            MembershipState(user_id="user-1"), BillingEvent.PAYMENT_COMPLETED, NOW, tier=MembershipTier.DELUXE
        )

        assert state.is_member is True
        assert state.tier == MembershipTier.DELUXE
        assert state.membership_months == 0
        assert state.status == MembershipStatus.ACTIVE

    def test_renewal_adds_a_month(self, lifecycle):
        """Test each renewal advances the ladder."""
        state = lifecycle.apply_event(active(2), BillingEvent.PAYMENT_COMPLETED, NOW)
        assert state.membership_months == 3

    def test_payment_needs_tier(self, lifecycle):
        """Test a first payment without a tier."""
        with pytest.raises(InvalidInputError):
            lifecycle.apply_event(MembershipState(user_id="user-1"), BillingEvent.PAYMENT_COMPLETED, NOW)

    def test_input_state_unchanged(self, lifecycle):
        """Test transitions return a new state."""
        original = active(2)
        lifecycle.apply_event(original, BillingEvent.PAYMENT_FAILED, NOW)
        assert original.status == MembershipStatus.ACTIVE

    def test_payment_failure_enters_grace(self, lifecycle):
        """Test a failed payment starts the grace period."""
        state = lifecycle.apply_event(active(2), BillingEvent.PAYMENT_FAILED, NOW)

        assert state.status == MembershipStatus.GRACE_PERIOD
        assert state.is_member is True
        assert state.membership_months == 2

    def test_recovery_within_grace(self, lifecycle):
        """Test paying inside the grace period keeps the ladder."""
        state = lifecycle.apply_event(active(2), BillingEvent.PAYMENT_FAILED, NOW)
        state = lifecycle.apply_event(state, BillingEvent.PAYMENT_COMPLETED, NOW + timedelta(days=3))

        assert state.status == MembershipStatus.ACTIVE
        assert state.membership_months == 3

    def test_grace_expiry_resets_ladder(self, lifecycle):
        """Test an unpaid grace period lapses and resets."""
        state = lifecycle.apply_event(active(5), BillingEvent.PAYMENT_FAILED, NOW)
        state = lifecycle.refresh(state, NOW + timedelta(days=7))

        assert state.status == MembershipStatus.LAPSED
        assert state.is_member is False
        assert state.membership_months == 0

    def test_grace_expiry_without_reset(self):
        """Test a policy that keeps months across a payment lapse."""
        lifecycle = MembershipLifecycle(LapsePolicy(reset_on_payment_failure=False))
        state = lifecycle.apply_event(active(5), BillingEvent.PAYMENT_FAILED, NOW)
        state = lifecycle.refresh(state, NOW + timedelta(days=8))

        assert state.status == MembershipStatus.LAPSED
        assert state.membership_months == 5

        renewed = lifecycle.apply_event(state, BillingEvent.PAYMENT_COMPLETED, NOW + timedelta(days=9), MembershipTier.DELUXE)
        assert renewed.membership_months == 5

    def test_zero_grace_lapses_immediately(self):
        """Test a zero-day grace period."""
        lifecycle = MembershipLifecycle(LapsePolicy(grace_period_days=0))
        state = lifecycle.apply_event(active(5), BillingEvent.PAYMENT_FAILED, NOW)

        assert state.status == MembershipStatus.LAPSED
        assert state.membership_months == 0

    def test_cancellation_then_expiry(self, lifecycle):
        """Test cancelled memberships run to the end of the period."""
        state = lifecycle.apply_event(active(4), BillingEvent.CANCELLED, NOW)
        assert state.status == MembershipStatus.CANCELLED_PENDING
        assert state.is_member is True

        state = lifecycle.apply_event(state, BillingEvent.EXPIRED, NOW + timedelta(days=20))
        assert state.status == MembershipStatus.LAPSED
        assert state.membership_months == 0

    def test_cancellation_without_reset(self):
        """Test a policy that keeps months across a cancellation."""
        lifecycle = MembershipLifecycle(LapsePolicy(reset_on_cancellation=False))
        state = lifecycle.apply_event(active(4), BillingEvent.CANCELLED, NOW)
        state = lifecycle.apply_event(state, BillingEvent.EXPIRED, NOW + timedelta(days=20))

        assert state.membership_months == 4
        assert state.tier == MembershipTier.NONE
