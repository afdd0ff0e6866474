"""
Unit tests for the trial state transition engine
"""
from datetime import timedelta

import pytest
from pydantic import ValidationError

from errors import IllegalTransitionError
from models.enums import Role, SubscriptionStatus
from models.profile import ProfileSnapshot
from services.trial_engine import (
    TrialEvent,
    days_left,
    derive_status,
    signup_fields,
    transition,
)
from tests.conftest import T0


def make_profile(status=SubscriptionStatus.TRIALING, trial_expires_at=None, **kwargs):
    if status in (SubscriptionStatus.TRIALING, SubscriptionStatus.TRIAL_EXPIRED) and trial_expires_at is None:
        trial_expires_at = T0 + timedelta(days=7)
    return ProfileSnapshot(
        id="user-1",
        email="lawyer@example.com",
        subscription_status=status,
        trial_expires_at=trial_expires_at,
        **kwargs,
    )


def test_derive_status_trial_live_before_expiry():
    profile = make_profile(trial_expires_at=T0 + timedelta(days=1))
    assert derive_status(profile, T0) == SubscriptionStatus.TRIALING


def test_derive_status_expired_at_exact_boundary():
    """
    Trial validity is half-open: at exactly trial_expires_at the trial is over.
    """
    profile = make_profile(trial_expires_at=T0)
    assert derive_status(profile, T0 - timedelta(seconds=1)) == SubscriptionStatus.TRIALING
    assert derive_status(profile, T0) == SubscriptionStatus.TRIAL_EXPIRED


def test_derive_status_is_pure():
    profile = make_profile(trial_expires_at=T0)
    first = derive_status(profile, T0 + timedelta(hours=1))
    second = derive_status(profile, T0 + timedelta(hours=1))
    assert first == second == SubscriptionStatus.TRIAL_EXPIRED
    # The stored status is untouched by the read
    assert profile.subscription_status == SubscriptionStatus.TRIALING


@pytest.mark.parametrize("status", [
    SubscriptionStatus.UNCONFIRMED,
    SubscriptionStatus.INACTIVE,
])
def test_derive_status_passes_through_non_trial_statuses(status):
    assert derive_status(make_profile(status=status), T0) == status


def test_derive_status_accepts_naive_expiry_from_database():
    # SQLite returns naive datetimes; the snapshot treats them as UTC
    profile = make_profile(trial_expires_at=T0.replace(tzinfo=None))
    assert profile.trial_expires_at.tzinfo is not None
    assert derive_status(profile, T0) == SubscriptionStatus.TRIAL_EXPIRED


def test_days_left_rounds_up_partial_days():
    profile = make_profile(trial_expires_at=T0 + timedelta(days=6, hours=1))
    assert days_left(profile, T0) == 7
    assert days_left(profile, T0 + timedelta(days=6, minutes=59)) == 1
    assert days_left(profile, T0 + timedelta(days=6, hours=1)) == 0


def test_days_left_zero_outside_trial():
    assert days_left(make_profile(status=SubscriptionStatus.UNCONFIRMED), T0) == 0


def test_signup_fields_start_unconfirmed_without_trial():
    fields = signup_fields("user-1", "Lawyer@Example.com")
    assert fields["subscription_status"] == SubscriptionStatus.UNCONFIRMED
    assert fields["trial_expires_at"] is None
    assert fields["email"] == "lawyer@example.com"


def test_email_confirmed_starts_trial():
    profile = make_profile(status=SubscriptionStatus.UNCONFIRMED)
    change = transition(profile, TrialEvent.EMAIL_CONFIRMED, T0, trial_days=7, trial_limit=20)

    assert change.status == SubscriptionStatus.TRIALING
    assert change.updates["trial_expires_at"] == T0 + timedelta(days=7)
    assert change.updates["trial_limit"] == 20


def test_email_confirmed_twice_is_noop():
    """
    A retried confirmation must not restart or extend the trial.
    """
    profile = make_profile(status=SubscriptionStatus.TRIALING, trial_expires_at=T0 + timedelta(days=7))
    change = transition(profile, TrialEvent.EMAIL_CONFIRMED, T0 + timedelta(days=3))

    assert not change.changed
    assert change.status == SubscriptionStatus.TRIALING


@pytest.mark.parametrize("status", [
    SubscriptionStatus.TRIAL_EXPIRED,
    SubscriptionStatus.INACTIVE,
])
def test_email_confirmed_never_restarts_a_trial(status):
    profile = make_profile(status=status)
    assert not transition(profile, TrialEvent.EMAIL_CONFIRMED, T0).changed


def test_expiry_observed_marks_expired_trial():
    profile = make_profile(trial_expires_at=T0)
    change = transition(profile, TrialEvent.EXPIRY_OBSERVED, T0)
    assert change.updates == {"subscription_status": SubscriptionStatus.TRIAL_EXPIRED}


def test_expiry_observed_before_expiry_is_noop():
    profile = make_profile(trial_expires_at=T0 + timedelta(seconds=1))
    assert not transition(profile, TrialEvent.EXPIRY_OBSERVED, T0).changed


@pytest.mark.parametrize("status", [
    SubscriptionStatus.TRIALING,
    SubscriptionStatus.TRIAL_EXPIRED,
    SubscriptionStatus.INACTIVE,
])
def test_payment_converted_activates(status):
    profile = make_profile(status=status)
    change = transition(
        profile, TrialEvent.PAYMENT_CONVERTED, T0, subscription_id="sub_1", customer_id="cus_1", plan="pro"
    )

    assert change.status == SubscriptionStatus.ACTIVE
    assert change.updates["stripe_subscription_id"] == "sub_1"
    assert change.updates["stripe_customer_id"] == "cus_1"
    assert change.updates["subscription_plan"] == "pro"
    # Active profiles never carry trial fields
    assert change.updates["trial_expires_at"] is None


def test_payment_converted_defaults_to_basic_plan():
    change = transition(make_profile(), TrialEvent.PAYMENT_CONVERTED, T0, subscription_id="sub_1")
    assert change.updates["subscription_plan"] == "basic"


def test_payment_converted_replay_is_noop():
    profile = make_profile(status=SubscriptionStatus.ACTIVE, stripe_subscription_id="sub_1")
    assert not transition(profile, TrialEvent.PAYMENT_CONVERTED, T0, subscription_id="sub_1").changed


def test_payment_converted_requires_subscription_id():
    with pytest.raises(ValueError):
        transition(make_profile(), TrialEvent.PAYMENT_CONVERTED, T0)


def test_payment_converted_from_unconfirmed_is_illegal():
    profile = make_profile(status=SubscriptionStatus.UNCONFIRMED)
    with pytest.raises(IllegalTransitionError):
        transition(profile, TrialEvent.PAYMENT_CONVERTED, T0, subscription_id="sub_1")


def test_payment_canceled_deactivates():
    profile = make_profile(status=SubscriptionStatus.ACTIVE, stripe_subscription_id="sub_1", subscription_plan="basic")
    change = transition(profile, TrialEvent.PAYMENT_CANCELED, T0)
    assert change.status == SubscriptionStatus.INACTIVE
    assert change.updates["subscription_plan"] is None


def test_payment_canceled_when_inactive_is_noop():
    profile = make_profile(status=SubscriptionStatus.INACTIVE)
    assert not transition(profile, TrialEvent.PAYMENT_CANCELED, T0).changed


def test_payment_canceled_during_trial_is_illegal():
    with pytest.raises(IllegalTransitionError):
        transition(make_profile(), TrialEvent.PAYMENT_CANCELED, T0)


def test_admin_override_to_active_requires_subscription():
    profile = make_profile(status=SubscriptionStatus.TRIAL_EXPIRED)
    with pytest.raises(IllegalTransitionError):
        transition(profile, TrialEvent.ADMIN_OVERRIDE, T0, target=SubscriptionStatus.ACTIVE)

    change = transition(
        profile, TrialEvent.ADMIN_OVERRIDE, T0, target=SubscriptionStatus.ACTIVE, subscription_id="sub_manual"
    )
    assert change.updates["subscription_status"] == SubscriptionStatus.ACTIVE
    assert change.updates["trial_expires_at"] is None


def test_admin_override_demo_may_be_active_without_subscription():
    profile = make_profile(status=SubscriptionStatus.INACTIVE, role=Role.DEMO)
    change = transition(profile, TrialEvent.ADMIN_OVERRIDE, T0, target=SubscriptionStatus.ACTIVE)
    assert change.status == SubscriptionStatus.ACTIVE
    assert "stripe_subscription_id" not in change.updates


def test_admin_override_cannot_restart_trial():
    profile = make_profile(status=SubscriptionStatus.TRIAL_EXPIRED)
    with pytest.raises(IllegalTransitionError):
        transition(profile, TrialEvent.ADMIN_OVERRIDE, T0, target=SubscriptionStatus.TRIALING)


def test_snapshot_rejects_trial_status_without_expiry():
    with pytest.raises(ValidationError):
        ProfileSnapshot(id="u", email="a@b.co", subscription_status=SubscriptionStatus.TRIALING)


def test_snapshot_rejects_expiry_outside_trial():
    with pytest.raises(ValidationError):
        ProfileSnapshot(
            id="u", email="a@b.co", subscription_status=SubscriptionStatus.INACTIVE, trial_expires_at=T0
        )


def test_snapshot_rejects_active_without_subscription():
    with pytest.raises(ValidationError):
        ProfileSnapshot(id="u", email="a@b.co", subscription_status=SubscriptionStatus.ACTIVE)
