"""
Trial State Transition Engine

Single authority over a profile's subscription_status. Everything here is pure:
callers pass the profile snapshot and the current time, and get back the status
or the column updates to persist. Persistence is the caller's job.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from config.settings import DEFAULT_TRIAL_DAYS, DEFAULT_TRIAL_LIMIT, PLAN_BASIC
from errors import IllegalTransitionError
from models.enums import Role, SubscriptionStatus, TRIAL_STATUSES
from models.profile import ProfileSnapshot, as_utc


class TrialEvent(str, Enum):
    SIGNUP = "signup"
    EMAIL_CONFIRMED = "email_confirmed"
    EXPIRY_OBSERVED = "expiry_observed"
    PAYMENT_CONVERTED = "payment_converted"
    PAYMENT_CANCELED = "payment_canceled"
    ADMIN_OVERRIDE = "admin_override"


@dataclass(frozen=True)
class Transition:
    """Outcome of applying an event: target status plus column updates."""
    event: TrialEvent
    status: SubscriptionStatus
    updates: dict = field(default_factory=dict)

    @property
    def changed(self) -> bool:
        return bool(self.updates)


def derive_status(profile: ProfileSnapshot, now: datetime) -> SubscriptionStatus:
    """
    Current lifecycle status of a profile.

    A stored ``trialing`` whose expiry has been reached reads as
    ``trial_expired``. Trial validity is the half-open interval
    ``[confirmed, trial_expires_at)``, so ``now == trial_expires_at`` is expired.
    """
    status = profile.subscription_status
    if status == SubscriptionStatus.TRIALING and as_utc(now) >= profile.trial_expires_at:
        return SubscriptionStatus.TRIAL_EXPIRED
    return status


def days_left(profile: ProfileSnapshot, now: datetime) -> int:
    """Whole days remaining in the trial, rounded up. Zero outside a live trial."""
    if derive_status(profile, now) != SubscriptionStatus.TRIALING:
        return 0
    remaining = (profile.trial_expires_at - as_utc(now)).total_seconds()
    return max(0, math.ceil(remaining / 86400))


def signup_fields(user_id: str, email: str, role: Role = Role.USER) -> dict:
    """Column values for the profile row created at signup (no trial fields)."""
    return {
        "id": user_id,
        "email": email.lower(),
        "role": role,
        "subscription_status": SubscriptionStatus.UNCONFIRMED,
        "subscription_plan": None,
        "trial_expires_at": None,
    }


def _noop(event: TrialEvent, profile: ProfileSnapshot) -> Transition:
    return Transition(event=event, status=profile.subscription_status)


def transition(
    profile: ProfileSnapshot,
    event: TrialEvent,
    now: datetime,
    *,
    subscription_id: Optional[str] = None,
    customer_id: Optional[str] = None,
    plan: Optional[str] = None,
    target: Optional[SubscriptionStatus] = None,
    trial_days: int = DEFAULT_TRIAL_DAYS,
    trial_limit: int = DEFAULT_TRIAL_LIMIT,
) -> Transition:
    """
    Apply a lifecycle event to a profile.

    Args:
        profile: Current profile snapshot
        event: Event to apply
        now: Current time (timezone-aware)
        subscription_id: Stripe subscription id (payment_converted, admin_override)
        customer_id: Stripe customer id to record alongside the subscription
        plan: Plan identifier for payment_converted (defaults to basic)
        target: Requested status for admin_override (active or inactive)
        trial_days: Trial length applied on email confirmation
        trial_limit: Entity cap applied on email confirmation

    Returns:
        Transition with the resulting status and the updates to persist.
        An empty ``updates`` dict means the event was a no-op.

    Raises:
        IllegalTransitionError: If the event cannot apply to the current status
    """
    now = as_utc(now)
    status = profile.subscription_status

    if event == TrialEvent.SIGNUP:
        # Profile rows are created by signup_fields; a replayed signup is a no-op
        return _noop(event, profile)

    if event == TrialEvent.EMAIL_CONFIRMED:
        # Identity providers retry confirmation hooks
        if status != SubscriptionStatus.UNCONFIRMED:
            return _noop(event, profile)
        return Transition(
            event=event,
            status=SubscriptionStatus.TRIALING,
            updates={
                "subscription_status": SubscriptionStatus.TRIALING,
                "trial_expires_at": now + timedelta(days=trial_days),
                "trial_limit": trial_limit,
            },
        )

    if event == TrialEvent.EXPIRY_OBSERVED:
        if status == SubscriptionStatus.TRIALING and derive_status(profile, now) == SubscriptionStatus.TRIAL_EXPIRED:
            return Transition(
                event=event,
                status=SubscriptionStatus.TRIAL_EXPIRED,
                updates={"subscription_status": SubscriptionStatus.TRIAL_EXPIRED},
            )
        return _noop(event, profile)

    if event == TrialEvent.PAYMENT_CONVERTED:
        if not subscription_id:
            raise ValueError("payment_converted requires a subscription_id")
        if status == SubscriptionStatus.UNCONFIRMED:
            raise IllegalTransitionError(status, event)
        if status == SubscriptionStatus.ACTIVE and profile.stripe_subscription_id == subscription_id:
            return _noop(event, profile)
        updates = {
            "subscription_status": SubscriptionStatus.ACTIVE,
            "subscription_plan": plan or profile.subscription_plan or PLAN_BASIC,
            "stripe_subscription_id": subscription_id,
            "trial_expires_at": None,
        }
        if customer_id and customer_id != profile.stripe_customer_id:
            updates["stripe_customer_id"] = customer_id
        return Transition(event=event, status=SubscriptionStatus.ACTIVE, updates=updates)

    if event == TrialEvent.PAYMENT_CANCELED:
        if status == SubscriptionStatus.INACTIVE:
            return _noop(event, profile)
        if status != SubscriptionStatus.ACTIVE:
            raise IllegalTransitionError(status, event)
        return Transition(
            event=event,
            status=SubscriptionStatus.INACTIVE,
            updates={"subscription_status": SubscriptionStatus.INACTIVE, "subscription_plan": None},
        )

    if event == TrialEvent.ADMIN_OVERRIDE:
        return _admin_override(profile, target, subscription_id, plan)

    raise IllegalTransitionError(status, event)


def _admin_override(
    profile: ProfileSnapshot,
    target: Optional[SubscriptionStatus],
    subscription_id: Optional[str],
    plan: Optional[str],
) -> Transition:
    event = TrialEvent.ADMIN_OVERRIDE
    if target not in (SubscriptionStatus.ACTIVE, SubscriptionStatus.INACTIVE):
        raise IllegalTransitionError(profile.subscription_status, event)

    updates: dict = {"subscription_status": target}
    if profile.subscription_status in TRIAL_STATUSES:
        updates["trial_expires_at"] = None

    if target == SubscriptionStatus.ACTIVE:
        sub_id = subscription_id or profile.stripe_subscription_id
        if not sub_id and profile.role != Role.DEMO:
            # Active accounts must be backed by a billing subscription
            raise IllegalTransitionError(profile.subscription_status, event)
        if sub_id:
            updates["stripe_subscription_id"] = sub_id
        updates["subscription_plan"] = plan or profile.subscription_plan or PLAN_BASIC
    else:
        updates["subscription_plan"] = None

    return Transition(event=event, status=target, updates=updates)
