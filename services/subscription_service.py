"""
Subscription Service - reconciles Stripe webhook events and admin overrides
into profile state through the trial engine
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import PLAN_BASIC
from crud.profile import ProfileRepository
from errors import IllegalTransitionError, ProfileNotFoundError
from models.enums import SubscriptionStatus
from models.profile import ProfileSnapshot
from services.trial_engine import TrialEvent, transition

logger = logging.getLogger(__name__)

# Stripe subscription statuses that keep an account usable
ACTIVE_STRIPE_STATUSES = {"active", "trialing", "past_due"}

ALL_STATUSES = list(SubscriptionStatus)


def _field(obj: Any, key: str) -> Any:
    """Read a key from a Stripe object or plain dict, None when absent."""
    if obj is None:
        return None
    try:
        return obj[key]
    except (KeyError, TypeError):
        return None


def _id_of(value: Any) -> Optional[str]:
    # Stripe fields are either an id string or an expanded object
    if value is None or isinstance(value, str):
        return value
    return _field(value, "id")


class SubscriptionService:
    """
    Service class applying payment-side events to profiles.
    Shares the trial engine with the billing sweeper, so a webhook and a
    sweep that convert the same profile produce the same row.
    """

    def __init__(self, db: AsyncSession):
        """
        Initialize the subscription service.

        Args:
            db: AsyncSession instance for database operations
        """
        self.db = db
        self.repo = ProfileRepository(db)

    async def handle_event(self, event: Any, now: Optional[datetime] = None) -> dict:
        """
        Process a verified Stripe webhook event.

        Args:
            event: Stripe Event (or dict with the same shape)
            now: Processing time

        Returns:
            Normalized response: {"data": {...}, "is_error": False} or {"error": str, "is_error": True}
        """
        now = now or datetime.now(timezone.utc)
        event_type = _field(event, "type")
        obj = _field(_field(event, "data"), "object")
        logger.info(f"Processing Stripe webhook event: {event_type}")

        try:
            if event_type == "checkout.session.completed":
                return await self._checkout_completed(obj, now)
            if event_type in ("customer.subscription.created", "customer.subscription.updated"):
                return await self._subscription_changed(obj, now)
            if event_type == "customer.subscription.deleted":
                return await self._subscription_deleted(obj, now)
        except ProfileNotFoundError as e:
            logger.error(f"Webhook {event_type}: {e}")
            return {"error": str(e), "is_error": True}
        except IllegalTransitionError as e:
            # Out-of-order delivery; the profile state wins
            logger.warning(f"Webhook {event_type} ignored: {e}")
            return {"data": {"ignored": True, "reason": str(e)}, "is_error": False}

        logger.debug(f"Unhandled event type: {event_type}")
        return {"data": {"ignored": True}, "is_error": False}

    async def _resolve_profile(self, obj: Any, email: Optional[str] = None) -> ProfileSnapshot:
        metadata = _field(obj, "metadata")
        profile_id = _field(metadata, "profile_id")
        customer_id = _id_of(_field(obj, "customer"))

        profile = None
        if profile_id:
            profile = await self.repo.get_by_id(profile_id)
        if profile is None and customer_id:
            profile = await self.repo.get_by_customer_id(customer_id)
        if profile is None and email:
            profile = await self.repo.get_by_email(email)
        if profile is None:
            raise ProfileNotFoundError(profile_id or customer_id or email or "<unknown>")
        return ProfileSnapshot.model_validate(profile)

    async def _convert(self, profile: ProfileSnapshot, subscription_id: str, customer_id: Optional[str],
                       plan: Optional[str], now: datetime) -> dict:
        change = transition(
            profile,
            TrialEvent.PAYMENT_CONVERTED,
            now,
            subscription_id=subscription_id,
            customer_id=customer_id,
            plan=plan,
        )
        updated = await self.repo.apply_transition(profile.id, change, ALL_STATUSES)
        if updated:
            logger.info(f"Subscription {subscription_id} activated for profile {profile.id}")
        return {"data": {"profile_id": profile.id, "status": change.status.value, "updated": updated}, "is_error": False}

    async def _checkout_completed(self, session: Any, now: datetime) -> dict:
        subscription_id = _id_of(_field(session, "subscription"))
        if not subscription_id:
            return {"data": {"ignored": True, "reason": "no subscription on session"}, "is_error": False}
        email = _field(_field(session, "customer_details"), "email")
        profile = await self._resolve_profile(session, email=email)
        plan = _field(_field(session, "metadata"), "plan") or PLAN_BASIC
        return await self._convert(profile, subscription_id, _id_of(_field(session, "customer")), plan, now)

    async def _subscription_changed(self, subscription: Any, now: datetime) -> dict:
        profile = await self._resolve_profile(subscription)
        stripe_status = _field(subscription, "status")
        if stripe_status in ACTIVE_STRIPE_STATUSES:
            plan = _field(_field(subscription, "metadata"), "plan")
            return await self._convert(profile, _field(subscription, "id"),
                                       _id_of(_field(subscription, "customer")), plan, now)
        return await self._cancel_current(profile, subscription, now)

    async def _subscription_deleted(self, subscription: Any, now: datetime) -> dict:
        profile = await self._resolve_profile(subscription)
        return await self._cancel_current(profile, subscription, now)

    async def _cancel_current(self, profile: ProfileSnapshot, subscription: Any, now: datetime) -> dict:
        if profile.stripe_subscription_id and profile.stripe_subscription_id != _field(subscription, "id"):
            # An older subscription ending does not affect the current one
            return {"data": {"ignored": True, "reason": "stale subscription"}, "is_error": False}
        return await self._cancel(profile, now)

    async def _cancel(self, profile: ProfileSnapshot, now: datetime) -> dict:
        change = transition(profile, TrialEvent.PAYMENT_CANCELED, now)
        updated = await self.repo.apply_transition(profile.id, change, [SubscriptionStatus.ACTIVE])
        if updated:
            logger.info(f"Subscription canceled for profile {profile.id}")
        return {"data": {"profile_id": profile.id, "status": change.status.value, "updated": updated}, "is_error": False}

    async def admin_override(
        self,
        profile_id: str,
        target: SubscriptionStatus,
        subscription_id: Optional[str] = None,
        plan: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ProfileSnapshot:
        """
        Manually set a profile active or inactive.

        Raises:
            ProfileNotFoundError: If the profile does not exist
            IllegalTransitionError: If the override would break profile invariants, or the
                profile changed status between the read and the write
        """
        now = now or datetime.now(timezone.utc)
        profile = await self.repo.get_snapshot(profile_id)
        if profile is None:
            raise ProfileNotFoundError(profile_id)
        change = transition(
            profile, TrialEvent.ADMIN_OVERRIDE, now, target=target, subscription_id=subscription_id, plan=plan
        )
        if not await self.repo.apply_transition(profile_id, change, [profile.subscription_status]):
            # The row moved on since it was read
            current = await self.repo.get_snapshot(profile_id)
            if current is None:
                raise ProfileNotFoundError(profile_id)
            logger.warning(f"Admin override for profile {profile_id} lost a race; status is now "
                           f"{current.subscription_status.value}")
            raise IllegalTransitionError(current.subscription_status, TrialEvent.ADMIN_OVERRIDE)
        logger.info(f"Admin override: profile {profile_id} set to {target.value}")
        return await self.repo.get_snapshot(profile_id)
