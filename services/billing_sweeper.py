"""
Billing Conversion Sweeper - converts expired trials into paid Stripe subscriptions
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings, PLAN_BASIC
from crud.profile import ProfileRepository
from errors import PaymentProviderError
from models.enums import SubscriptionStatus, TRIAL_STATUSES
from models.profile import ProfileSnapshot
from services.payment_provider import PaymentProvider
from services.trial_engine import TrialEvent, transition

logger = logging.getLogger(__name__)

SUCCESS = "success"
ERROR = "error"


@dataclass
class SweepResult:
    profile_id: str
    email: str
    status: str
    detail: str
    subscription_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "profile_id": self.profile_id,
            "email": self.email,
            "status": self.status,
            "detail": self.detail,
            "subscription_id": self.subscription_id,
        }


@dataclass
class SweepReport:
    results: List[SweepResult] = field(default_factory=list)
    expired_marked: int = 0

    @property
    def message(self) -> str:
        if not self.results:
            return "No expired trials found"
        failed = sum(1 for r in self.results if r.status == ERROR)
        return f"Processed {len(self.results)} expired trials ({failed} failed)"

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "expired_marked": self.expired_marked,
            "results": [r.to_dict() for r in self.results],
        }


class BillingSweeper:
    """
    One sweep = one pass over trials that expired within the window.

    Each profile is converted in its own commit; a provider failure leaves the
    profile trialing so the next run inside the window picks it up again. The
    scheduler is responsible for never running two sweeps at once.
    """

    def __init__(
        self,
        db: AsyncSession,
        provider: PaymentProvider,
        price_id: Optional[str] = None,
        window: Optional[timedelta] = None,
        plan: str = PLAN_BASIC,
    ):
        """
        Args:
            db: AsyncSession used for all profile reads and writes
            provider: Payment provider adapter
            price_id: Stripe price for the converted plan (defaults from settings)
            window: How far back expired trials are still converted
            plan: Plan recorded on converted profiles
        """
        self.db = db
        self.provider = provider
        self.repo = ProfileRepository(db)
        self.plan = plan
        self.price_id = price_id or settings.price_for_plan(plan)
        self.window = window or timedelta(minutes=settings.sweep_window_minutes)

    async def sweep(self, now: Optional[datetime] = None) -> SweepReport:
        """
        Convert every trialing profile whose trial expired in ``[now - window, now)``.

        Args:
            now: Sweep time (defaults to the current UTC time)

        Returns:
            SweepReport with one result per candidate

        Raises:
            RuntimeError: If no Stripe price is configured for the plan
        """
        if not self.price_id:
            raise RuntimeError(f"No Stripe price configured for plan '{self.plan}'")

        now = now or datetime.now(timezone.utc)
        candidates = await self.repo.list_conversion_candidates(now, self.window)
        logger.info(f"Billing sweep at {now.isoformat()}: {len(candidates)} candidate(s)")

        report = SweepReport()
        for profile in candidates:
            result = await self._convert(profile, now)
            report.results.append(result)

        report.expired_marked = await self._mark_stale_trials(now)
        return report

    async def _convert(self, profile: ProfileSnapshot, now: datetime) -> SweepResult:
        try:
            customer_id = await self._ensure_customer(profile)
            subscription_id = await self.provider.create_subscription(
                customer_id,
                self.price_id,
                trial_end="now",
                metadata={"profile_id": profile.id, "auto_billing": "true"},
                idempotency_key=self._conversion_key(profile),
            )

            change = transition(
                profile,
                TrialEvent.PAYMENT_CONVERTED,
                now,
                subscription_id=subscription_id,
                customer_id=customer_id,
                plan=self.plan,
            )
            updated = await self.repo.apply_transition(profile.id, change, TRIAL_STATUSES)
            await self.db.commit()
        except PaymentProviderError as e:
            await self.db.rollback()
            logger.warning(f"Auto-billing failed for profile {profile.id}: {e}")
            return SweepResult(profile.id, profile.email, ERROR, str(e))
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Database error converting profile {profile.id}: {e}", exc_info=True)
            return SweepResult(profile.id, profile.email, ERROR, "Database error")

        if not updated:
            # A webhook moved the profile between the candidate query and this write
            logger.info(f"Profile {profile.id} was already converted; subscription {subscription_id}")
            return SweepResult(profile.id, profile.email, SUCCESS, "Already converted", subscription_id)

        logger.info(f"Auto-billing created for profile {profile.id} ({profile.email}): {subscription_id}")
        return SweepResult(profile.id, profile.email, SUCCESS, "Subscription created", subscription_id)

    async def _ensure_customer(self, profile: ProfileSnapshot) -> str:
        if profile.stripe_customer_id:
            return profile.stripe_customer_id
        customer_id = await self.provider.create_customer(
            profile.email,
            metadata={"profile_id": profile.id},
            idempotency_key=f"customer-{profile.id}",
        )
        # Persist before subscribing so a later retry reuses this customer
        await self.repo.set_customer_id(profile.id, customer_id)
        await self.db.commit()
        return customer_id

    @staticmethod
    def _conversion_key(profile: ProfileSnapshot) -> str:
        return f"trial-conversion-{profile.id}-{int(profile.trial_expires_at.timestamp())}"

    async def _mark_stale_trials(self, now: datetime) -> int:
        """Write trial_expired for trials that fell out of the conversion window."""
        marked = 0
        for profile in await self.repo.list_stale_trials(now - self.window):
            change = transition(profile, TrialEvent.EXPIRY_OBSERVED, now)
            if await self.repo.apply_transition(profile.id, change, [SubscriptionStatus.TRIALING]):
                marked += 1
        if marked:
            await self.db.commit()
            logger.info(f"Marked {marked} trial(s) as expired after missing the conversion window")
        return marked
