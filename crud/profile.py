"""
ProfileRepository for database operations on the Profile model
"""

from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from database_models import Profile
from models.enums import SubscriptionStatus
from models.profile import ProfileSnapshot
from services.trial_engine import Transition


def _select_profiles():
    # Always refresh rows already in the session; status updates bypass the identity map
    return select(Profile).execution_options(populate_existing=True)


class ProfileRepository:
    """
    Repository class for Profile database operations.
    All status changes go through apply_transition so that every caller
    (confirmation hook, webhook, sweeper, admin) writes the same way.
    """

    def __init__(self, db: AsyncSession):
        """
        Initialize the repository with a database session.

        Args:
            db: AsyncSession instance for database operations
        """
        self.db = db

    async def get_by_id(self, profile_id: str, for_update: bool = False) -> Optional[Profile]:
        """
        Retrieve a profile by id.

        Args:
            profile_id: Profile (user) id
            for_update: Lock the row until the surrounding transaction ends

        Returns:
            Profile object if found, None otherwise
        """
        stmt = _select_profiles().where(Profile.id == profile_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> Optional[Profile]:
        result = await self.db.execute(_select_profiles().where(Profile.email == email.lower()))
        return result.scalar_one_or_none()

    async def get_by_customer_id(self, customer_id: str) -> Optional[Profile]:
        result = await self.db.execute(_select_profiles().where(Profile.stripe_customer_id == customer_id))
        return result.scalars().first()

    async def get_snapshot(self, profile_id: str) -> Optional[ProfileSnapshot]:
        profile = await self.get_by_id(profile_id)
        return ProfileSnapshot.model_validate(profile) if profile else None

    async def create_profile(self, fields: dict) -> Profile:
        """
        Insert a new profile row.

        Args:
            fields: Column values, normally from trial_engine.signup_fields

        Returns:
            Created Profile object
        """
        profile = Profile(**fields)
        self.db.add(profile)
        await self.db.flush()
        await self.db.refresh(profile)
        return profile

    async def set_customer_id(self, profile_id: str, customer_id: str) -> None:
        """Record the Stripe customer id. Not a lifecycle change, so no status guard."""
        await self.db.execute(
            update(Profile)
            .where(Profile.id == profile_id)
            .values(stripe_customer_id=customer_id)
            .execution_options(synchronize_session=False)
        )

    async def apply_transition(
        self,
        profile_id: str,
        transition: Transition,
        expected_statuses: Iterable[SubscriptionStatus],
    ) -> bool:
        """
        Persist a transition with a conditional update.

        The row is only written while its stored status is still one of
        ``expected_statuses``; a concurrent writer that already moved it
        leaves the update matching zero rows.

        Args:
            profile_id: Profile to update
            transition: Output of trial_engine.transition
            expected_statuses: Statuses the row must currently hold

        Returns:
            True if the row was updated, False otherwise (including no-op transitions)
        """
        if not transition.changed:
            return False
        result = await self.db.execute(
            update(Profile)
            .where(
                Profile.id == profile_id,
                Profile.subscription_status.in_(list(expected_statuses)),
            )
            .values(**transition.updates)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def list_conversion_candidates(self, now: datetime, window: timedelta) -> List[ProfileSnapshot]:
        """
        Trialing profiles whose trial expired within ``[now - window, now)``.
        """
        result = await self.db.execute(
            _select_profiles()
            .where(
                Profile.subscription_status == SubscriptionStatus.TRIALING,
                Profile.trial_expires_at >= now - window,
                Profile.trial_expires_at < now,
            )
            .order_by(Profile.trial_expires_at)
        )
        return [ProfileSnapshot.model_validate(p) for p in result.scalars().all()]

    async def list_stale_trials(self, before: datetime) -> List[ProfileSnapshot]:
        """Trialing profiles whose trial expired before ``before``."""
        result = await self.db.execute(
            _select_profiles().where(
                Profile.subscription_status == SubscriptionStatus.TRIALING,
                Profile.trial_expires_at < before,
            )
        )
        return [ProfileSnapshot.model_validate(p) for p in result.scalars().all()]
