"""
Identity Service - signup, login and the email-confirmed event that starts a trial
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from auth_utils import hash_password, verify_password
from config.settings import settings
from crud.profile import ProfileRepository
from crud.user import UserRepository
from database_models import Profile, User
from errors import ProfileNotFoundError
from models.enums import SubscriptionStatus
from models.profile import ProfileSnapshot
from services.trial_engine import TrialEvent, signup_fields, transition

logger = logging.getLogger(__name__)


class EmailAlreadyRegisteredError(Exception):
    pass


class IdentityService:
    """
    Local identity provider. Emits the two lifecycle events the trial engine
    consumes: signup (profile created unconfirmed) and email_confirmed.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.user_repo = UserRepository(db)
        self.profile_repo = ProfileRepository(db)

    async def signup(self, email: str, password: str) -> Tuple[User, Profile]:
        """
        Create the identity record and its unconfirmed profile.

        Raises:
            EmailAlreadyRegisteredError: If the email is taken
        """
        email = email.strip().lower()
        if await self.user_repo.get_user_by_email(email):
            raise EmailAlreadyRegisteredError(email)

        user = await self.user_repo.create_user(email, hash_password(password))
        profile = await self.profile_repo.create_profile(signup_fields(user.id, email))
        logger.info(f"Signup: user {user.id} created with unconfirmed profile")
        return user, profile

    async def authenticate(self, email: str, password: str) -> Optional[User]:
        user = await self.user_repo.get_user_by_email(email.strip().lower())
        if not user or not verify_password(password, user.hashed_password):
            return None
        return user

    async def confirm_email(self, user_id: str, now: Optional[datetime] = None) -> ProfileSnapshot:
        """
        Handle the email-confirmed event.

        Safe to call repeatedly: only the first call moves the profile from
        unconfirmed to trialing.

        Returns:
            The profile snapshot after the event

        Raises:
            ProfileNotFoundError: If the user or profile does not exist
        """
        now = now or datetime.now(timezone.utc)
        user = await self.user_repo.get_user_by_id(user_id)
        if user is None:
            raise ProfileNotFoundError(user_id)
        await self.user_repo.mark_email_confirmed(user, now)

        snapshot = await self.profile_repo.get_snapshot(user_id)
        if snapshot is None:
            raise ProfileNotFoundError(user_id)

        change = transition(
            snapshot,
            TrialEvent.EMAIL_CONFIRMED,
            now,
            trial_days=settings.trial_days,
            trial_limit=settings.trial_limit,
        )
        if await self.profile_repo.apply_transition(user_id, change, [SubscriptionStatus.UNCONFIRMED]):
            logger.info(f"Trial started for {user_id}, expires {change.updates['trial_expires_at'].isoformat()}")
            snapshot = await self.profile_repo.get_snapshot(user_id)
        else:
            logger.info(f"Email confirmation for {user_id} ignored; profile is {snapshot.subscription_status.value}")
        return snapshot
