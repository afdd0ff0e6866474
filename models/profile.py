"""
Profile value type shared by the trial engine, the usage limiter and the sweeper.
"""
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from models.enums import Role, SubscriptionStatus, TRIAL_STATUSES
from config.settings import DEFAULT_TRIAL_LIMIT


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes (SQLite round-trips) as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ProfileSnapshot(BaseModel):
    """
    Immutable view of a profile row.

    Built from the ORM row with ``ProfileSnapshot.model_validate(row)``. Rows
    that break the trial-field invariant are rejected here rather than deeper
    in the engine.
    """

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    email: str
    subscription_status: SubscriptionStatus
    subscription_plan: Optional[str] = None
    trial_expires_at: Optional[datetime] = None
    trial_limit: int = DEFAULT_TRIAL_LIMIT
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    role: Role = Role.USER
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("trial_expires_at", "created_at", "updated_at")
    @classmethod
    def _normalize_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v)

    @model_validator(mode="after")
    def _check_trial_fields(self):
        has_trial = self.subscription_status in TRIAL_STATUSES
        if has_trial and self.trial_expires_at is None:
            raise ValueError(f"{self.subscription_status.value} profile requires trial_expires_at")
        if not has_trial and self.trial_expires_at is not None:
            raise ValueError(f"{self.subscription_status.value} profile cannot carry trial_expires_at")
        if (
            self.subscription_status == SubscriptionStatus.ACTIVE
            and not self.stripe_subscription_id
            and self.role != Role.DEMO
        ):
            raise ValueError("active profile requires stripe_subscription_id")
        return self

    @property
    def is_demo(self) -> bool:
        return self.role == Role.DEMO

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN
