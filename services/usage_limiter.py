"""
Usage Limiter - admission check for billable entity creation
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from errors import (
    EmailUnconfirmedError,
    ReadOnlyAccountError,
    SubscriptionInactiveError,
    TrialAdmissionError,
    TrialExpiredError,
    TrialLimitReachedError,
)
from models.enums import SubscriptionStatus
from models.profile import ProfileSnapshot
from services.trial_engine import derive_status


@dataclass(frozen=True)
class AdmissionDecision:
    allowed: bool
    code: Optional[str] = None
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {"allowed": self.allowed, "code": self.code, "reason": self.reason}


def admission_error(profile: ProfileSnapshot, current_count: int, now: datetime) -> Optional[TrialAdmissionError]:
    """
    The error that blocks creation of one more entity, or None when allowed.

    Args:
        profile: Profile snapshot of the authenticated user
        current_count: How many entities of the requested type the user holds
        now: Current time

    Returns:
        A TrialAdmissionError subclass instance, or None
    """
    if profile.is_demo:
        return ReadOnlyAccountError()

    status = derive_status(profile, now)
    if status == SubscriptionStatus.ACTIVE:
        return None
    if status == SubscriptionStatus.INACTIVE:
        return SubscriptionInactiveError()
    if status == SubscriptionStatus.TRIAL_EXPIRED:
        return TrialExpiredError()
    if status == SubscriptionStatus.UNCONFIRMED:
        return EmailUnconfirmedError()

    if current_count >= profile.trial_limit:
        return TrialLimitReachedError(profile.trial_limit)
    return None


def can_create(profile: ProfileSnapshot, current_count: int, now: datetime) -> AdmissionDecision:
    """
    Advisory admission check.

    The insert path re-runs the same rule inside its transaction
    (EntityRepository.create_limited), which is the authoritative one.
    """
    error = admission_error(profile, current_count, now)
    if error is None:
        return AdmissionDecision(allowed=True)
    return AdmissionDecision(allowed=False, code=error.code, reason=error.message)


def ensure_can_create(profile: ProfileSnapshot, current_count: int, now: datetime) -> None:
    error = admission_error(profile, current_count, now)
    if error is not None:
        raise error
