"""
Domain exceptions shared by services and routers
"""
from typing import Optional


class TrialAdmissionError(Exception):
    """
    Creation of a billable entity was refused.

    ``code`` is the machine-readable reason the client uses to decide which
    upgrade prompt to show.
    """
    code = "admission_denied"
    upgrade_required = True
    default_message = "Creation is not allowed for this account."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class TrialLimitReachedError(TrialAdmissionError):
    code = "limit_reached"
    default_message = "Trial limit reached. Upgrade your plan to continue."

    def __init__(self, limit: int, message: Optional[str] = None):
        self.limit = limit
        super().__init__(message or f"Trial limit ({limit}) reached. Upgrade your plan to continue.")


class TrialExpiredError(TrialAdmissionError):
    code = "trial_expired"
    default_message = "Trial expired. Upgrade your plan to continue."


class SubscriptionInactiveError(TrialAdmissionError):
    code = "subscription_inactive"
    default_message = "Subscription is inactive. Renew your plan to continue."


class ReadOnlyAccountError(TrialAdmissionError):
    code = "read_only"
    upgrade_required = False
    default_message = "Demo accounts are read-only."


class EmailUnconfirmedError(TrialAdmissionError):
    code = "email_unconfirmed"
    upgrade_required = False
    default_message = "Confirm your email address to start the trial."


ADMISSION_ERRORS = {
    cls.code: cls
    for cls in (
        TrialLimitReachedError,
        TrialExpiredError,
        SubscriptionInactiveError,
        ReadOnlyAccountError,
        EmailUnconfirmedError,
    )
}


class IllegalTransitionError(Exception):
    """A lifecycle event does not apply to the profile's current state."""

    def __init__(self, status, event):
        self.status = status
        self.event = event
        super().__init__(f"Event '{event.value}' is not allowed from status '{status.value}'")


class PaymentProviderError(Exception):
    """A payment provider call failed or timed out."""


class ProfileNotFoundError(Exception):
    def __init__(self, profile_id: str):
        self.profile_id = profile_id
        super().__init__(f"Profile not found: {profile_id}")


class ReferencedEntityNotFoundError(Exception):
    """A client_id/case_id on a new row does not name one of the caller's own rows."""

    def __init__(self, field: str, value: str):
        self.field = field
        self.value = value
        super().__init__(f"{field} '{value}' not found")
