from enum import Enum


class SubscriptionStatus(str, Enum):
    UNCONFIRMED = "unconfirmed"
    TRIALING = "trialing"
    TRIAL_EXPIRED = "trial_expired"
    ACTIVE = "active"
    INACTIVE = "inactive"


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"
    DEMO = "demo"


class EntityType(str, Enum):
    """Billable entity types counted against the trial limit."""
    CLIENT = "client"
    CASE = "case"
    DOCUMENT = "document"
    BILLING_ENTRY = "billing_entry"


# Statuses that carry trial fields
TRIAL_STATUSES = frozenset({SubscriptionStatus.TRIALING, SubscriptionStatus.TRIAL_EXPIRED})
