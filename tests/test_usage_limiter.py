"""
Tests for the admission check on billable entity creation
"""
from datetime import timedelta

import pytest

from crud.entities import EntityRepository
from errors import ReferencedEntityNotFoundError, TrialExpiredError, TrialLimitReachedError
from models.enums import EntityType, Role, SubscriptionStatus
from models.profile import ProfileSnapshot
from services.usage_limiter import can_create, ensure_can_create
from tests.conftest import T0, seed_profile


def trial_profile(expires_in=timedelta(days=3), limit=20, **kwargs):
    return ProfileSnapshot(
        id="user-1",
        email="lawyer@example.com",
        subscription_status=SubscriptionStatus.TRIALING,
        trial_expires_at=T0 + expires_in,
        trial_limit=limit,
        **kwargs,
    )


def test_trial_under_limit_is_allowed():
    decision = can_create(trial_profile(), current_count=19, now=T0)
    assert decision.allowed
    assert decision.code is None


def test_trial_at_limit_is_denied():
    decision = can_create(trial_profile(), current_count=20, now=T0)
    assert not decision.allowed
    assert decision.code == "limit_reached"
    assert "20" in decision.reason


def test_trial_expired_one_second_ago_is_denied_even_with_no_usage():
    profile = trial_profile(expires_in=timedelta(seconds=-1))
    decision = can_create(profile, current_count=0, now=T0)
    assert not decision.allowed
    assert decision.code == "trial_expired"


def test_active_subscription_has_no_limit():
    profile = ProfileSnapshot(
        id="user-1",
        email="lawyer@example.com",
        subscription_status=SubscriptionStatus.ACTIVE,
        stripe_subscription_id="sub_1",
    )
    assert can_create(profile, current_count=500, now=T0).allowed


def test_inactive_is_denied():
    profile = ProfileSnapshot(id="user-1", email="lawyer@example.com", subscription_status=SubscriptionStatus.INACTIVE)
    assert can_create(profile, current_count=0, now=T0).code == "subscription_inactive"


def test_unconfirmed_is_denied():
    profile = ProfileSnapshot(id="user-1", email="lawyer@example.com", subscription_status=SubscriptionStatus.UNCONFIRMED)
    assert can_create(profile, current_count=0, now=T0).code == "email_unconfirmed"


def test_demo_account_is_read_only_regardless_of_status():
    profile = ProfileSnapshot(
        id="demo-1",
        email="demo@example.com",
        subscription_status=SubscriptionStatus.ACTIVE,
        role=Role.DEMO,
    )
    decision = can_create(profile, current_count=0, now=T0)
    assert not decision.allowed
    assert decision.code == "read_only"


def test_custom_trial_limit_is_respected():
    assert not can_create(trial_profile(limit=5), current_count=5, now=T0).allowed
    assert can_create(trial_profile(limit=5), current_count=4, now=T0).allowed


def test_ensure_can_create_raises_typed_error():
    with pytest.raises(TrialLimitReachedError) as exc_info:
        ensure_can_create(trial_profile(), current_count=20, now=T0)
    assert exc_info.value.limit == 20

    with pytest.raises(TrialExpiredError):
        ensure_can_create(trial_profile(expires_in=timedelta(0)), current_count=0, now=T0)


@pytest.mark.asyncio
async def test_create_limited_enforces_limit_per_entity_type(test_db):
    """
    This test verifies:
    - The insert path re-checks admission inside its transaction
    - Each entity type has its own count against the limit
    """
    user_id = await seed_profile(
        test_db, status="trialing", trial_expires_at=T0 + timedelta(days=3), trial_limit=2
    )
    repo = EntityRepository(test_db)

    for i in range(2):
        await repo.create_limited(user_id, EntityType.CLIENT, {"name": f"Client {i}"}, T0)
    await test_db.commit()

    with pytest.raises(TrialLimitReachedError):
        await repo.create_limited(user_id, EntityType.CLIENT, {"name": "One too many"}, T0)
    await test_db.rollback()

    # Cases are counted separately from clients
    case = await repo.create_limited(user_id, EntityType.CASE, {"title": "Divorce"}, T0)
    await test_db.commit()

    assert case.user_id == user_id
    assert await repo.count_all(user_id) == {"client": 2, "case": 1, "document": 0, "billing_entry": 0}


@pytest.mark.asyncio
async def test_create_limited_rejects_references_to_other_users_rows(test_db):
    expires = T0 + timedelta(days=3)
    owner_id = await seed_profile(test_db, email="owner@example.com", status="trialing", trial_expires_at=expires)
    other_id = await seed_profile(test_db, email="other@example.com", status="trialing", trial_expires_at=expires)
    repo = EntityRepository(test_db)

    client = await repo.create_limited(owner_id, EntityType.CLIENT, {"name": "Owner's client"}, T0)
    case = await repo.create_limited(owner_id, EntityType.CASE, {"title": "Estate", "client_id": client.id}, T0)
    await test_db.commit()
    client_id, case_id = client.id, case.id

    with pytest.raises(ReferencedEntityNotFoundError) as exc_info:
        await repo.create_limited(
            other_id, EntityType.BILLING_ENTRY, {"client_id": client_id, "hours": 1.0, "rate": 50.0}, T0
        )
    assert exc_info.value.field == "client_id"
    await test_db.rollback()

    with pytest.raises(ReferencedEntityNotFoundError) as exc_info:
        await repo.create_limited(other_id, EntityType.DOCUMENT, {"name": "Will", "case_id": case_id}, T0)
    assert exc_info.value.field == "case_id"
    await test_db.rollback()

    assert await repo.count_all(other_id) == {"client": 0, "case": 0, "document": 0, "billing_entry": 0}

    entry = await repo.create_limited(
        owner_id, EntityType.BILLING_ENTRY, {"client_id": client_id, "case_id": case_id, "hours": 2.0, "rate": 50.0}, T0
    )
    assert entry.case_id == case_id
