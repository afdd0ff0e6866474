"""
Unit tests for UserRepository authentication operations
"""
import pytest
from crud.user import UserRepository
from auth_utils import hash_password, verify_password
from tests.conftest import T0


@pytest.mark.asyncio
async def test_create_and_get_user(test_db):
    """
    Test creating a new user and retrieving it by email.

    This test verifies:
    - User creation via UserRepository.create_user
    - User retrieval via UserRepository.get_user_by_email
    - Email is stored lowercased
    """
    user_repo = UserRepository(test_db)

    test_email = "Partner@Example.com"
    hashed_pwd = hash_password("test_password_123")

    created_user = await user_repo.create_user(test_email, hashed_pwd)

    assert created_user is not None
    assert created_user.email == test_email.lower()
    assert created_user.hashed_password == hashed_pwd
    assert created_user.email_confirmed_at is None

    await test_db.commit()

    # Lookup is case-insensitive
    retrieved_user = await user_repo.get_user_by_email(test_email)

    assert retrieved_user is not None
    assert retrieved_user.id == created_user.id


@pytest.mark.asyncio
async def test_login_verification(test_db):
    """
    Test password verification for login.

    This test verifies:
    - Password hashing and storage
    - verify_password accepts the right password and rejects a wrong one
    """
    user_repo = UserRepository(test_db)

    test_password = "secure_password_456"
    created_user = await user_repo.create_user("login_test@example.com", hash_password(test_password))
    await test_db.commit()

    retrieved_user = await user_repo.get_user_by_id(created_user.id)

    assert verify_password(test_password, retrieved_user.hashed_password) is True
    assert verify_password("wrong_password", retrieved_user.hashed_password) is False


@pytest.mark.asyncio
async def test_mark_email_confirmed_only_once(test_db):
    user_repo = UserRepository(test_db)
    user = await user_repo.create_user("confirm@example.com", hash_password("x"))

    assert await user_repo.mark_email_confirmed(user, T0) is True
    assert await user_repo.mark_email_confirmed(user, T0.replace(hour=12)) is False
    assert user.email_confirmed_at == T0
