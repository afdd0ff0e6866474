"""
UserRepository for database operations on the identity User model
"""

from datetime import datetime
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from database_models import User


class UserRepository:
    """
    Repository class for User database operations.
    Encapsulates all database logic for the User model.
    """

    def __init__(self, db: AsyncSession):
        """
        Initialize the repository with a database session.

        Args:
            db: AsyncSession instance for database operations
        """
        self.db = db

    async def get_user_by_email(self, email: str) -> Optional[User]:
        """
        Retrieve a user by email address.

        Args:
            email: User's email address (case-insensitive search)

        Returns:
            User object if found, None otherwise
        """
        result = await self.db.execute(
            select(User).where(User.email == email.lower())
        )
        return result.scalar_one_or_none()

    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        """
        Retrieve a user by ID.

        Args:
            user_id: User's ID

        Returns:
            User object if found, None otherwise
        """
        result = await self.db.execute(
            select(User).where(User.id == user_id)
        )
        return result.scalar_one_or_none()

    async def create_user(self, email: str, hashed_password: str) -> User:
        """
        Create a new user in the database.

        Args:
            email: Email address (stored lowercased)
            hashed_password: Password hash from auth_utils.hash_password

        Returns:
            Created User object
        """
        user = User(email=email.lower(), hashed_password=hashed_password)
        self.db.add(user)
        await self.db.flush()  # Flush to get the ID without committing
        await self.db.refresh(user)
        return user

    async def mark_email_confirmed(self, user: User, confirmed_at: datetime) -> bool:
        """
        Record the email confirmation time once.

        Returns:
            True if this call confirmed the email, False if it was already confirmed
        """
        if user.email_confirmed_at is not None:
            return False
        user.email_confirmed_at = confirmed_at
        await self.db.flush()
        return True
