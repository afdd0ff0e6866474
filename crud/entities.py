"""
EntityRepository for billable entities (clients, cases, documents, billing entries)
"""

from datetime import datetime
from typing import List

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from crud.profile import ProfileRepository
from database_models import BillingEntry, Case, Client, Document
from errors import ProfileNotFoundError, ReferencedEntityNotFoundError
from models.enums import EntityType
from models.profile import ProfileSnapshot
from services.usage_limiter import ensure_can_create

ENTITY_MODELS = {
    EntityType.CLIENT: Client,
    EntityType.CASE: Case,
    EntityType.DOCUMENT: Document,
    EntityType.BILLING_ENTRY: BillingEntry,
}

# Foreign-key fields a caller may set, and the table each one points into
REFERENCE_FIELDS = {
    "client_id": Client,
    "case_id": Case,
}


class EntityRepository:
    """
    Repository for the entity types counted against the trial limit.
    Each type is counted independently.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def count(self, user_id: str, entity_type: EntityType) -> int:
        model = ENTITY_MODELS[entity_type]
        result = await self.db.execute(
            select(func.count()).select_from(model).where(model.user_id == user_id)
        )
        return result.scalar_one()

    async def count_all(self, user_id: str) -> dict:
        return {entity_type.value: await self.count(user_id, entity_type) for entity_type in EntityType}

    async def list_for_user(self, user_id: str, entity_type: EntityType) -> List:
        model = ENTITY_MODELS[entity_type]
        result = await self.db.execute(
            select(model).where(model.user_id == user_id).order_by(model.created_at.desc())
        )
        return list(result.scalars().all())

    async def create_limited(self, user_id: str, entity_type: EntityType, fields: dict, now: datetime):
        """
        Insert an entity after re-checking admission inside this transaction.

        The owner's profile row is locked first, so two concurrent inserts
        for the same user serialize on it and the second one sees the first
        one's row in its count.

        Args:
            user_id: Owner (profile id)
            entity_type: Which billable entity to create
            fields: Column values for the new row
            now: Current time

        Returns:
            The created ORM object

        Raises:
            ProfileNotFoundError: If the owner has no profile
            TrialAdmissionError: If the trial rules refuse the insert
            ReferencedEntityNotFoundError: If a client_id/case_id is not the owner's
        """
        profile = await ProfileRepository(self.db).get_by_id(user_id, for_update=True)
        if profile is None:
            raise ProfileNotFoundError(user_id)

        snapshot = ProfileSnapshot.model_validate(profile)
        current = await self.count(user_id, entity_type)
        ensure_can_create(snapshot, current, now)
        await self.check_references(user_id, fields)

        entity = ENTITY_MODELS[entity_type](user_id=user_id, **fields)
        self.db.add(entity)
        await self.db.flush()
        await self.db.refresh(entity)
        return entity

    async def check_references(self, user_id: str, fields: dict) -> None:
        """
        Make sure every client/case the new row points at belongs to ``user_id``.

        Raises:
            ReferencedEntityNotFoundError: If a referenced row is missing or owned by another user
        """
        for field_name, model in REFERENCE_FIELDS.items():
            ref_id = fields.get(field_name)
            if ref_id is None:
                continue
            result = await self.db.execute(
                select(model.id).where(model.id == ref_id, model.user_id == user_id)
            )
            if result.scalar_one_or_none() is None:
                raise ReferencedEntityNotFoundError(field_name, ref_id)
