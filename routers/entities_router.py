"""
Entity Routers - clients, cases, documents and billing entries

Creation is gated twice: the advisory admission check runs first so the
caller gets a clear 409, then EntityRepository.create_limited repeats the
check inside the insert transaction.
"""

from datetime import datetime, timezone
from typing import Type

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_identity, get_current_profile
from crud.entities import EntityRepository
from database import get_db
from models.auth import Identity
from models.entities import (
    BillingEntryCreate,
    BillingEntryOut,
    CaseCreate,
    CaseOut,
    ClientCreate,
    ClientOut,
    DocumentCreate,
    DocumentOut,
)
from models.enums import EntityType
from models.profile import ProfileSnapshot
from services.usage_limiter import ensure_can_create
from utils.responses import success_response


def build_entity_router(
    prefix: str,
    entity_type: EntityType,
    create_model: Type[BaseModel],
    out_model: Type[BaseModel],
) -> APIRouter:
    router = APIRouter(prefix=prefix, tags=[entity_type.value])

    @router.get("")
    async def list_entities(
        identity: Identity = Depends(get_current_identity),
        db: AsyncSession = Depends(get_db),
    ):
        rows = await EntityRepository(db).list_for_user(identity.user_id, entity_type)
        return success_response([out_model.model_validate(r).model_dump(mode="json") for r in rows])

    @router.post("", status_code=201)
    async def create_entity(
        payload: create_model,  # type: ignore[valid-type]
        profile: ProfileSnapshot = Depends(get_current_profile),
        db: AsyncSession = Depends(get_db),
    ):
        now = datetime.now(timezone.utc)
        repo = EntityRepository(db)
        ensure_can_create(profile, await repo.count(profile.id, entity_type), now)

        entity = await repo.create_limited(profile.id, entity_type, payload.model_dump(), now)
        return success_response(out_model.model_validate(entity).model_dump(mode="json"), status=201)

    return router


clients_router = build_entity_router("/api/clients", EntityType.CLIENT, ClientCreate, ClientOut)
cases_router = build_entity_router("/api/cases", EntityType.CASE, CaseCreate, CaseOut)
documents_router = build_entity_router("/api/documents", EntityType.DOCUMENT, DocumentCreate, DocumentOut)
billing_entries_router = build_entity_router(
    "/api/billing-entries", EntityType.BILLING_ENTRY, BillingEntryCreate, BillingEntryOut
)
