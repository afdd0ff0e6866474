"""
Trial Router - read-only trial state, admission checks and the auto-billing trigger
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_profile
from config.settings import settings
from crud.entities import EntityRepository
from database import get_db
from models.enums import EntityType
from models.profile import ProfileSnapshot
from services.billing_sweeper import BillingSweeper
from services.payment_provider import PaymentProvider, get_payment_provider
from services.trial_engine import days_left, derive_status
from services.usage_limiter import can_create
from utils.responses import error_response, success_response
from utils.security_utils import verify_shared_secret

logger = logging.getLogger(__name__)

trial_router = APIRouter(prefix="/api/trial", tags=["trial"])


class AdmissionRequest(BaseModel):
    entity_type: EntityType


@trial_router.get("/status")
async def trial_status(
    profile: ProfileSnapshot = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    """
    Current lifecycle state of the caller's account.
    The status is derived on read; nothing is written here.
    """
    now = datetime.now(timezone.utc)
    usage = await EntityRepository(db).count_all(profile.id)
    return success_response({
        "subscription_status": derive_status(profile, now).value,
        "subscription_plan": profile.subscription_plan,
        "trial_expires_at": profile.trial_expires_at.isoformat() if profile.trial_expires_at else None,
        "days_left": days_left(profile, now),
        "trial_limit": profile.trial_limit,
        "usage": usage,
        "read_only": profile.is_demo,
    })


@trial_router.post("/admission")
async def admission_check(
    request: AdmissionRequest,
    profile: ProfileSnapshot = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    """Would creating one more entity of this type be allowed right now?"""
    current = await EntityRepository(db).count(profile.id, request.entity_type)
    decision = can_create(profile, current, datetime.now(timezone.utc))
    return success_response({**decision.to_dict(), "current_count": current})


@trial_router.post("/auto-billing")
async def auto_billing(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    db: AsyncSession = Depends(get_db),
    provider: PaymentProvider = Depends(get_payment_provider),
):
    """
    Hourly scheduler trigger for the billing conversion sweep.

    Requires ``Authorization: Bearer <CRON_SECRET>``. Per-profile failures are
    reported in ``results`` with a 200; only a sweep that cannot run at all
    returns an error status, which the scheduler retries next cycle.
    """
    if not verify_shared_secret(authorization, settings.cron_secret):
        return error_response("unauthorized", status=401, message="Unauthorized")

    try:
        report = await BillingSweeper(db, provider).sweep()
    except RuntimeError as e:
        logger.error(f"Auto-billing sweep could not run: {e}")
        return error_response("configuration_error", status=500, message=str(e))

    logger.info(report.message)
    return {"ok": True, **report.to_dict()}
