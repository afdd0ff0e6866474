"""
Admin Router - manual subscription overrides
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from auth import require_admin
from database import get_db
from errors import IllegalTransitionError, PaymentProviderError, ProfileNotFoundError
from models.enums import SubscriptionStatus
from models.profile import ProfileSnapshot
from services.payment_provider import PaymentProvider, get_payment_provider
from services.subscription_service import SubscriptionService
from utils.responses import error_response, success_response

logger = logging.getLogger(__name__)

admin_router = APIRouter(prefix="/api/admin", tags=["admin"])


class SubscriptionOverride(BaseModel):
    status: SubscriptionStatus
    subscription_id: Optional[str] = None
    plan: Optional[str] = None
    cancel_at_provider: bool = False


@admin_router.post("/profiles/{profile_id}/subscription")
async def override_subscription(
    profile_id: str,
    override: SubscriptionOverride,
    admin: ProfileSnapshot = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    provider: PaymentProvider = Depends(get_payment_provider),
):
    """
    Force a profile to active or inactive.

    With ``cancel_at_provider`` an inactive override also cancels the
    profile's Stripe subscription before the profile is updated.
    """
    service = SubscriptionService(db)
    try:
        if override.status == SubscriptionStatus.INACTIVE and override.cancel_at_provider:
            current = await service.repo.get_snapshot(profile_id)
            if current is None:
                raise ProfileNotFoundError(profile_id)
            if current.stripe_subscription_id:
                await provider.cancel_subscription(current.stripe_subscription_id)

        profile = await service.admin_override(
            profile_id, override.status, subscription_id=override.subscription_id, plan=override.plan
        )
    except ProfileNotFoundError:
        raise HTTPException(status_code=404, detail="Profile not found")
    except IllegalTransitionError as e:
        return error_response("illegal_transition", status=409, message=str(e))
    except PaymentProviderError as e:
        return error_response("payment_provider_error", status=502, message=str(e))

    logger.info(f"Admin {admin.id} set profile {profile_id} to {override.status.value}")
    return success_response(profile.model_dump(mode="json"))
