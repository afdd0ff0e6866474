"""
Billing Router - API endpoints for Stripe billing integration
Webhook is defined FIRST to avoid middleware conflicts
"""

import logging

import stripe
from fastapi import APIRouter, Request, Depends, Body
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_profile
from config.settings import settings, PLAN_BASIC
from crud.profile import ProfileRepository
from database import get_db
from errors import PaymentProviderError
from models.profile import ProfileSnapshot
from services.payment_provider import PaymentProvider, get_payment_provider
from services.subscription_service import SubscriptionService
from utils.responses import success_response, error_response

logger = logging.getLogger(__name__)

# Create billing router
billing_router = APIRouter(prefix="/api/billing", tags=["billing"])


# WEBHOOK ENDPOINT - MUST BE DEFINED FIRST TO AVOID MIDDLEWARE CONFLICTS
@billing_router.post("/webhook")
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """
    Handle Stripe webhook events with signature verification.

    Only verified events are processed to prevent spoofing attacks.
    Always returns 200 OK to Stripe; failures are reported in the body and logs.
    """
    webhook_secret = settings.stripe_webhook_secret
    if not webhook_secret:
        logger.error("STRIPE_WEBHOOK_SECRET environment variable is not set")
        return JSONResponse(
            status_code=200,
            content={"ok": False, "received": True, "error": "Webhook secret not configured"}
        )

    # Raw body is required for signature verification
    payload = await request.body()
    stripe_signature = request.headers.get("stripe-signature")
    if not stripe_signature:
        logger.error("Missing Stripe-Signature header")
        return JSONResponse(
            status_code=200,
            content={"ok": False, "received": True, "error": "Missing signature header"}
        )

    try:
        event = stripe.Webhook.construct_event(payload, stripe_signature, webhook_secret)
    except stripe.SignatureVerificationError as e:
        logger.error(f"Stripe webhook signature verification failed: {e}")
        return JSONResponse(
            status_code=200,
            content={"ok": False, "received": True, "error": "Invalid webhook signature"}
        )
    except ValueError as e:
        logger.error(f"Invalid webhook payload: {e}")
        return JSONResponse(
            status_code=200,
            content={"ok": False, "received": True, "error": "Invalid payload format"}
        )

    result = await SubscriptionService(db).handle_event(event)
    return JSONResponse(
        status_code=200,
        content={
            "ok": not result.get("is_error", True),
            "received": True,
            "event_type": event["type"],
        }
    )


@billing_router.post("/create-checkout-session")
async def create_checkout_session(
    plan: str = Body(default=PLAN_BASIC, embed=True),
    profile: ProfileSnapshot = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
    provider: PaymentProvider = Depends(get_payment_provider),
):
    """
    Create a Stripe Checkout session for the caller's account.
    Reuses the stored Stripe customer when one exists.
    """
    if profile.is_demo:
        return error_response("read_only", status=403, message="Demo accounts cannot subscribe")

    price_id = settings.price_for_plan(plan)
    if not price_id:
        return error_response("configuration_error", status=500, message=f"No Stripe price configured for plan '{plan}'")

    metadata = {"profile_id": profile.id, "plan": plan}
    try:
        customer_id = profile.stripe_customer_id
        if not customer_id:
            customer_id = await provider.create_customer(
                profile.email, metadata={"profile_id": profile.id}, idempotency_key=f"customer-{profile.id}"
            )
            await ProfileRepository(db).set_customer_id(profile.id, customer_id)

        frontend_url = settings.frontend_url or "http://localhost:3000"
        url = await provider.create_checkout_session(
            customer_id,
            price_id,
            success_url=f"{frontend_url}/billing/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{frontend_url}/billing/cancel",
            metadata=metadata,
        )
    except PaymentProviderError as e:
        return error_response("payment_provider_error", status=502, message=str(e))
    return success_response({"url": url})


@billing_router.post("/portal")
async def create_billing_portal_session(
    profile: ProfileSnapshot = Depends(get_current_profile),
    provider: PaymentProvider = Depends(get_payment_provider),
):
    """Create a Stripe Billing Portal session for the caller's customer."""
    if not profile.stripe_customer_id:
        return error_response("no_customer", status=400, message="No billing account exists yet")

    frontend_url = settings.frontend_url or "http://localhost:3000"
    try:
        url = await provider.create_portal_session(profile.stripe_customer_id, return_url=f"{frontend_url}/settings")
    except PaymentProviderError as e:
        return error_response("payment_provider_error", status=502, message=str(e))
    return success_response({"url": url})


@billing_router.get("/subscription")
async def subscription_status(
    profile: ProfileSnapshot = Depends(get_current_profile),
    provider: PaymentProvider = Depends(get_payment_provider),
):
    """Provider-side status of the caller's subscription, if any."""
    if not profile.stripe_subscription_id:
        return success_response({"subscription_id": None, "provider_status": None})
    try:
        provider_status = await provider.get_subscription(profile.stripe_subscription_id)
    except PaymentProviderError as e:
        return error_response("payment_provider_error", status=502, message=str(e))
    return success_response({"subscription_id": profile.stripe_subscription_id, "provider_status": provider_status})
