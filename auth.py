"""
Authentication routes and dependencies
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Header, Depends, Cookie
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from auth_utils import create_jwt, decode_jwt, EMAIL_CONFIRM_TOKEN
from config import settings, IS_PRODUCTION
from crud.profile import ProfileRepository
from crud.user import UserRepository
from database import get_db
from errors import ProfileNotFoundError
from models.auth import (
    ConfirmEmailRequest,
    EmailConfirmedHook,
    Identity,
    LoginRequest,
    SignupRequest,
)
from models.profile import ProfileSnapshot
from services.identity_service import EmailAlreadyRegisteredError, IdentityService
from utils.security_utils import (
    bearer_token,
    validate_email,
    validate_password_strength,
    verify_shared_secret,
)

logger = logging.getLogger(__name__)

# Create auth router
auth_router = APIRouter(prefix="/api/auth", tags=["auth"])

# JWT expiration in seconds for the auth cookie
COOKIE_MAX_AGE = settings.jwt_expire_days * 86400


def _token_response(content: dict, token: str) -> JSONResponse:
    response = JSONResponse(content={**content, "token": token})
    response.set_cookie(
        key="auth_token",
        value=token,
        httponly=True,
        secure=True,
        samesite="Lax",
        max_age=COOKIE_MAX_AGE,
    )
    return response


@auth_router.post("/signup", status_code=201)
async def signup(request: SignupRequest, db: AsyncSession = Depends(get_db)):
    """
    Create a new account. The profile starts unconfirmed; the trial begins
    when the email address is confirmed.
    """
    if not validate_email(request.email):
        raise HTTPException(status_code=400, detail="Invalid email format")
    try:
        validate_password_strength(request.password)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        user, profile = await IdentityService(db).signup(request.email, request.password)
    except EmailAlreadyRegisteredError:
        raise HTTPException(status_code=400, detail="Email already registered")

    confirmation_token = create_jwt(user.id, purpose=EMAIL_CONFIRM_TOKEN)
    # Email delivery belongs to the identity provider; the link is logged for local setups
    logger.info(f"Confirmation link for {user.email}: {settings.frontend_url}/auth/confirm?token={confirmation_token}")

    content = {
        "ok": True,
        "user_id": user.id,
        "email": user.email,
        "subscription_status": profile.subscription_status.value,
    }
    if not IS_PRODUCTION:
        content["confirmation_token"] = confirmation_token
    return JSONResponse(status_code=201, content=content)


@auth_router.post("/login")
async def login(request: LoginRequest, db: AsyncSession = Depends(get_db)):
    """Login and get JWT token"""
    user = await IdentityService(db).authenticate(request.email, request.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid email or password")
    return _token_response({"ok": True, "user_id": user.id}, create_jwt(user.id))


@auth_router.post("/confirm")
async def confirm_email(request: ConfirmEmailRequest, db: AsyncSession = Depends(get_db)):
    """Confirm an email address from the link sent at signup."""
    payload = decode_jwt(request.token, purpose=EMAIL_CONFIRM_TOKEN)
    if not payload or not payload.get("sub"):
        raise HTTPException(status_code=400, detail="Invalid or expired confirmation token")
    try:
        profile = await IdentityService(db).confirm_email(payload["sub"])
    except ProfileNotFoundError:
        raise HTTPException(status_code=404, detail="Account not found")
    return {
        "ok": True,
        "user_id": profile.id,
        "subscription_status": profile.subscription_status.value,
        "trial_expires_at": profile.trial_expires_at.isoformat() if profile.trial_expires_at else None,
    }


@auth_router.post("/hooks/email-confirmed")
async def email_confirmed_hook(
    hook: EmailConfirmedHook,
    authorization: Optional[str] = Header(None, alias="Authorization"),
    db: AsyncSession = Depends(get_db),
):
    """
    Email-confirmed callback from an external identity provider.
    Retries are harmless: repeated confirmations leave the profile unchanged.
    """
    if not verify_shared_secret(authorization, settings.identity_hook_secret):
        raise HTTPException(status_code=401, detail="Unauthorized")
    try:
        profile = await IdentityService(db).confirm_email(hook.user_id)
    except ProfileNotFoundError:
        raise HTTPException(status_code=404, detail="Account not found")
    return {"ok": True, "user_id": profile.id, "subscription_status": profile.subscription_status.value}


@auth_router.post("/logout")
async def logout():
    """Logout and clear auth token cookie"""
    response = JSONResponse(content={"ok": True, "message": "Logged out successfully"})
    response.set_cookie(
        key="auth_token",
        value="",
        httponly=True,
        secure=True,
        samesite="Lax",
        max_age=0,
    )
    return response


# Dependency for protected routes
async def get_current_identity(
    auth_token: Optional[str] = Cookie(None),
    authorization: Optional[str] = Header(None, alias="Authorization"),
    db: AsyncSession = Depends(get_db),
) -> Identity:
    """
    Resolve the authenticated caller.

    Authentication priority:
    1. Authorization header (Bearer token) for API consumers
    2. auth_token cookie set by login
    3. Raise 401 if neither is found
    """
    token = bearer_token(authorization) or auth_token
    if not token:
        raise HTTPException(status_code=401, detail="Authorization header required")

    payload = decode_jwt(token)
    if not payload or not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user = await UserRepository(db).get_user_by_id(payload["sub"])
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return Identity(user_id=user.id, email=user.email)


async def get_current_profile(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
) -> ProfileSnapshot:
    profile = await ProfileRepository(db).get_snapshot(identity.user_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile


async def require_admin(profile: ProfileSnapshot = Depends(get_current_profile)) -> ProfileSnapshot:
    if not profile.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return profile


@auth_router.get("/me")
async def get_current_user_info(
    identity: Identity = Depends(get_current_identity),
    profile: ProfileSnapshot = Depends(get_current_profile),
):
    """Get current user information from JWT token"""
    return {
        "ok": True,
        "user_id": identity.user_id,
        "email": identity.email,
        "role": profile.role.value,
        "subscription_status": profile.subscription_status.value,
        "subscription_plan": profile.subscription_plan,
    }
