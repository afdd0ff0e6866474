"""
Identity and auth request models
"""
from typing import Optional
from pydantic import BaseModel


class Identity(BaseModel):
    """Authenticated caller, passed explicitly into every service call."""
    user_id: str
    email: str


class SignupRequest(BaseModel):
    email: str
    password: str


class LoginRequest(BaseModel):
    email: str
    password: str


class ConfirmEmailRequest(BaseModel):
    token: str


class EmailConfirmedHook(BaseModel):
    user_id: str


class AuthResponse(BaseModel):
    ok: bool
    token: Optional[str] = None
    user_id: Optional[str] = None
    message: Optional[str] = None
