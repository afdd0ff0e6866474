import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, Float, String, DateTime, Text, ForeignKey, Enum as SAEnum

from database import Base
from models.enums import SubscriptionStatus, Role
from config.settings import DEFAULT_TRIAL_LIMIT


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


def _enum_column(enum_cls, **kwargs):
    # Store enum values ("trialing"), not member names
    return Column(
        SAEnum(enum_cls, native_enum=False, length=32, values_callable=lambda e: [m.value for m in e]),
        **kwargs,
    )


class User(Base):
    """
    Identity record. Owned by the identity layer; the trial lifecycle lives on Profile.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    email_confirmed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)


class Profile(Base):
    """
    Per-tenant subscription and trial state. Mutated only through the trial engine.
    """
    __tablename__ = "profiles"

    id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    role = _enum_column(Role, default=Role.USER, nullable=False)
    subscription_status = _enum_column(
        SubscriptionStatus, default=SubscriptionStatus.UNCONFIRMED, nullable=False, index=True
    )
    subscription_plan = Column(String(32), nullable=True)
    trial_expires_at = Column(DateTime(timezone=True), nullable=True, index=True)
    trial_limit = Column(Integer, default=DEFAULT_TRIAL_LIMIT, nullable=False)
    stripe_customer_id = Column(String(255), nullable=True, index=True)
    stripe_subscription_id = Column(String(255), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)


class Client(Base):
    __tablename__ = "clients"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(64), nullable=True)
    oib = Column(String(32), nullable=True)  # Croatian personal identification number
    notes = Column(Text, default="", nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)


class Case(Base):
    __tablename__ = "cases"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    client_id = Column(String(36), ForeignKey("clients.id", ondelete="SET NULL"), nullable=True)
    title = Column(String(255), nullable=False)
    case_type = Column(String(64), nullable=True)
    status = Column(String(32), default="open", nullable=False)
    notes = Column(Text, default="", nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)


class Document(Base):
    __tablename__ = "documents"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="SET NULL"), nullable=True)
    client_id = Column(String(36), ForeignKey("clients.id", ondelete="SET NULL"), nullable=True)
    name = Column(String(255), nullable=False)
    document_type = Column(String(64), nullable=True)
    file_path = Column(String(1024), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)


class BillingEntry(Base):
    """Billable time recorded against a client (and optionally a case)."""
    __tablename__ = "billing_entries"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    client_id = Column(String(36), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False)
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="SET NULL"), nullable=True)
    hours = Column(Float, nullable=False)
    rate = Column(Float, nullable=False)
    notes = Column(Text, default="", nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
