"""
Request/response models for billable entities
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ClientCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: Optional[str] = None
    phone: Optional[str] = None
    oib: Optional[str] = None
    notes: str = ""


class ClientOut(ClientCreate):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    created_at: datetime


class CaseCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    client_id: Optional[str] = None
    case_type: Optional[str] = None
    status: str = "open"
    notes: str = ""


class CaseOut(CaseCreate):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    created_at: datetime


class DocumentCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    case_id: Optional[str] = None
    client_id: Optional[str] = None
    document_type: Optional[str] = None
    file_path: Optional[str] = None


class DocumentOut(DocumentCreate):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    created_at: datetime


class BillingEntryCreate(BaseModel):
    client_id: str
    case_id: Optional[str] = None
    hours: float = Field(gt=0)
    rate: float = Field(gt=0)
    notes: str = ""


class BillingEntryOut(BillingEntryCreate):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    created_at: datetime
