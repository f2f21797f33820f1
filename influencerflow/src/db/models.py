from __future__ import annotations

from datetime import date, datetime, timezone
import uuid
from typing import Any, Optional

from sqlalchemy import Column, DateTime
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import JSON as SAJSON
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


JsonType = SAJSON().with_variant(JSONB, "postgresql")


# Lifecycle of a creator inside a campaign, in order.
CREATOR_STATES = (
    "discovered",
    "outreached",
    "call_initiated",
    "negotiating",
    "deal_finalized",
    "contract_sent",
    "contract_signed",
    "content_delivered",
    "payment_processed",
)


class Company(SQLModel, table=True):
    __tablename__ = "companies"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    # Identity claim (token `sub`) of the user who owns this company.
    owner_user_id: str = Field(index=True, unique=True)
    name: str
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class Campaign(SQLModel, table=True):
    __tablename__ = "campaigns"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    company_id: uuid.UUID = Field(foreign_key="companies.id", index=True)
    name: str
    description: Optional[str] = Field(default=None)
    start_date: date
    end_date: date
    state: str = Field(default="draft", index=True)
    # deliverables, budget and targeting defaults
    meta: dict[str, Any] = Field(sa_column=Column(JsonType), default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True), index=True)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class Creator(SQLModel, table=True):
    __tablename__ = "creators"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    # Id assigned by the discovery search API; unique per platform.
    external_id: Optional[str] = Field(default=None, index=True)
    handle: str = Field(index=True)
    name: str
    platform: str = Field(default="instagram", index=True)
    email: Optional[str] = Field(default=None)
    gender: Optional[str] = Field(default=None)
    location: Optional[str] = Field(default=None)
    country: Optional[str] = Field(default=None)
    tier: Optional[str] = Field(default=None, index=True)
    engagement_rate: Optional[float] = Field(default=None)
    language: Optional[str] = Field(default=None)
    category: Optional[str] = Field(default=None)
    meta: dict[str, Any] = Field(sa_column=Column(JsonType), default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class CampaignCreator(SQLModel, table=True):
    __tablename__ = "campaign_creators"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    campaign_id: uuid.UUID = Field(foreign_key="campaigns.id", index=True)
    creator_id: uuid.UUID = Field(foreign_key="creators.id", index=True)
    current_state: str = Field(default=CREATOR_STATES[0], index=True)
    assigned_budget: Optional[float] = Field(default=None)
    notes: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True), index=True)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
