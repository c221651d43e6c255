from __future__ import annotations
from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime
from decimal import Decimal

class SupportCreate(BaseModel):
    # Range checks happen in the support service so the error shape matches the engine's
    amount: Decimal
    donor_name: str = Field(default="", max_length=160)
    donor_email: str = Field(default="", max_length=255)
    is_anonymous: bool = False

class SupportPublic(BaseModel):
    id: UUID
    giveaway_id: UUID
    amount: Decimal
    currency: str
    is_anonymous: bool
    created_at: datetime

class SupporterRow(BaseModel):
    user_name: str
    amount: Decimal
    is_anonymous: bool
    created_at: datetime
    # admin-only
    donor_name: str | None = None
    donor_email: str | None = None

class SupportAggregates(BaseModel):
    giveaway_id: UUID
    total: Decimal
    count: int
    supporters: list[SupporterRow]

class GiveawayDonationTotal(BaseModel):
    giveaway_id: UUID
    title: str
    slug: str
    total: Decimal
    count: int

class DonationStats(BaseModel):
    grand_total: Decimal
    grand_count: int
    per_giveaway: list[GiveawayDonationTotal]
