from __future__ import annotations
from pydantic import BaseModel, Field, model_validator
from typing import Literal
from uuid import UUID
from datetime import datetime

GiveawayStatus = Literal["draft", "active", "winner_selected", "ended"]

class GiveawayCreate(BaseModel):
    title: str = Field(min_length=3, max_length=160)
    description: str = ""
    prize_details: str = ""
    image_url: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    target_participants: int = Field(ge=1, default=100)
    required_points: int = Field(ge=0, default=0)
    invite_points_enabled: bool = False
    invite_points_per_referral: int = Field(ge=1, default=1)
    invite_points_cap: int | None = Field(ge=1, default=10)
    max_extensions: int = Field(ge=-1, default=0)

    @model_validator(mode="after")
    def check_schedule(self):
        if self.end_date is None and self.max_extensions != -1:
            raise ValueError("end_date is required unless max_extensions is -1 (open-ended)")
        if self.start_date and self.end_date and self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self

class GiveawayUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=3, max_length=160)
    description: str | None = None
    prize_details: str | None = None
    image_url: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    target_participants: int | None = Field(default=None, ge=1)
    required_points: int | None = Field(default=None, ge=0)
    invite_points_enabled: bool | None = None
    invite_points_per_referral: int | None = Field(default=None, ge=1)
    invite_points_cap: int | None = Field(default=None, ge=1)
    max_extensions: int | None = Field(default=None, ge=-1)

class GiveawayPublic(BaseModel):
    id: UUID
    slug: str
    title: str
    description: str
    prize_details: str
    image_url: str | None
    start_date: datetime | None
    end_date: datetime | None
    status: GiveawayStatus
    target_participants: int
    required_points: int
    invite_points_enabled: bool
    invite_points_per_referral: int
    invite_points_cap: int | None
    max_extensions: int
    extensions_used: int
    winner_user_id: UUID | None = None
    participant_count: int = 0
    created_at: datetime

class GiveawaySummary(BaseModel):
    id: UUID
    slug: str
    title: str
    image_url: str | None
    prize_details: str
    status: GiveawayStatus
    end_date: datetime | None
    winner_user_id: UUID | None = None
    winner_username: str | None = None

class InterestPublic(BaseModel):
    count: int
    interested: bool
