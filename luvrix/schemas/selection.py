from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Literal
from uuid import UUID
from datetime import datetime

SelectionMethod = Literal["random", "manual"]

class ManualWinnerRequest(BaseModel):
    winner_user_id: UUID

class WinnerSelectionPublic(BaseModel):
    id: UUID
    giveaway_id: UUID
    winner_user_id: UUID
    method: SelectionMethod
    selected_by: UUID | None
    selected_at: datetime
    eligible_pool_snapshot: list[UUID]
    reason: str

class WinnerInfo(BaseModel):
    giveaway_id: UUID
    winner_user_id: UUID
    username: str | None
    selection: WinnerSelectionPublic

class ShippingDetails(BaseModel):
    full_name: str = Field(min_length=1, max_length=160)
    address: str = Field(min_length=1)
    city: str = Field(min_length=1, max_length=120)
    state: str = Field(min_length=1, max_length=120)
    pincode: str = Field(min_length=3, max_length=16)
    country: str = Field(min_length=2, max_length=80)
    phone: str = Field(min_length=5, max_length=32)

class ShippingPublic(ShippingDetails):
    giveaway_id: UUID
    user_id: UUID
    updated_at: datetime
