from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Literal
from uuid import UUID
from datetime import datetime
from luvrix.schemas.giveaway import GiveawaySummary

ParticipantStatus = Literal["participant", "eligible", "winner"]

class ParticipantPublic(BaseModel):
    id: UUID
    giveaway_id: UUID
    user_id: UUID
    joined_at: datetime
    points: int
    invite_code: str
    invite_count: int
    status: ParticipantStatus
    eligible_at: datetime | None = None
    completed_task_ids: list[UUID]

class EligibilityPublic(BaseModel):
    eligible: bool
    required_tasks_done: bool
    points_met: bool
    points_needed: int
    missing_required_task_ids: list[UUID]

class MyStatus(BaseModel):
    participant: ParticipantPublic
    eligibility: EligibilityPublic
    total_tasks: int

class InviteRedeemRequest(BaseModel):
    invite_code: str = Field(min_length=4, max_length=16)

class InviteOutcomePublic(BaseModel):
    credited: bool
    inviter_points: int
    invite_count: int

class ParticipantWithUser(BaseModel):
    participant_id: UUID
    user_id: UUID
    username: str
    email: str
    points: int
    invite_count: int
    status: ParticipantStatus
    joined_at: datetime

class ParticipantList(BaseModel):
    total: int
    participants: list[ParticipantWithUser]

class ParticipantCount(BaseModel):
    count: int

class MyGiveaway(BaseModel):
    participant_id: UUID
    status: ParticipantStatus
    points: int
    joined_at: datetime
    giveaway: GiveawaySummary
