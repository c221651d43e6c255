from __future__ import annotations
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Annotated, Literal, List, Union
from uuid import UUID
from datetime import datetime

TaskType = Literal[
    "social_follow", "social_like", "social_subscribe",
    "visit_website", "join_telegram", "join_discord",
    "share_post", "invite", "quiz", "custom",
]

class SocialTaskMeta(BaseModel):
    type: Literal["social_follow", "social_like", "social_subscribe"]
    platform: str = Field(min_length=1, max_length=40)
    url: str = Field(min_length=1, max_length=1024)

class VisitWebsiteMeta(BaseModel):
    type: Literal["visit_website"]
    url: str = Field(min_length=1, max_length=1024)
    min_seconds: int = Field(ge=0, default=0)

class CommunityJoinMeta(BaseModel):
    type: Literal["join_telegram", "join_discord"]
    invite_url: str = Field(min_length=1, max_length=1024)

class SharePostMeta(BaseModel):
    type: Literal["share_post"]
    share_url: str = Field(min_length=1, max_length=1024)

class InviteTaskMeta(BaseModel):
    type: Literal["invite"]
    required_invites: int = Field(ge=1, default=1)

class QuizMeta(BaseModel):
    type: Literal["quiz"]
    question: str = Field(min_length=1)
    options: List[str]
    correct_option: int = Field(ge=0)

    @field_validator("options")
    @classmethod
    def at_least_two(cls, v: list[str]):
        if len(v) < 2:
            raise ValueError("quiz needs at least two options")
        return v

    @model_validator(mode="after")
    def answer_in_range(self):
        if self.correct_option >= len(self.options):
            raise ValueError("correct_option must index into options")
        return self

class CustomTaskMeta(BaseModel):
    type: Literal["custom"]
    instructions: str = ""

TaskMeta = Annotated[
    Union[SocialTaskMeta, VisitWebsiteMeta, CommunityJoinMeta, SharePostMeta, InviteTaskMeta, QuizMeta, CustomTaskMeta],
    Field(discriminator="type"),
]

class TaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=160)
    description: str = ""
    points: int = Field(gt=0, default=1)
    required: bool = False
    metadata: TaskMeta

class TaskPublic(BaseModel):
    id: UUID
    giveaway_id: UUID
    type: TaskType
    title: str
    description: str
    points: int
    required: bool
    metadata: dict
    created_at: datetime

class TaskCompleteRequest(BaseModel):
    answer: int | None = None

class TaskStartPublic(BaseModel):
    task_id: UUID
    started_at: datetime
