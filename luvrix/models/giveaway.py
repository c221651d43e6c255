from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, Boolean, DateTime, ForeignKey, Text, Uuid, func
from luvrix.db import Base, JSONType
from luvrix.services.clock import utcnow

class Giveaway(Base):
    __tablename__ = "giveaways"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    slug: Mapped[str] = mapped_column(String(96), unique=True, index=True, nullable=False)
    title: Mapped[str] = mapped_column(String(160), nullable=False)
    description: Mapped[str] = mapped_column(Text(), nullable=False, default="")
    prize_details: Mapped[str] = mapped_column(Text(), nullable=False, default="")
    image_url: Mapped[str | None] = mapped_column(String(1024))
    start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))  # null only when max_extensions == -1
    status: Mapped[str] = mapped_column(String(20), index=True, nullable=False, default="draft")  # draft|active|winner_selected|ended
    target_participants: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    required_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    invite_points_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    invite_points_per_referral: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    invite_points_cap: Mapped[int | None] = mapped_column(Integer, nullable=True, default=10)  # null = uncapped
    max_extensions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # -1 = unlimited
    extensions_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    winner_user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)

class Task(Base):
    """
    A completable task. `type` discriminates the shape of `meta_json`
    (see luvrix.schemas.task for the variants).
    """
    __tablename__ = "giveaway_tasks"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    giveaway_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("giveaways.id", ondelete="CASCADE"), index=True, nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(160), nullable=False)
    description: Mapped[str] = mapped_column(Text(), nullable=False, default="")
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    meta_json: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
