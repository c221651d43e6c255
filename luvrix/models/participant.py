from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, DateTime, ForeignKey, UniqueConstraint, Index, Uuid, func, text
from luvrix.db import Base
from luvrix.services.clock import utcnow

class Participant(Base):
    """
    One row per (giveaway, user).
    Invariant: points == Σ completions.points_awarded + Σ referrals.points_awarded.
    Status only moves forward: participant -> eligible -> winner.
    """
    __tablename__ = "giveaway_participants"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    giveaway_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("giveaways.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    invite_code: Mapped[str] = mapped_column(String(16), unique=True, index=True, nullable=False)
    invite_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="participant")  # participant|eligible|winner
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    eligible_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("giveaway_id", "user_id", name="uq_participant_giveaway_user"),
        # At most one winner per giveaway
        Index(
            "uq_participant_one_winner", "giveaway_id", unique=True,
            postgresql_where=text("status = 'winner'"), sqlite_where=text("status = 'winner'"),
        ),
    )

class TaskCompletion(Base):
    __tablename__ = "giveaway_task_completions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    participant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("giveaway_participants.id", ondelete="CASCADE"), index=True, nullable=False
    )
    task_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("giveaway_tasks.id", ondelete="CASCADE"), nullable=False)
    points_awarded: Mapped[int] = mapped_column(Integer, nullable=False)
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        # Completing the same task twice must not credit twice
        UniqueConstraint("participant_id", "task_id", name="uq_completion_participant_task"),
    )

class Referral(Base):
    __tablename__ = "giveaway_referrals"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    giveaway_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("giveaways.id", ondelete="CASCADE"), index=True, nullable=False)
    inviter_participant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("giveaway_participants.id", ondelete="CASCADE"), index=True, nullable=False
    )
    referred_user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    points_awarded: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        # A referred user credits at most one inviter per giveaway
        UniqueConstraint("giveaway_id", "referred_user_id", name="uq_referral_giveaway_referred"),
    )

class TaskStart(Base):
    """When a participant opened a timed task; restarting moves the clock."""
    __tablename__ = "giveaway_task_starts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    participant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("giveaway_participants.id", ondelete="CASCADE"), index=True, nullable=False
    )
    task_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("giveaway_tasks.id", ondelete="CASCADE"), nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("participant_id", "task_id", name="uq_task_start_participant_task"),
    )
