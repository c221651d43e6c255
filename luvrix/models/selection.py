from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, DateTime, ForeignKey, UniqueConstraint, Uuid, Text, func
from luvrix.db import Base, JSONType
from luvrix.services.clock import utcnow

class WinnerSelection(Base):
    """
    Append-only audit record of a winner draw. Written once per giveaway,
    in the same transaction that moves the giveaway to winner_selected.
    """
    __tablename__ = "giveaway_selections"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    giveaway_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("giveaways.id", ondelete="CASCADE"), nullable=False)
    winner_user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    method: Mapped[str] = mapped_column(String(16), nullable=False)  # random|manual
    selected_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)  # admin id for manual picks
    eligible_pool_snapshot: Mapped[list] = mapped_column(JSONType, nullable=False)  # user ids, (joined_at, user_id) order
    reason: Mapped[str] = mapped_column(String(255), nullable=False)
    selected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("giveaway_id", name="uq_selection_giveaway"),
    )

class WinnerShipping(Base):
    __tablename__ = "giveaway_shipping"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    giveaway_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("giveaways.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    full_name: Mapped[str] = mapped_column(String(160), nullable=False)
    address: Mapped[str] = mapped_column(Text(), nullable=False)
    city: Mapped[str] = mapped_column(String(120), nullable=False)
    state: Mapped[str] = mapped_column(String(120), nullable=False)
    pincode: Mapped[str] = mapped_column(String(16), nullable=False)
    country: Mapped[str] = mapped_column(String(80), nullable=False)
    phone: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("giveaway_id", "user_id", name="uq_shipping_giveaway_user"),
    )
