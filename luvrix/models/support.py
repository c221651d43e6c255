from __future__ import annotations
import uuid
from datetime import datetime
from decimal import Decimal
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Boolean, DateTime, ForeignKey, Numeric, Uuid, func
from luvrix.db import Base
from luvrix.services.clock import utcnow

class Support(Base):
    """
    Append-only tip ledger. Nothing in participation or winner selection reads this table.
    """
    __tablename__ = "giveaway_supports"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    giveaway_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("giveaways.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), index=True, nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="inr")
    donor_name: Mapped[str] = mapped_column(String(160), nullable=False, default="")
    donor_email: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    is_anonymous: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
