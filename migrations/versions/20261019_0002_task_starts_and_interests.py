from __future__ import annotations
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "20261019_0002"
down_revision = "20261019_0001"
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        "giveaway_task_starts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("participant_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("giveaway_participants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("task_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("giveaway_tasks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("started_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("participant_id", "task_id", name="uq_task_start_participant_task"),
    )
    op.create_index("ix_giveaway_task_starts_participant_id", "giveaway_task_starts", ["participant_id"])

    op.create_table(
        "giveaway_interests",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("giveaway_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("giveaways.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("giveaway_id", "user_id", name="uq_interest_giveaway_user"),
    )
    op.create_index("ix_giveaway_interests_giveaway_id", "giveaway_interests", ["giveaway_id"])
    op.create_index("ix_giveaway_interests_user_id", "giveaway_interests", ["user_id"])

def downgrade() -> None:
    op.drop_index("ix_giveaway_interests_user_id", table_name="giveaway_interests")
    op.drop_index("ix_giveaway_interests_giveaway_id", table_name="giveaway_interests")
    op.drop_table("giveaway_interests")
    op.drop_index("ix_giveaway_task_starts_participant_id", table_name="giveaway_task_starts")
    op.drop_table("giveaway_task_starts")
