from __future__ import annotations
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None

def _uuid(name: str, *args, **kw) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=True), *args, **kw)

def _ts(name: str, nullable: bool = False, default: bool = True) -> sa.Column:
    return sa.Column(name, sa.TIMESTAMP(timezone=True), server_default=sa.text("now()") if default else None, nullable=nullable)

def upgrade() -> None:
    op.create_table(
        "users",
        _uuid("id", primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("username", sa.String(length=40), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="user"),
        _ts("created_at"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_username", "users", ["username"], unique=True)

    op.create_table(
        "giveaways",
        _uuid("id", primary_key=True, nullable=False),
        sa.Column("slug", sa.String(length=96), nullable=False),
        sa.Column("title", sa.String(length=160), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("prize_details", sa.Text(), nullable=False, server_default=""),
        sa.Column("image_url", sa.String(length=1024), nullable=True),
        _ts("start_date", nullable=True, default=False),
        _ts("end_date", nullable=True, default=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
        sa.Column("target_participants", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("required_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("invite_points_enabled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("invite_points_per_referral", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("invite_points_cap", sa.Integer(), nullable=True, server_default="10"),
        sa.Column("max_extensions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("extensions_used", sa.Integer(), nullable=False, server_default="0"),
        _uuid("winner_user_id", nullable=True),
        _uuid("created_by", sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.CheckConstraint("status IN ('draft','active','winner_selected','ended')", name="ck_giveaway_status"),
        sa.CheckConstraint("required_points >= 0", name="ck_giveaway_required_points"),
        sa.CheckConstraint("max_extensions >= -1", name="ck_giveaway_max_extensions"),
        sa.CheckConstraint("end_date IS NOT NULL OR max_extensions = -1", name="ck_giveaway_end_date"),
    )
    op.create_index("ix_giveaways_slug", "giveaways", ["slug"], unique=True)
    op.create_index("ix_giveaways_status", "giveaways", ["status"])

    op.create_table(
        "giveaway_tasks",
        _uuid("id", primary_key=True, nullable=False),
        _uuid("giveaway_id", sa.ForeignKey("giveaways.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("title", sa.String(length=160), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("required", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("meta_json", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
        _ts("created_at"),
        sa.CheckConstraint("points > 0", name="ck_task_points_positive"),
    )
    op.create_index("ix_giveaway_tasks_giveaway_id", "giveaway_tasks", ["giveaway_id"])

    op.create_table(
        "giveaway_participants",
        _uuid("id", primary_key=True, nullable=False),
        _uuid("giveaway_id", sa.ForeignKey("giveaways.id", ondelete="CASCADE"), nullable=False),
        _uuid("user_id", sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("invite_code", sa.String(length=16), nullable=False),
        sa.Column("invite_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="participant"),
        _ts("joined_at"),
        _ts("eligible_at", nullable=True, default=False),
        sa.UniqueConstraint("giveaway_id", "user_id", name="uq_participant_giveaway_user"),
        sa.CheckConstraint("points >= 0", name="ck_participant_points"),
        sa.CheckConstraint("status IN ('participant','eligible','winner')", name="ck_participant_status"),
    )
    op.create_index("ix_giveaway_participants_giveaway_id", "giveaway_participants", ["giveaway_id"])
    op.create_index("ix_giveaway_participants_user_id", "giveaway_participants", ["user_id"])
    op.create_index("ix_giveaway_participants_invite_code", "giveaway_participants", ["invite_code"], unique=True)
    # At most one winner per giveaway, whatever the application does
    op.create_index(
        "uq_participant_one_winner", "giveaway_participants", ["giveaway_id"],
        unique=True, postgresql_where=sa.text("status = 'winner'"),
    )

    op.create_table(
        "giveaway_task_completions",
        _uuid("id", primary_key=True, nullable=False),
        _uuid("participant_id", sa.ForeignKey("giveaway_participants.id", ondelete="CASCADE"), nullable=False),
        _uuid("task_id", sa.ForeignKey("giveaway_tasks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("points_awarded", sa.Integer(), nullable=False),
        _ts("completed_at"),
        sa.UniqueConstraint("participant_id", "task_id", name="uq_completion_participant_task"),
    )
    op.create_index("ix_giveaway_task_completions_participant_id", "giveaway_task_completions", ["participant_id"])

    op.create_table(
        "giveaway_referrals",
        _uuid("id", primary_key=True, nullable=False),
        _uuid("giveaway_id", sa.ForeignKey("giveaways.id", ondelete="CASCADE"), nullable=False),
        _uuid("inviter_participant_id", sa.ForeignKey("giveaway_participants.id", ondelete="CASCADE"), nullable=False),
        _uuid("referred_user_id", sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("points_awarded", sa.Integer(), nullable=False),
        _ts("created_at"),
        sa.UniqueConstraint("giveaway_id", "referred_user_id", name="uq_referral_giveaway_referred"),
    )
    op.create_index("ix_giveaway_referrals_giveaway_id", "giveaway_referrals", ["giveaway_id"])
    op.create_index("ix_giveaway_referrals_inviter_participant_id", "giveaway_referrals", ["inviter_participant_id"])

    op.create_table(
        "giveaway_selections",
        _uuid("id", primary_key=True, nullable=False),
        _uuid("giveaway_id", sa.ForeignKey("giveaways.id", ondelete="CASCADE"), nullable=False),
        _uuid("winner_user_id", nullable=False),
        sa.Column("method", sa.String(length=16), nullable=False),
        _uuid("selected_by", nullable=True),
        sa.Column("eligible_pool_snapshot", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("reason", sa.String(length=255), nullable=False),
        _ts("selected_at"),
        sa.UniqueConstraint("giveaway_id", name="uq_selection_giveaway"),
        sa.CheckConstraint("method IN ('random','manual')", name="ck_selection_method"),
    )

    op.create_table(
        "giveaway_supports",
        _uuid("id", primary_key=True, nullable=False),
        _uuid("giveaway_id", sa.ForeignKey("giveaways.id", ondelete="CASCADE"), nullable=False),
        _uuid("user_id", sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=8), nullable=False, server_default="inr"),
        sa.Column("donor_name", sa.String(length=160), nullable=False, server_default=""),
        sa.Column("donor_email", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("is_anonymous", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _ts("created_at"),
        sa.CheckConstraint("amount >= 1", name="ck_support_amount_min"),
    )
    op.create_index("ix_giveaway_supports_giveaway_id", "giveaway_supports", ["giveaway_id"])
    op.create_index("ix_giveaway_supports_user_id", "giveaway_supports", ["user_id"])

    op.create_table(
        "giveaway_shipping",
        _uuid("id", primary_key=True, nullable=False),
        _uuid("giveaway_id", sa.ForeignKey("giveaways.id", ondelete="CASCADE"), nullable=False),
        _uuid("user_id", sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("full_name", sa.String(length=160), nullable=False),
        sa.Column("address", sa.Text(), nullable=False),
        sa.Column("city", sa.String(length=120), nullable=False),
        sa.Column("state", sa.String(length=120), nullable=False),
        sa.Column("pincode", sa.String(length=16), nullable=False),
        sa.Column("country", sa.String(length=80), nullable=False),
        sa.Column("phone", sa.String(length=32), nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("giveaway_id", "user_id", name="uq_shipping_giveaway_user"),
    )

def downgrade() -> None:
    op.drop_table("giveaway_shipping")
    op.drop_index("ix_giveaway_supports_user_id", table_name="giveaway_supports")
    op.drop_index("ix_giveaway_supports_giveaway_id", table_name="giveaway_supports")
    op.drop_table("giveaway_supports")
    op.drop_table("giveaway_selections")
    op.drop_index("ix_giveaway_referrals_inviter_participant_id", table_name="giveaway_referrals")
    op.drop_index("ix_giveaway_referrals_giveaway_id", table_name="giveaway_referrals")
    op.drop_table("giveaway_referrals")
    op.drop_index("ix_giveaway_task_completions_participant_id", table_name="giveaway_task_completions")
    op.drop_table("giveaway_task_completions")
    op.drop_index("uq_participant_one_winner", table_name="giveaway_participants")
    op.drop_index("ix_giveaway_participants_invite_code", table_name="giveaway_participants")
    op.drop_index("ix_giveaway_participants_user_id", table_name="giveaway_participants")
    op.drop_index("ix_giveaway_participants_giveaway_id", table_name="giveaway_participants")
    op.drop_table("giveaway_participants")
    op.drop_index("ix_giveaway_tasks_giveaway_id", table_name="giveaway_tasks")
    op.drop_table("giveaway_tasks")
    op.drop_index("ix_giveaways_status", table_name="giveaways")
    op.drop_index("ix_giveaways_slug", table_name="giveaways")
    op.drop_table("giveaways")
    op.drop_index("ix_users_username", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
