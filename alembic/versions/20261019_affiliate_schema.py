"""Create profiles, affiliate links, click/conversion events, commission tiers and user progression.

Revision ID: 3f9c1a7e2b40
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

revision = "3f9c1a7e2b40"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("first_name", sa.String(100), nullable=True),
        sa.Column("last_name", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
    )
    op.create_table(
        "affiliate_links",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), nullable=False, index=True),
        sa.Column("code", sa.String(64), nullable=False, unique=True, index=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_table(
        "clicks",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "affiliate_link_id", sa.String(36),
            sa.ForeignKey("affiliate_links.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("referrer", sa.String(1000), nullable=True),
        sa.Column("user_agent", sa.String(500), nullable=True),
        sa.Column("device_type", sa.String(10), nullable=True),
        sa.Column("path", sa.String(1000), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
    )
    op.create_index("ix_clicks_link_created", "clicks", ["affiliate_link_id", "created_at"])
    op.create_table(
        "conversions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "affiliate_link_id", sa.String(36),
            sa.ForeignKey("affiliate_links.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("product", sa.String(200), nullable=False),
        sa.Column("amount", sa.Float, nullable=False),
        sa.Column("status", sa.String(20), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("amount > 0", name="ck_conversions_amount_positive"),
    )
    op.create_index("ix_conversions_link_created", "conversions", ["affiliate_link_id", "created_at"])
    op.create_index("ix_conversions_status", "conversions", ["status"])
    op.create_table(
        "commission_tiers",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("min_revenue", sa.Float, nullable=False),
        sa.Column("max_revenue", sa.Float, nullable=True),
        sa.Column("commission_rate", sa.Float, nullable=False),
        sa.Column("color", sa.String(20), nullable=False, server_default="#CD7F32"),
        sa.Column("created_at", sa.DateTime(timezone=True)),
    )
    op.create_table(
        "user_progression",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), nullable=False, unique=True, index=True),
        sa.Column("current_tier_id", sa.Integer, sa.ForeignKey("commission_tiers.id"), nullable=True),
        sa.Column("total_revenue", sa.Float, nullable=False, server_default="0"),
        sa.Column("total_commission", sa.Float, nullable=False, server_default="0"),
        sa.Column("manual_override", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
    )


def downgrade() -> None:
    op.drop_table("user_progression")
    op.drop_table("commission_tiers")
    op.drop_index("ix_conversions_status", table_name="conversions")
    op.drop_index("ix_conversions_link_created", table_name="conversions")
    op.drop_table("conversions")
    op.drop_index("ix_clicks_link_created", table_name="clicks")
    op.drop_table("clicks")
    op.drop_table("affiliate_links")
    op.drop_table("profiles")
