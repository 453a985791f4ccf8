"""services catalogue, provider availability, reviews

Revision ID: 0003_catalogue_reviews
Revises: 0002_webhooks_messages_audit
Create Date: 2026-10-20
"""

from alembic import op
import sqlalchemy as sa

revision = "0003_catalogue_reviews"
down_revision = "0002_webhooks_messages_audit"
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        "services",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("provider_id", sa.String(length=36), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("category", sa.String(length=60), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False, server_default="60"),
        sa.Column("image_url", sa.String(length=500), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_services_provider_id", "services", ["provider_id"])
    op.create_index("ix_services_category", "services", ["category"])
    op.create_index("ix_services_is_active", "services", ["is_active"])

    op.create_table(
        "provider_availability",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("provider_id", sa.String(length=36), nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_provider_availability_day"),
    )
    op.create_index("ix_provider_availability_provider_id", "provider_availability", ["provider_id"])

    op.create_table(
        "reviews",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("booking_id", sa.String(length=36), nullable=False),
        sa.Column("reviewer_id", sa.String(length=36), nullable=False),
        sa.Column("provider_id", sa.String(length=36), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("comment", sa.Text(), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("rating BETWEEN 1 AND 5", name="ck_reviews_rating"),
    )
    op.create_index("ix_reviews_booking_id", "reviews", ["booking_id"], unique=True)
    op.create_index("ix_reviews_reviewer_id", "reviews", ["reviewer_id"])
    op.create_index("ix_reviews_provider_id", "reviews", ["provider_id"])

    # Bookings that overlap are looked up per provider and time range.
    op.create_index("ix_bookings_provider_start", "bookings", ["provider_id", "start_time"])

def downgrade() -> None:
    op.drop_index("ix_bookings_provider_start", table_name="bookings")
    op.drop_table("reviews")
    op.drop_table("provider_availability")
    op.drop_table("services")
