"""Initial schema: drivers, trips, payments and cancellations.

Revision ID: 001
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None

NON_TERMINAL = sa.text("status NOT IN ('completed', 'cancelled')")


def upgrade() -> None:
    # ── drivers ───────────────────────────────────────────────────────
    op.create_table(
        "drivers",
        sa.Column("driver_id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("vehicle_category", sa.String(20), nullable=False),
        sa.Column("verification_status", sa.String(20), nullable=False),
        sa.Column("rejection_reason", sa.Text, nullable=True),
        sa.Column("suspension_reason", sa.Text, nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_online", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_available", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("current_trip_id", sa.String(36), nullable=True),
        sa.Column("current_lat", sa.Float, nullable=True),
        sa.Column("current_lng", sa.Float, nullable=True),
        sa.Column("location_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("location_version", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_rides", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_deliveries", sa.Integer, nullable=False, server_default="0"),
        sa.Column("rating", sa.Float, nullable=False, server_default="0"),
        sa.Column("total_earnings", sa.Float, nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "idx_drivers_matchable",
        "drivers",
        ["is_online", "is_available", "verification_status"],
    )

    # ── trips ─────────────────────────────────────────────────────────
    op.create_table(
        "trips",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("requester_id", sa.String(64), nullable=False),
        sa.Column(
            "driver_id",
            sa.String(64),
            sa.ForeignKey("drivers.driver_id"),
            nullable=True,
        ),
        sa.Column("pickup_lat", sa.Float, nullable=False),
        sa.Column("pickup_lng", sa.Float, nullable=False),
        sa.Column("pickup_address", sa.Text, nullable=False),
        sa.Column("pickup_place_id", sa.String(255), nullable=True),
        sa.Column("destination_lat", sa.Float, nullable=False),
        sa.Column("destination_lng", sa.Float, nullable=False),
        sa.Column("destination_address", sa.Text, nullable=False),
        sa.Column("destination_place_id", sa.String(255), nullable=True),
        sa.Column("category", sa.String(20), nullable=False),
        sa.Column("fare", sa.Float, nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("notes", sa.Text, nullable=False, server_default=""),
        sa.Column("idempotency_key", sa.String(64), unique=True, nullable=True),
        sa.Column("recipient_name", sa.String(120), nullable=True),
        sa.Column("recipient_phone", sa.String(20), nullable=True),
        sa.Column("package_description", sa.Text, nullable=True),
        sa.Column("proof_photo_url", sa.Text, nullable=True),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("picked_up_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by", sa.String(20), nullable=True),
        sa.Column("cancellation_reason", sa.Text, nullable=True),
        sa.Column("cancellation_fee", sa.Float, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    # One active trip per (requester, kind), enforced even across racing creates
    op.create_index(
        "uq_trips_active_requester",
        "trips",
        ["requester_id", "kind"],
        unique=True,
        postgresql_where=NON_TERMINAL,
    )
    op.create_index("idx_trips_status", "trips", ["status"])
    op.create_index("idx_trips_driver", "trips", ["driver_id"])
    op.create_index("idx_trips_requester", "trips", ["requester_id"])

    # ── payments ──────────────────────────────────────────────────────
    op.create_table(
        "payments",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("trip_id", sa.String(36), sa.ForeignKey("trips.id"), nullable=False),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("requester_id", sa.String(64), nullable=False),
        sa.Column("driver_id", sa.String(64), nullable=False),
        sa.Column("amount", sa.Float, nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_payments_trip", "payments", ["trip_id"])

    # ── cancellations ─────────────────────────────────────────────────
    op.create_table(
        "cancellations",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("trip_id", sa.String(36), sa.ForeignKey("trips.id"), nullable=False),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("requester_id", sa.String(64), nullable=False),
        sa.Column("driver_id", sa.String(64), nullable=True),
        sa.Column("cancelled_by", sa.String(20), nullable=False),
        sa.Column("reason", sa.Text, nullable=False),
        sa.Column("fee", sa.Float, nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_cancellations_trip", "cancellations", ["trip_id"])


def downgrade() -> None:
    op.drop_table("cancellations")
    op.drop_table("payments")
    op.drop_table("trips")
    op.drop_table("drivers")
