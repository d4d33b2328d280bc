"""Initial schema: users, routes, busses, trips, bookings, idempotency keys.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'commuter'")),
        *_timestamps(),
        sa.CheckConstraint(
            "role IN ('admin', 'ntc', 'bus-owner', 'commuter')", name="check_user_role"
        ),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "routes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("town_one", sa.String(100), nullable=False),
        sa.Column("town_two", sa.String(100), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("town_one", "town_two", name="uq_route_towns"),
    )
    op.create_index("ix_routes_id", "routes", ["id"])

    op.create_table(
        "busses",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("owner_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("route_id", sa.Integer(), sa.ForeignKey("routes.id"), nullable=False),
        sa.Column("busno", sa.String(20), nullable=False, unique=True),
        sa.Column("permit_no", sa.String(50), nullable=False, unique=True),
        sa.Column("seat_count", sa.Integer(), nullable=False),
        sa.Column("schedule_version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.CheckConstraint("seat_count > 0", name="check_bus_seat_count_positive"),
    )
    op.create_index("ix_busses_id", "busses", ["id"])
    op.create_index("ix_busses_owner_id", "busses", ["owner_id"])
    op.create_index("ix_busses_route_id", "busses", ["route_id"])

    op.create_table(
        "trips",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("bus_id", sa.Integer(), sa.ForeignKey("busses.id"), nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("start_from", sa.String(100), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("end_at > start_at", name="check_trip_window"),
    )
    op.create_index("ix_trips_id", "trips", ["id"])
    # Serves the per-bus overlap check and the owner's trip listing
    op.create_index("ix_trips_bus_start", "trips", ["bus_id", "start_at"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("trip_id", sa.Integer(), sa.ForeignKey("trips.id"), nullable=False),
        sa.Column("seat", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        *_timestamps(),
        # ONE ROW PER SEAT PER TRIP: this constraint, not the service's
        # pre-check, is what makes concurrent bookings of a seat safe.
        sa.UniqueConstraint("trip_id", "seat", name="uq_booking_trip_seat"),
        sa.CheckConstraint("seat > 0", name="check_booking_seat_positive"),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_trip_id", "bookings", ["trip_id"])
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])

    op.create_table(
        "idempotency_keys",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("key", sa.String(120), nullable=False, unique=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("trip_id", sa.Integer(), sa.ForeignKey("trips.id"), nullable=False),
        sa.Column("seats", sa.String(500), nullable=False),
        *_timestamps(),
    )


def downgrade() -> None:
    op.drop_table("idempotency_keys")
    op.drop_table("bookings")
    op.drop_table("trips")
    op.drop_table("busses")
    op.drop_table("routes")
    op.drop_table("users")
