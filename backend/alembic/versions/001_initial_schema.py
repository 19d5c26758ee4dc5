"""Initial schema: users, instruments, reservations, meetings, memberships.

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
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'member'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint("role IN ('admin', 'member')", name="check_user_role"),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "instruments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.String(2000), nullable=False, server_default=sa.text("''")),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'AVAILABLE'")),
        sa.Column("image_url", sa.String(1024), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "type IN ('STRING', 'WIND', 'PERCUSSION', 'KEYBOARD')", name="check_instrument_type"
        ),
        sa.CheckConstraint(
            "status IN ('AVAILABLE', 'OUT_OF_STOCK', 'MAINTENANCE')", name="check_instrument_status"
        ),
    )
    op.create_index("ix_instruments_id", "instruments", ["id"])
    op.create_index("ix_instruments_type_status", "instruments", ["type", "status"])

    op.create_table(
        "reservations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "instrument_id", sa.Integer(), sa.ForeignKey("instruments.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'ACTIVE'")),
        *_timestamps(),
        sa.CheckConstraint("end_date >= start_date", name="check_reservation_range"),
        sa.CheckConstraint("status IN ('ACTIVE', 'FINISHED')", name="check_reservation_status"),
    )
    op.create_index("ix_reservations_id", "reservations", ["id"])
    op.create_index("ix_reservations_user_id", "reservations", ["user_id"])
    op.create_index("ix_reservations_instrument_id", "reservations", ["instrument_id"])
    # OVERLAP LOOKUP: the reserve path scans ACTIVE reservations of one
    # instrument ending on or after the requested start date, under the
    # instrument lock. This index keeps that critical section short.
    op.create_index(
        "ix_reservations_instrument_status_dates",
        "reservations",
        ["instrument_id", "status", "start_date", "end_date"],
    )

    op.create_table(
        "meetings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "reservation_id", sa.Integer(), sa.ForeignKey("reservations.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("room", sa.String(20), nullable=False),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'ACTIVE'")),
        *_timestamps(),
        sa.CheckConstraint("end_time > start_time", name="check_meeting_time_range"),
        sa.CheckConstraint(
            "room IN ('SPRINGSTEEN', 'DYLAN', 'ARMSTRONG', 'MARTIN')", name="check_meeting_room"
        ),
        sa.CheckConstraint(
            "status IN ('ACTIVE', 'FINISHED', 'CANCELLED')", name="check_meeting_status"
        ),
    )
    op.create_index("ix_meetings_id", "meetings", ["id"])
    op.create_index("ix_meetings_reservation_id", "meetings", ["reservation_id"])
    op.create_index("ix_meetings_room_day_status", "meetings", ["room", "day", "status"])

    op.create_table(
        "meeting_users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("meeting_id", sa.Integer(), sa.ForeignKey("meetings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("meeting_id", "user_id", name="uq_meeting_user"),
    )
    op.create_index("ix_meeting_users_meeting_id", "meeting_users", ["meeting_id"])
    op.create_index("ix_meeting_users_user_id", "meeting_users", ["user_id"])


def downgrade() -> None:
    op.drop_table("meeting_users")
    op.drop_table("meetings")
    op.drop_table("reservations")
    op.drop_table("instruments")
    op.drop_table("users")
