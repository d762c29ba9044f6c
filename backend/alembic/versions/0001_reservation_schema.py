"""reservation_schema

Revision ID: 0001
Revises:
Create Date: 2026-10-18

Creates the tables of the room-reservation service:
users, reservations, audit_entries.
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- users ---
    op.create_table(
        "users",
        sa.Column("user_id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("display_name", sa.String(100), nullable=False, server_default=""),
        sa.Column("role", sa.String(20), nullable=True),
        sa.Column("department", sa.String(100), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- reservations ---
    op.create_table(
        "reservations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("event_id", sa.String(40), nullable=False, unique=True),
        sa.Column("user_id", sa.String(36), nullable=False, index=True),
        sa.Column("calendar_owner", sa.String(255), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft", index=True),
        sa.Column("is_deleted", sa.Boolean, nullable=False, server_default="0"),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("event_title", sa.String(255), nullable=False, server_default=""),
        sa.Column("event_description", sa.Text, nullable=False, server_default=""),
        sa.Column("start_date_time", sa.DateTime, nullable=True, index=True),
        sa.Column("end_date_time", sa.DateTime, nullable=True, index=True),
        sa.Column("locations", sa.JSON, nullable=False),
        sa.Column("location_display_names", sa.JSON, nullable=False),
        sa.Column("categories", sa.JSON, nullable=False),
        sa.Column("services", sa.JSON, nullable=False),
        sa.Column("attendee_count", sa.Integer, nullable=True),
        sa.Column("setup_time", sa.String(5), nullable=True),
        sa.Column("teardown_time", sa.String(5), nullable=True),
        sa.Column("door_open_time", sa.String(5), nullable=True),
        sa.Column("door_close_time", sa.String(5), nullable=True),
        sa.Column("setup_notes", sa.Text, nullable=True),
        sa.Column("door_notes", sa.Text, nullable=True),
        sa.Column("event_notes", sa.Text, nullable=True),
        sa.Column("room_reservation_data", sa.JSON, nullable=False),
        sa.Column("status_history", sa.JSON, nullable=False),
        sa.Column("pending_edit_request", sa.JSON, nullable=True),
        sa.Column("graph_data", sa.JSON, nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_by", sa.String(255), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("published_by", sa.String(255), nullable=True),
        sa.Column("auto_published", sa.Boolean, nullable=False, server_default="0"),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_by", sa.String(255), nullable=True),
        sa.Column("rejection_reason", sa.Text, nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_by", sa.String(36), nullable=True),
        sa.Column("deleted_by_email", sa.String(255), nullable=True),
        sa.Column("previous_status", sa.String(20), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by", sa.String(36), nullable=True),
        sa.Column("cancel_reason", sa.Text, nullable=True),
        sa.Column("created_by", sa.String(36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_modified_date_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_modified_by", sa.String(255), nullable=True),
    )

    # --- audit_entries (insert-only) ---
    op.create_table(
        "audit_entries",
        sa.Column("audit_id", sa.String(36), primary_key=True),
        sa.Column("event_id", sa.String(40), nullable=False, index=True),
        sa.Column("action", sa.String(30), nullable=False),
        sa.Column("performed_by", sa.String(36), nullable=False),
        sa.Column("performed_by_email", sa.String(255), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("previous_state", sa.JSON, nullable=True),
        sa.Column("new_state", sa.JSON, nullable=True),
        sa.Column("changes", sa.JSON, nullable=False),
        sa.Column("review_changes", sa.JSON, nullable=True),
        sa.Column("metadata", sa.JSON, nullable=False),
    )


def downgrade() -> None:
    op.drop_table("audit_entries")
    op.drop_table("reservations")
    op.drop_table("users")
