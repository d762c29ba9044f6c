"""Reservation ORM model — the room-booking record moving through the lifecycle.

Start/end are naive wall-clock datetimes in ``settings.CALENDAR_TIMEZONE``;
every comparison (conflicts, change detection) uses that representation.
Nested, document-shaped data (requester block, status history, edit request,
external linkage) is stored in JSON columns.
"""
import enum
import uuid
from sqlalchemy import Column, String, Text, DateTime, Integer, Boolean, JSON, Enum as SAEnum
from reservations.database import Base


class ReservationStatus(str, enum.Enum):
    draft = "draft"
    pending = "pending"
    published = "published"
    rejected = "rejected"
    deleted = "deleted"
    cancelled = "cancelled"


TERMINAL_STATUSES = (ReservationStatus.deleted, ReservationStatus.cancelled)


def _new_event_id() -> str:
    return f"evt-{uuid.uuid4().hex}"


class Reservation(Base):
    __tablename__ = "reservations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(40), nullable=False, unique=True, default=_new_event_id)
    user_id = Column(String(36), nullable=False, index=True)  # owner
    calendar_owner = Column(String(255), nullable=True)

    status = Column(SAEnum(ReservationStatus), nullable=False, default=ReservationStatus.draft, index=True)
    is_deleted = Column(Boolean, nullable=False, default=False)
    version = Column(Integer, nullable=False, default=1)

    # Calendar fields
    event_title = Column(String(255), nullable=False, default="")
    event_description = Column(Text, nullable=False, default="")
    start_date_time = Column(DateTime, nullable=True, index=True)
    end_date_time = Column(DateTime, nullable=True, index=True)
    locations = Column(JSON, nullable=False, default=list)  # room ids, unordered
    location_display_names = Column(JSON, nullable=False, default=list)
    categories = Column(JSON, nullable=False, default=list)
    services = Column(JSON, nullable=False, default=list)
    attendee_count = Column(Integer, nullable=True)
    setup_time = Column(String(5), nullable=True)  # "HH:MM"
    teardown_time = Column(String(5), nullable=True)
    door_open_time = Column(String(5), nullable=True)
    door_close_time = Column(String(5), nullable=True)
    setup_notes = Column(Text, nullable=True)
    door_notes = Column(Text, nullable=True)
    event_notes = Column(Text, nullable=True)

    room_reservation_data = Column(JSON, nullable=False, default=dict)
    status_history = Column(JSON, nullable=False, default=list)
    pending_edit_request = Column(JSON, nullable=True)
    graph_data = Column(JSON, nullable=True)

    # Review / lifecycle metadata
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    reviewed_by = Column(String(255), nullable=True)
    published_at = Column(DateTime(timezone=True), nullable=True)
    published_by = Column(String(255), nullable=True)
    auto_published = Column(Boolean, nullable=False, default=False)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    rejected_by = Column(String(255), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    deleted_by = Column(String(36), nullable=True)
    deleted_by_email = Column(String(255), nullable=True)
    previous_status = Column(String(20), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by = Column(String(36), nullable=True)
    cancel_reason = Column(Text, nullable=True)

    created_by = Column(String(36), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=True)
    last_modified_date_time = Column(DateTime(timezone=True), nullable=True)
    last_modified_by = Column(String(255), nullable=True)

    @property
    def requester_email(self):
        return (self.room_reservation_data or {}).get("requesterEmail")

    @property
    def requester_department(self):
        return (self.room_reservation_data or {}).get("department")
