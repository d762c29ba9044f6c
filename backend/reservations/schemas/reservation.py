"""Pydantic schemas for Reservations.

Inputs use the stored snake_case field names. Every mutating body accepts the
client's last-seen version as ``_version``; responses emit it under the same
key and mirror the calendar fields into ``calendarData`` for older clients.
"""
from __future__ import annotations
from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, Field, computed_field

from reservations.models.reservation import ReservationStatus

VERSIONED = {"populate_by_name": True}


class RequesterInfo(BaseModel):
    requester_name: Optional[str] = None
    requester_email: Optional[str] = None
    department: Optional[str] = None
    phone: Optional[str] = None

    def to_room_data(self) -> dict[str, Any]:
        data = self.model_dump(exclude_unset=True)
        keys = {"requester_name": "requesterName", "requester_email": "requesterEmail"}
        return {keys.get(key, key): value for key, value in data.items()}


class ReservationFields(BaseModel):
    event_title: Optional[str] = None
    event_description: Optional[str] = None
    start_date_time: Optional[datetime] = None
    end_date_time: Optional[datetime] = None
    locations: Optional[list[str]] = None
    location_display_names: Optional[list[str]] = None
    categories: Optional[list[str]] = None
    services: Optional[list[str]] = None
    attendee_count: Optional[int] = None
    setup_time: Optional[str] = None
    teardown_time: Optional[str] = None
    door_open_time: Optional[str] = None
    door_close_time: Optional[str] = None
    setup_notes: Optional[str] = None
    door_notes: Optional[str] = None
    event_notes: Optional[str] = None

    def calendar_fields(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True, include=set(ReservationFields.model_fields))


class DraftCreate(ReservationFields):
    requester: Optional[RequesterInfo] = None


class DraftUpdate(ReservationFields):
    version: Optional[int] = Field(default=None, alias="_version")
    requester: Optional[RequesterInfo] = None

    model_config = VERSIONED


class ReservationEdit(ReservationFields):
    version: Optional[int] = Field(default=None, alias="_version")

    model_config = VERSIONED


class AdminUpdate(ReservationFields):
    version: Optional[int] = Field(default=None, alias="_version")
    force_update: bool = False

    model_config = VERSIONED


class VersionedRequest(BaseModel):
    version: Optional[int] = Field(default=None, alias="_version")

    model_config = VERSIONED


class ResubmitRequest(VersionedRequest):
    notes: Optional[str] = None


class CancelRequest(VersionedRequest):
    reason: Optional[str] = None


class RestoreRequest(VersionedRequest):
    force: bool = False


class PublishRequest(VersionedRequest):
    force_publish: bool = False
    notes: Optional[str] = None


class RejectRequest(VersionedRequest):
    reason: Optional[str] = None
    allow_resubmission: bool = True


class EditRequestCreate(VersionedRequest):
    requested_changes: ReservationFields
    reason: Optional[str] = None


class ApproveEditRequest(VersionedRequest):
    overrides: Optional[ReservationFields] = None
    notes: Optional[str] = None
    force: bool = False


class RejectEditRequest(VersionedRequest):
    reason: Optional[str] = None


class ReservationOut(BaseModel):
    id: str
    event_id: str
    user_id: str
    calendar_owner: Optional[str] = None
    status: ReservationStatus
    is_deleted: bool
    version: int = Field(serialization_alias="_version")

    event_title: str
    event_description: str = ""
    start_date_time: Optional[datetime] = None
    end_date_time: Optional[datetime] = None
    locations: list[str] = []
    location_display_names: list[str] = []
    categories: list[str] = []
    services: list[str] = []
    attendee_count: Optional[int] = None
    setup_time: Optional[str] = None
    teardown_time: Optional[str] = None
    door_open_time: Optional[str] = None
    door_close_time: Optional[str] = None
    setup_notes: Optional[str] = None
    door_notes: Optional[str] = None
    event_notes: Optional[str] = None

    room_reservation_data: dict[str, Any] = {}
    status_history: list[dict[str, Any]] = []
    pending_edit_request: Optional[dict[str, Any]] = None
    graph_data: Optional[dict[str, Any]] = None

    submitted_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    published_at: Optional[datetime] = None
    published_by: Optional[str] = None
    auto_published: bool = False
    rejected_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    deleted_at: Optional[datetime] = None
    deleted_by: Optional[str] = None
    previous_status: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    cancel_reason: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    last_modified_date_time: Optional[datetime] = None
    last_modified_by: Optional[str] = None

    model_config = {"from_attributes": True}

    @computed_field(alias="calendarData")
    @property
    def calendar_data(self) -> dict[str, Any]:
        """Mirror of the calendar fields in the legacy nested shape."""
        return {
            "eventTitle": self.event_title,
            "eventDescription": self.event_description,
            "startDateTime": self.start_date_time.isoformat() if self.start_date_time else None,
            "endDateTime": self.end_date_time.isoformat() if self.end_date_time else None,
            "locations": list(self.locations),
            "locationDisplayNames": list(self.location_display_names),
            "categories": list(self.categories),
            "services": list(self.services),
            "attendeeCount": self.attendee_count,
            "setupTime": self.setup_time,
            "teardownTime": self.teardown_time,
            "doorOpenTime": self.door_open_time,
            "doorCloseTime": self.door_close_time,
        }


class TransitionOut(BaseModel):
    success: bool = True
    message: Optional[str] = None
    event: ReservationOut
    graph_synced: Optional[bool] = None
    review_changes: list[dict[str, Any]] = []
    changes: list[dict[str, Any]] = []
