"""Field-level change detection for reservations.

Used to
- capture approver modifications while a request is ``pending`` (stashed as
  ``room_reservation_data["reviewChanges"]`` and surfaced once at publish),
- decide whether a published-event edit is worth notifying the requester about,
- prune a requester's pending edit proposal when an approver has already
  changed the same fields.
"""
import re
from datetime import datetime
from typing import Any, Iterable, Optional

NOTIFIABLE_FIELDS = [
    "event_title",
    "event_description",
    "start_date_time",
    "end_date_time",
    "location_display_names",
    "locations",
    "attendee_count",
    "categories",
    "setup_time",
    "teardown_time",
    "door_open_time",
    "door_close_time",
    "services",
]

FIELD_DISPLAY_NAMES = {
    "event_title": "Event Title",
    "event_description": "Description",
    "start_date_time": "Start Date/Time",
    "end_date_time": "End Date/Time",
    "location_display_names": "Location(s)",
    "locations": "Room(s)",
    "attendee_count": "Expected Attendees",
    "categories": "Categories",
    "setup_time": "Setup Time",
    "teardown_time": "Teardown Time",
    "door_open_time": "Door Open Time",
    "door_close_time": "Door Close Time",
    "services": "Services",
}

# Changes to these warrant an "event updated" notice to the requester
KEY_FIELDS = frozenset({
    "event_title", "start_date_time", "end_date_time", "locations", "location_display_names",
})

# Editing one field of a group invalidates the requester's proposal for all of them
COUPLED_FIELDS = {
    "locations": ("location_display_names",),
    "location_display_names": ("locations",),
}

_DATETIME_NO_SECONDS = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}$")
_DATETIME_WITH_SECONDS = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}$")


def get_field_display_name(field: str) -> str:
    return FIELD_DISPLAY_NAMES.get(field, field)


def _normalize_empty(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str) and value.strip() == "":
        return None
    if isinstance(value, (list, tuple, set)) and len(value) == 0:
        return None
    return value


def _as_datetime_string(value: Any) -> Optional[str]:
    if isinstance(value, datetime):
        return value.replace(tzinfo=None).strftime("%Y-%m-%dT%H:%M:%S")
    if isinstance(value, str):
        if _DATETIME_NO_SECONDS.match(value):
            return value + ":00"
        if _DATETIME_WITH_SECONDS.match(value):
            return value
    return None


def values_are_different(old: Any, new: Any) -> bool:
    """Compare two field values, ignoring representation-only differences."""
    a = _normalize_empty(old)
    b = _normalize_empty(new)

    if a is None and b is None:
        return False
    if a is None or b is None:
        return True

    # Order-independent for room / category lists
    if isinstance(a, (list, tuple, set)) and isinstance(b, (list, tuple, set)):
        return sorted(map(str, a)) != sorted(map(str, b))

    if isinstance(a, bool) or isinstance(b, bool):
        return bool(a) != bool(b)

    if isinstance(a, (int, float)) or isinstance(b, (int, float)):
        try:
            return float(a) != float(b)
        except (TypeError, ValueError):
            return True

    a_dt, b_dt = _as_datetime_string(a), _as_datetime_string(b)
    if a_dt is not None and b_dt is not None:
        return a_dt != b_dt

    return str(a) != str(b)


def detect_changes(
    before: Any,
    proposed: dict[str, Any],
    fields: Optional[Iterable[str]] = None,
) -> list[dict[str, Any]]:
    """Diff ``proposed`` against the stored record (an ORM object or a dict).

    Fields missing from ``proposed`` were not modified and are skipped.
    """
    changes = []
    for field in fields or NOTIFIABLE_FIELDS:
        if field not in proposed:
            continue
        new_value = proposed[field]
        if isinstance(before, dict):
            old_value = before.get(field)
        else:
            old_value = getattr(before, field, None)
        if values_are_different(old_value, new_value):
            changes.append({
                "field": field,
                "displayName": get_field_display_name(field),
                "oldValue": _json_safe(old_value),
                "newValue": _json_safe(new_value),
            })
    return changes


def has_key_changes(changes: list[dict[str, Any]]) -> bool:
    return any(change["field"] in KEY_FIELDS for change in changes)


def prune_applied_changes(requested_changes: dict[str, Any], applied_fields: Iterable[str]) -> dict[str, Any]:
    """Drop every field the approver just applied (plus coupled fields).

    Fields the approver did not touch are kept. An empty result is returned
    as-is; closing the edit request is left to an explicit decision.
    """
    removed: set[str] = set()
    for field in applied_fields:
        removed.add(field)
        removed.update(COUPLED_FIELDS.get(field, ()))
    return {field: value for field, value in (requested_changes or {}).items() if field not in removed}


def format_datetime(value: Any) -> Optional[str]:
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    return value.strftime("%A, %B %d, %Y at %I:%M %p").replace(" 0", " ")


def format_change_value(field: str, value: Any, location_names: Optional[dict[str, str]] = None) -> str:
    """Human-readable rendering for notification tables."""
    if value is None or value == "":
        return "(not set)"

    if field in ("start_date_time", "end_date_time"):
        return format_datetime(value) or str(value)

    if isinstance(value, bool):
        return "Yes" if value else "No"

    if field == "locations" and location_names and isinstance(value, list):
        if not value:
            return "(none)"
        return ", ".join(location_names.get(str(room), str(room)) for room in value)

    if isinstance(value, list):
        if not value:
            return "(none)"
        rendered = []
        for item in value:
            if isinstance(item, dict):
                rendered.append(str(item.get("displayName") or item.get("name") or item))
            else:
                rendered.append(str(item))
        return ", ".join(rendered)

    return str(value)


def format_changes_for_notification(changes: list[dict[str, Any]], location_names=None) -> list[dict[str, str]]:
    return [
        {
            "displayName": change["displayName"],
            "oldValue": format_change_value(change["field"], change["oldValue"], location_names),
            "newValue": format_change_value(change["field"], change["newValue"], location_names),
        }
        for change in changes
    ]


def _json_safe(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.replace(tzinfo=None).strftime("%Y-%m-%dT%H:%M:%S")
    if isinstance(value, (set, tuple)):
        return list(value)
    return value
