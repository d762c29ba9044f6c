"""Pydantic schemas for Audit Entries."""
from __future__ import annotations
from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, Field

from reservations.models.audit_entry import AuditAction


class AuditEntryOut(BaseModel):
    audit_id: str
    event_id: str
    action: AuditAction
    performed_by: str
    performed_by_email: Optional[str] = None
    timestamp: datetime
    previous_state: Optional[dict[str, Any]] = None
    new_state: Optional[dict[str, Any]] = None
    changes: dict[str, Any] = {}
    review_changes: Optional[list[dict[str, Any]]] = None
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="metadata_")

    model_config = {"from_attributes": True}
