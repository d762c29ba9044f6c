"""AuditEntry ORM model — insert-only history of completed transitions."""
import enum
import uuid
from sqlalchemy import Column, String, DateTime, JSON, Enum as SAEnum
from sqlalchemy.sql import func
from reservations.database import Base


class AuditAction(str, enum.Enum):
    created = "created"
    updated = "updated"
    submitted = "submitted"
    published = "published"
    auto_published = "auto_published"
    rejected = "rejected"
    resubmitted = "resubmitted"
    resubmit_with_edits = "resubmit_with_edits"
    edited = "edited"
    review_updated = "review_updated"
    edit_requested = "edit_requested"
    edit_request_cancelled = "edit_request_cancelled"
    edit_approved = "edit_approved"
    edit_rejected = "edit_rejected"
    deleted = "deleted"
    cancelled = "cancelled"
    restored = "restored"


class AuditEntry(Base):
    __tablename__ = "audit_entries"

    audit_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(40), nullable=False, index=True)
    action = Column(SAEnum(AuditAction), nullable=False)
    performed_by = Column(String(36), nullable=False)
    performed_by_email = Column(String(255), nullable=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now())
    previous_state = Column(JSON, nullable=True)
    new_state = Column(JSON, nullable=True)
    changes = Column(JSON, nullable=False, default=dict)
    review_changes = Column(JSON, nullable=True)
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)
