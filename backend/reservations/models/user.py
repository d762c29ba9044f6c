"""User ORM model — actors with a role and an optional department."""
import enum
import uuid
from sqlalchemy import Column, String, DateTime, Enum as SAEnum
from sqlalchemy.sql import func
from reservations.database import Base


class Role(str, enum.Enum):
    viewer = "viewer"
    requester = "requester"
    approver = "approver"
    admin = "admin"


class User(Base):
    __tablename__ = "users"

    user_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), nullable=False, unique=True)
    display_name = Column(String(100), nullable=False, default="")
    role = Column(SAEnum(Role), nullable=True)  # None -> derived (admin domain or viewer)
    department = Column(String(100), nullable=True)
    phone = Column(String(50), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
