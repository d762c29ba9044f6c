"""Pydantic schemas for Users."""
from __future__ import annotations
from datetime import datetime
from typing import Optional
from pydantic import BaseModel

from reservations.models.user import Role


class UserCreate(BaseModel):
    email: str
    display_name: str = ""
    role: Optional[Role] = None
    department: Optional[str] = None
    phone: Optional[str] = None


class UserUpdate(BaseModel):
    display_name: Optional[str] = None
    role: Optional[Role] = None
    department: Optional[str] = None
    phone: Optional[str] = None


class UserOut(BaseModel):
    user_id: str
    email: str
    display_name: str
    role: Optional[Role] = None
    department: Optional[str] = None
    phone: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PermissionsOut(BaseModel):
    role: Role
    department: Optional[str] = None
    departmentEditableFields: list[str] = []
    canEditDepartmentFields: bool
    canViewCalendar: bool
    canSubmitReservation: bool
    canCreateEvents: bool
    canEditEvents: bool
    canDeleteEvents: bool
    canApproveReservations: bool
    canViewAllReservations: bool
    isAdmin: bool
