"""
Request/response models for the vault HTTP API.
"""

from pydantic import BaseModel, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime


class HealthResponse(BaseModel):
    status: str
    version: str
    db_health: bool
    heartbeat: Dict[str, Any]


class MessageResponse(BaseModel):
    message: str


class ActivityResponse(BaseModel):
    message: str
    last_activity_at: datetime


class SettingsUpdateRequest(BaseModel):
    inactivity_days: Optional[int] = None
    name: Optional[str] = None

    @field_validator('name')
    @classmethod
    def name_must_not_be_blank(cls, v):
        if v is not None and not v.strip():
            raise ValueError('name cannot be empty')
        return v


class AddDependentRequest(BaseModel):
    email: str
    permissions: Optional[Dict[str, bool]] = None

    @field_validator('email')
    @classmethod
    def email_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('email cannot be empty')
        return v.strip().lower()


class UpdatePermissionsRequest(BaseModel):
    permissions: Dict[str, bool]


class AccessRequestCreate(BaseModel):
    owner_id: str
    reason: str

    @field_validator('owner_id')
    @classmethod
    def owner_id_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('owner_id cannot be empty')
        return v

    @field_validator('reason')
    @classmethod
    def reason_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('reason cannot be empty')
        return v


class AccessDecisionRequest(BaseModel):
    admin_note: str = ""


class UserStatsResponse(BaseModel):
    total: int
    owners: int
    dependents: int
    inactive_owners: int


class SweepTransition(BaseModel):
    user_id: str
    email: str
    is_inactive: bool
    elapsed_days: int
    inactivity_days: int


class SweepResponse(BaseModel):
    transitions: List[SweepTransition]
    count: int
