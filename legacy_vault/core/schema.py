"""
Record types for the access-control core.
Records hold plain id references; the *View types carry expanded user summaries.
"""

from dataclasses import dataclass, asdict, fields
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Mapping


class Role(str, Enum):
    OWNER = "owner"
    DEPENDENT = "dependent"
    ADMIN = "admin"


class Category(str, Enum):
    ASSETS = "assets"
    LIABILITIES = "liabilities"
    INSURANCE = "insurance"
    CONTACTS = "contacts"
    EMERGENCY = "emergency"
    NOTES = "notes"


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class AuditAction(str, Enum):
    # entry_* rows are written to the same log by the knowledge entry CRUD service
    ENTRY_CREATED = "entry_created"
    ENTRY_UPDATED = "entry_updated"
    ENTRY_DELETED = "entry_deleted"
    DEPENDENT_ADDED = "dependent_added"
    DEPENDENT_REMOVED = "dependent_removed"
    ACCESS_REQUESTED = "access_requested"
    ACCESS_APPROVED = "access_approved"
    ACCESS_REJECTED = "access_rejected"
    VAULT_VIEWED = "vault_viewed"
    SETTINGS_UPDATED = "settings_updated"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class Permissions:
    """Per-category read permissions. All six categories are always present."""
    assets: bool = False
    liabilities: bool = False
    insurance: bool = False
    contacts: bool = False
    emergency: bool = False
    notes: bool = False

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, bool]], require_all: bool = False) -> 'Permissions':
        """Build from a category->flag mapping.

        Unknown keys are rejected. Missing categories default to False unless
        require_all is set, in which case a missing category raises ValueError.
        """
        data = dict(data or {})
        known = {c.value for c in Category}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown permission categories: {sorted(unknown)}")
        if require_all:
            missing = known - set(data)
            if missing:
                raise ValueError(f"Missing permission categories: {sorted(missing)}")
        for key, value in data.items():
            if not isinstance(value, bool):
                raise ValueError(f"Permission '{key}' must be a boolean")
        return cls(**data)

    def allows(self, category: Category) -> bool:
        return getattr(self, Category(category).value)

    def permitted(self) -> List[Category]:
        """Categories whose flag is set, in canonical order."""
        return [c for c in Category if self.allows(c)]

    def to_dict(self) -> Dict[str, bool]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class User:
    id: str
    name: str
    email: str
    role: Role
    last_activity_at: datetime
    inactivity_days: int
    is_inactive: bool
    created_at: datetime

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['role'] = self.role.value
        data['last_activity_at'] = _iso(self.last_activity_at)
        data['created_at'] = _iso(self.created_at)
        return data


@dataclass
class UserSummary:
    """Expanded view of a referenced user."""
    id: str
    name: str
    email: str
    is_inactive: Optional[bool] = None
    last_activity_at: Optional[datetime] = None
    role: Optional[Role] = None

    @classmethod
    def of(cls, user: User, with_activity: bool = False, with_role: bool = False) -> 'UserSummary':
        summary = cls(user.id, user.name, user.email)
        if with_activity:
            summary.is_inactive = user.is_inactive
            summary.last_activity_at = user.last_activity_at
        if with_role:
            summary.role = user.role
        return summary

    def to_dict(self) -> Dict:
        data = {"id": self.id, "name": self.name, "email": self.email}
        if self.role is not None:
            data["role"] = self.role.value
        if self.is_inactive is not None:
            data["is_inactive"] = self.is_inactive
            data["last_activity_at"] = _iso(self.last_activity_at)
        return data


@dataclass
class DependentRelationship:
    id: str
    owner_id: str
    dependent_id: str
    permissions: Permissions
    access_granted: bool
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "dependent_id": self.dependent_id,
            "permissions": self.permissions.to_dict(),
            "access_granted": self.access_granted,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass
class RelationshipView:
    relationship: DependentRelationship
    owner: Optional[UserSummary]
    dependent: Optional[UserSummary]

    def to_dict(self) -> Dict:
        data = self.relationship.to_dict()
        data["owner"] = self.owner.to_dict() if self.owner else None
        data["dependent"] = self.dependent.to_dict() if self.dependent else None
        return data


@dataclass
class AccessRequest:
    id: str
    owner_id: str
    dependent_id: str
    reason: str
    status: RequestStatus
    created_at: datetime
    admin_note: str = ""
    processed_by: Optional[str] = None
    processed_at: Optional[datetime] = None

    @property
    def is_pending(self) -> bool:
        return self.status == RequestStatus.PENDING

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['status'] = self.status.value
        data['created_at'] = _iso(self.created_at)
        data['processed_at'] = _iso(self.processed_at)
        return data


@dataclass
class AccessRequestView:
    request: AccessRequest
    owner: Optional[UserSummary]
    dependent: Optional[UserSummary]
    processed_by: Optional[UserSummary] = None

    def to_dict(self) -> Dict:
        data = self.request.to_dict()
        data["owner"] = self.owner.to_dict() if self.owner else None
        data["dependent"] = self.dependent.to_dict() if self.dependent else None
        data["processed_by_user"] = self.processed_by.to_dict() if self.processed_by else None
        return data


@dataclass
class KnowledgeEntry:
    id: str
    owner_id: str
    category: Category
    title: str
    content: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['category'] = self.category.value
        data['created_at'] = _iso(self.created_at)
        data['updated_at'] = _iso(self.updated_at)
        return data


@dataclass
class AuditLogEntry:
    id: int
    owner_id: str
    action: AuditAction
    performed_by: str
    details: str
    created_at: datetime
    category: Optional[Category] = None

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "action": self.action.value,
            "performed_by": self.performed_by,
            "category": self.category.value if self.category else None,
            "details": self.details,
            "created_at": _iso(self.created_at),
        }


@dataclass
class AuditLogView:
    """Audit entry with the acting user expanded, for the owner's activity log."""
    entry: AuditLogEntry
    performer: Optional[UserSummary]

    def to_dict(self) -> Dict:
        data = self.entry.to_dict()
        data["performer"] = self.performer.to_dict() if self.performer else None
        return data


@dataclass
class VaultView:
    """What a dependent sees: permitted entries plus the full permission map."""
    entries: List[KnowledgeEntry]
    permissions: Permissions

    def to_dict(self) -> Dict:
        return {
            "entries": [e.to_dict() for e in self.entries],
            "permissions": self.permissions.to_dict(),
        }


@dataclass
class InactivityTransition:
    user_id: str
    email: str
    is_inactive: bool
    elapsed_days: int
    inactivity_days: int


@dataclass
class UserStats:
    total: int = 0
    owners: int = 0
    dependents: int = 0
    inactive_owners: int = 0

    def to_dict(self) -> Dict:
        return asdict(self)

