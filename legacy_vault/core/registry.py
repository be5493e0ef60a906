"""
Dependent relationship registry.
One row per (owner, dependent) pair, carrying six category flags and the access grant.
Removing the row is the only way a grant goes away; nothing here reverts it implicitly.
"""

from datetime import datetime
from typing import Callable, Dict, List, Mapping, Optional

from .audit import AuditTrail
from .dao import RelationshipStore, UserStore, utc_now
from .errors import Conflict, NotFound, ValidationError
from .schema import (
    AuditAction,
    DependentRelationship,
    Permissions,
    RelationshipView,
    Role,
    UserSummary,
)
from ..util.logging import logger


def _coerce_permissions(value, require_all: bool) -> Permissions:
    if isinstance(value, Permissions):
        return value
    try:
        return Permissions.from_mapping(value, require_all=require_all)
    except ValueError as e:
        raise ValidationError(str(e))


class DependentRegistry:
    """Owner-side management of dependents and their category permissions."""

    def __init__(self, users: UserStore, relationships: RelationshipStore, audit: AuditTrail,
                 clock: Callable[[], datetime] = utc_now):
        self.users = users
        self.relationships = relationships
        self.audit = audit
        self.clock = clock

    def _owned(self, owner_id: str, relationship_id: str) -> DependentRelationship:
        relationship = self.relationships.get(relationship_id)
        if not relationship or relationship.owner_id != owner_id:
            raise NotFound("Dependent not found", {"relationship_id": relationship_id})
        return relationship

    def add_dependent(self, owner_id: str, dependent_email: str,
                      initial_permissions: Optional[Mapping[str, bool]] = None) -> DependentRelationship:
        """Link a registered dependent to the owner. Unset categories default to False."""
        permissions = _coerce_permissions(initial_permissions, require_all=False)

        dependent = self.users.resolve_user_by_email(dependent_email, role=Role.DEPENDENT)
        if not dependent:
            raise NotFound(
                "User not found. Make sure they are registered as a dependent.",
                {"email": dependent_email}
            )

        if self.relationships.find_pair(owner_id, dependent.id):
            raise Conflict("Dependent already added", {"owner_id": owner_id, "dependent_id": dependent.id})

        # The unique (owner, dependent) constraint also raises Conflict on a lost race
        relationship = self.relationships.create(owner_id, dependent.id, permissions, now=self.clock())
        logger.log_relationship_change("added", owner_id, relationship.id, dependent.id)

        self.audit.record(
            owner_id=owner_id,
            action=AuditAction.DEPENDENT_ADDED,
            performed_by=owner_id,
            details=f"Added dependent: {dependent.email}",
        )
        return relationship

    def update_permissions(self, owner_id: str, relationship_id: str,
                           new_permissions: Mapping[str, bool]) -> DependentRelationship:
        """Replace the full permission set. access_granted is left as is."""
        permissions = _coerce_permissions(new_permissions, require_all=True)
        self._owned(owner_id, relationship_id)

        if not self.relationships.update_permissions(relationship_id, permissions, now=self.clock()):
            raise NotFound("Dependent not found", {"relationship_id": relationship_id})
        logger.log_relationship_change("permissions_updated", owner_id, relationship_id)
        return self.relationships.get(relationship_id)

    def remove_dependent(self, owner_id: str, relationship_id: str) -> None:
        """Delete the relationship; any grant it carried goes with it."""
        relationship = self._owned(owner_id, relationship_id)
        dependent = self.users.get_user(relationship.dependent_id)

        if not self.relationships.delete(relationship_id):
            raise NotFound("Dependent not found", {"relationship_id": relationship_id})
        logger.log_relationship_change("removed", owner_id, relationship_id, relationship.dependent_id)

        email = dependent.email if dependent else relationship.dependent_id
        self.audit.record(
            owner_id=owner_id,
            action=AuditAction.DEPENDENT_REMOVED,
            performed_by=owner_id,
            details=f"Removed dependent: {email}",
        )

    def list_for_owner(self, owner_id: str) -> List[RelationshipView]:
        """Owner's dependents, newest first."""
        return self._expand(self.relationships.list_for_owner(owner_id))

    def list_for_dependent(self, dependent_id: str) -> List[RelationshipView]:
        """Owners who added this dependent, newest first, with their activity state."""
        return self._expand(self.relationships.list_for_dependent(dependent_id))

    def _expand(self, relationships: List[DependentRelationship]) -> List[RelationshipView]:
        ids = [r.owner_id for r in relationships] + [r.dependent_id for r in relationships]
        users: Dict = self.users.get_many(ids)
        views = []
        for r in relationships:
            owner = users.get(r.owner_id)
            dependent = users.get(r.dependent_id)
            views.append(RelationshipView(
                relationship=r,
                owner=UserSummary.of(owner, with_activity=True) if owner else None,
                dependent=UserSummary.of(dependent) if dependent else None,
            ))
        return views
