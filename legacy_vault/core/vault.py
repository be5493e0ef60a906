"""
Vault visibility gate.
Decides, on every read, which of an owner's entries a dependent may see:
the relationship must carry access_granted, and only flagged categories are returned.
"""

from typing import Dict

from .audit import AuditTrail
from .dao import KnowledgeEntryStore, RelationshipStore
from .errors import Forbidden
from .schema import AuditAction, VaultView
from ..util.logging import logger


class VaultGate:
    """Read path for dependents. Nothing is cached between calls."""

    def __init__(self, relationships: RelationshipStore, entries: KnowledgeEntryStore, audit: AuditTrail):
        self.relationships = relationships
        self.entries = entries
        self.audit = audit

    def view_vault(self, dependent_id: str, owner_id: str) -> VaultView:
        relationship = self.relationships.find_pair(owner_id, dependent_id)
        if not relationship or not relationship.access_granted:
            logger.log_vault_denied(owner_id, dependent_id, "access_not_granted")
            raise Forbidden(
                "Access not granted. Please request access first.",
                {"owner_id": owner_id}
            )

        permitted = relationship.permissions.permitted()
        if not permitted:
            # Granted but every category revoked: still a denial, not an empty vault
            logger.log_vault_denied(owner_id, dependent_id, "no_categories")
            raise Forbidden("No categories permitted", {"owner_id": owner_id})

        entries = self.entries.find_by_owner_and_categories(owner_id, permitted)

        self.audit.record(
            owner_id=owner_id,
            action=AuditAction.VAULT_VIEWED,
            performed_by=dependent_id,
            details="Vault viewed by dependent",
        )
        logger.log_vault_view(owner_id, dependent_id, [c.value for c in permitted], len(entries))

        return VaultView(entries=entries, permissions=relationship.permissions)

    def stats_summary(self, owner_id: str) -> Dict[str, int]:
        """Owner's own entry counts per category."""
        return self.entries.count_by_category(owner_id)
