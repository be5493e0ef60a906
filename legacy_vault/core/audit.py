"""
Audit trail emitter.
Every state transition in the core is recorded here under the owner's log.
Writes are best-effort: a failed write is logged and never undoes the change that triggered it.
"""

from datetime import datetime
from typing import Callable, List, Optional

from .config import AUDIT_LOG_LIMIT
from .dao import AuditLogStore, UserStore, utc_now
from .schema import AuditAction, AuditLogEntry, AuditLogView, Category, UserSummary
from ..util.logging import logger, sanitize_payload


class AuditTrail:
    """Append-only audit sink for owner-scoped actions."""

    def __init__(self, store: AuditLogStore, users: Optional[UserStore] = None,
                 clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.users = users
        self.clock = clock

    def record(self, owner_id: str, action: AuditAction, performed_by: str,
               category: Optional[Category] = None, details: str = "") -> Optional[AuditLogEntry]:
        """Record an audit entry. Returns None if the sink could not be written."""
        try:
            return self.store.append(
                owner_id=owner_id,
                action=action,
                performed_by=performed_by,
                category=category,
                details=sanitize_payload(details or "", max_length=500),
                now=self.clock(),
            )
        except Exception as e:
            logger.log_audit_failure(getattr(action, "value", str(action)), owner_id, e)
            return None

    def list_for_owner(self, owner_id: str, limit: int = AUDIT_LOG_LIMIT) -> List[AuditLogEntry]:
        """Owner's activity log, newest first."""
        return self.store.list_for_owner(owner_id, limit=limit)

    def activity_log(self, owner_id: str, limit: int = AUDIT_LOG_LIMIT) -> List[AuditLogView]:
        """Owner's activity log with each performer expanded to name, email and role."""
        entries = self.list_for_owner(owner_id, limit=limit)
        users = self.users.get_many(e.performed_by for e in entries) if self.users else {}

        views = []
        for e in entries:
            performer = users.get(e.performed_by)
            views.append(AuditLogView(
                entry=e,
                performer=UserSummary.of(performer, with_role=True) if performer else None,
            ))
        return views
