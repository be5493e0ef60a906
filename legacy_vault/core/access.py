"""
Access request workflow - a dependent asks, an admin decides.

Per (owner, dependent) pair a request moves pending -> approved | rejected and
stays there. A request can only be opened while the owner is inactive and no
other request for the pair is pending. Approval is the only path that sets
access_granted on the relationship; there is no auto-approval.
"""

from datetime import datetime
from typing import Callable, List

from .audit import AuditTrail
from .dao import AccessRequestStore, RelationshipStore, UserStore, utc_now
from .errors import Conflict, Forbidden, InvalidState, NotFound, ValidationError
from .schema import (
    AccessRequest,
    AccessRequestView,
    AuditAction,
    RequestStatus,
    Role,
    UserSummary,
)
from ..util.logging import logger


class AccessRequestWorkflow:
    """Lifecycle of dependent access requests and their admin resolution."""

    def __init__(self, users: UserStore, relationships: RelationshipStore,
                 requests: AccessRequestStore, audit: AuditTrail,
                 clock: Callable[[], datetime] = utc_now):
        self.users = users
        self.relationships = relationships
        self.requests = requests
        self.audit = audit
        self.clock = clock

    def submit(self, dependent_id: str, owner_id: str, reason: str) -> AccessRequest:
        """Open a pending request for the owner's vault."""
        relationship = self.relationships.find_pair(owner_id, dependent_id)
        if not relationship:
            raise Forbidden(
                "You are not a registered dependent for this owner",
                {"owner_id": owner_id, "dependent_id": dependent_id}
            )

        owner = self.users.get_user(owner_id)
        if not owner or not owner.is_inactive:
            raise InvalidState(
                "Access can only be requested when the owner is inactive",
                {"owner_id": owner_id}
            )

        if self.requests.find_pending(owner_id, dependent_id):
            raise Conflict(
                "You already have a pending request for this owner",
                {"owner_id": owner_id, "dependent_id": dependent_id}
            )

        if not reason or not reason.strip():
            raise ValidationError("reason cannot be empty")

        request = self.requests.create(owner_id, dependent_id, reason.strip(), now=self.clock())
        logger.log_access_request(request.id, owner_id, dependent_id)

        dependent = self.users.get_user(dependent_id)
        self.audit.record(
            owner_id=owner_id,
            action=AuditAction.ACCESS_REQUESTED,
            performed_by=dependent_id,
            details=f"Access requested by dependent: {dependent.email if dependent else dependent_id}",
        )
        return request

    def approve(self, request_id: str, admin_id: str, admin_note: str = "") -> AccessRequest:
        """Approve a pending request and grant the dependent access."""
        request = self._process(request_id, admin_id, admin_note, RequestStatus.APPROVED)

        # Relationship may have been removed since the request was opened
        granted = self.relationships.set_access_granted(
            request.owner_id, request.dependent_id, True, now=self.clock()
        )
        logger.log_access_decision(request_id, "approved", admin_id, admin_note, granted=granted)

        self.audit.record(
            owner_id=request.owner_id,
            action=AuditAction.ACCESS_APPROVED,
            performed_by=admin_id,
            details="Access approved by admin for dependent",
        )
        return request

    def reject(self, request_id: str, admin_id: str, admin_note: str = "") -> AccessRequest:
        """Reject a pending request. The relationship is not touched."""
        request = self._process(request_id, admin_id, admin_note, RequestStatus.REJECTED)
        logger.log_access_decision(request_id, "rejected", admin_id, admin_note)

        self.audit.record(
            owner_id=request.owner_id,
            action=AuditAction.ACCESS_REJECTED,
            performed_by=admin_id,
            details="Access rejected by admin",
        )
        return request

    def _process(self, request_id: str, admin_id: str, admin_note: str,
                 status: RequestStatus) -> AccessRequest:
        admin = self.users.get_user(admin_id)
        if not admin or admin.role != Role.ADMIN:
            raise Forbidden("Only admins can process access requests", {"user_id": admin_id})

        request = self.requests.get(request_id)
        if not request:
            raise NotFound("Request not found", {"request_id": request_id})
        if not request.is_pending:
            raise InvalidState("Request already processed", {"status": request.status.value})

        if not self.requests.mark_processed(request_id, status, admin_note or "", admin_id, self.clock()):
            # Another admin resolved it between the read and the write
            raise InvalidState("Request already processed", {"request_id": request_id})

        return self.requests.get(request_id)

    def get_request(self, request_id: str) -> AccessRequest:
        request = self.requests.get(request_id)
        if not request:
            raise NotFound("Request not found", {"request_id": request_id})
        return request

    def list_pending_for_admin(self) -> List[AccessRequestView]:
        return self._expand(self.requests.list_by_status(RequestStatus.PENDING))

    def list_all_for_admin(self) -> List[AccessRequestView]:
        return self._expand(self.requests.list_all())

    def list_for_dependent(self, dependent_id: str) -> List[AccessRequestView]:
        return self._expand(self.requests.list_for_dependent(dependent_id))

    def _expand(self, requests: List[AccessRequest]) -> List[AccessRequestView]:
        ids = []
        for r in requests:
            ids.extend([r.owner_id, r.dependent_id, r.processed_by])
        users = self.users.get_many(ids)

        views = []
        for r in requests:
            owner = users.get(r.owner_id)
            dependent = users.get(r.dependent_id)
            admin = users.get(r.processed_by) if r.processed_by else None
            views.append(AccessRequestView(
                request=r,
                owner=UserSummary.of(owner, with_activity=True) if owner else None,
                dependent=UserSummary.of(dependent) if dependent else None,
                processed_by=UserSummary.of(admin) if admin else None,
            ))
        return views
