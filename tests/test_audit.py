"""
Audit trail tests - ordering, limits and best-effort writes.
"""

import pytest
from unittest.mock import MagicMock, patch

from legacy_vault.core.audit import AuditTrail
from legacy_vault.core.schema import AuditAction, Category, Role


class TestAuditTrail:

    def test_record_and_list(self, services, clock, owner):
        entry = services.audit.record(owner.id, AuditAction.ENTRY_CREATED, owner.id,
                                      category=Category.ASSETS, details="Created entry: House")

        assert entry.id is not None
        assert entry.created_at == clock()
        listed = services.audit.list_for_owner(owner.id)
        assert listed == [entry]
        assert listed[0].to_dict()["category"] == "assets"

    def test_newest_first_with_same_timestamp(self, services, owner):
        first = services.audit.record(owner.id, AuditAction.ENTRY_CREATED, owner.id)
        second = services.audit.record(owner.id, AuditAction.ENTRY_UPDATED, owner.id)
        assert [e.id for e in services.audit.list_for_owner(owner.id)] == [second.id, first.id]

    def test_limit(self, services, clock, owner):
        for i in range(5):
            clock.advance(seconds=1)
            services.audit.record(owner.id, AuditAction.ENTRY_UPDATED, owner.id, details=str(i))

        listed = services.audit.list_for_owner(owner.id, limit=3)
        assert [e.details for e in listed] == ["4", "3", "2"]

    def test_scoped_to_owner(self, services, owner, dependent):
        services.audit.record(owner.id, AuditAction.ENTRY_CREATED, owner.id)
        assert services.audit.list_for_owner(dependent.id) == []

    def test_entry_service_actions_are_listed(self, services, owner):
        services.audit.record(owner.id, AuditAction.ENTRY_DELETED, owner.id, category=Category.NOTES,
                              details="Deleted entry: Letter")

        listed = services.audit.list_for_owner(owner.id)
        assert listed[0].action == AuditAction.ENTRY_DELETED
        assert listed[0].category == Category.NOTES

    def test_activity_log_expands_performer(self, services, owner, dependent, admin, inactive_owner):
        request = services.access.submit(dependent.id, owner.id, "emergency")
        services.access.approve(request.id, admin.id)

        log = services.audit.activity_log(owner.id)
        assert [v.entry.action for v in log[:3]] == [
            AuditAction.ACCESS_APPROVED, AuditAction.ACCESS_REQUESTED, AuditAction.DEPENDENT_ADDED,
        ]

        data = log[0].to_dict()
        assert data["performed_by"] == admin.id
        assert data["performer"] == {"id": admin.id, "name": admin.name, "email": admin.email, "role": "admin"}
        assert log[1].performer.role == Role.DEPENDENT
        assert log[2].performer.email == owner.email

    def test_activity_log_unknown_performer(self, services, owner):
        services.audit.record(owner.id, AuditAction.VAULT_VIEWED, "deleted-user")
        assert services.audit.activity_log(owner.id)[0].performer is None

    def test_activity_log_without_user_store(self):
        store = MagicMock()
        store.list_for_owner.return_value = []
        assert AuditTrail(store).activity_log("owner-1") == []

    def test_long_details_trimmed(self, services, owner):
        entry = services.audit.record(owner.id, AuditAction.ENTRY_CREATED, owner.id, details="x" * 600)
        assert entry.details == "x" * 500 + "..."

    def test_failed_write_is_swallowed_and_logged(self):
        store = MagicMock()
        store.append.side_effect = RuntimeError("database is locked")
        trail = AuditTrail(store)

        with patch("legacy_vault.core.audit.logger") as mock_logger:
            result = trail.record("owner-1", AuditAction.VAULT_VIEWED, "dep-1")

        assert result is None
        mock_logger.log_audit_failure.assert_called_once()
        args = mock_logger.log_audit_failure.call_args[0]
        assert args[0] == "vault_viewed"
        assert args[1] == "owner-1"

    def test_registry_change_survives_audit_failure(self, services, owner, dependent):
        with patch.object(services.audit.store, "append", side_effect=RuntimeError("boom")):
            rel = services.registry.add_dependent(owner.id, dependent.email)

        assert services.relationships.get(rel.id) is not None
        assert services.audit.list_for_owner(owner.id) == []
