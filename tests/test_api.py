"""
HTTP API tests - role checks, error mapping and the end-to-end access flow.
"""

import pytest
from fastapi.testclient import TestClient

from legacy_vault.api.main import app, get_heartbeat, get_services
from legacy_vault.core.heartbeat import Heartbeat
from legacy_vault.core.schema import Category, Role

ALL_OFF = {c.value: False for c in Category}


@pytest.fixture
def client(services):
    """Test client bound to the temporary database."""
    app.dependency_overrides[get_services] = lambda: services
    app.dependency_overrides[get_heartbeat] = lambda: Heartbeat(enabled=False)
    yield TestClient(app)
    app.dependency_overrides.clear()


def as_user(user):
    return {"X-User-Id": user.id}


class TestIdentity:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["db_health"] is True
        assert data["heartbeat"]["status"] == "disabled"

    def test_missing_header(self, client):
        assert client.get("/dependents").status_code == 401

    def test_unknown_user(self, client):
        assert client.get("/dependents", headers={"X-User-Id": "ghost"}).status_code == 401

    def test_role_mismatch(self, client, owner, dependent, admin):
        assert client.get("/dependents", headers=as_user(dependent)).status_code == 403
        assert client.get("/access/pending", headers=as_user(owner)).status_code == 403
        assert client.get("/access/vault/" + owner.id, headers=as_user(admin)).status_code == 403


class TestActivityAndSettings:

    def test_heartbeat_reactivates_owner(self, client, services, clock, owner):
        clock.advance(days=40)
        services.activity.sweep()

        response = client.post("/activity/heartbeat", headers=as_user(owner))
        assert response.status_code == 200
        assert response.json()["message"] == "Activity updated"
        assert services.users.get_user(owner.id).is_inactive is False

    def test_update_settings(self, client, owner):
        response = client.put("/users/settings", json={"inactivity_days": 60}, headers=as_user(owner))
        assert response.status_code == 200
        assert response.json()["user"]["inactivity_days"] == 60

    def test_update_settings_out_of_range(self, client, owner):
        response = client.put("/users/settings", json={"inactivity_days": 400}, headers=as_user(owner))
        assert response.status_code == 422

    def test_admin_user_views(self, client, owner, dependent, admin):
        stats = client.get("/users/stats", headers=as_user(admin)).json()
        assert stats == {"total": 3, "owners": 1, "dependents": 1, "inactive_owners": 0}

        users = client.get("/users", headers=as_user(admin)).json()
        assert {u["email"] for u in users} == {owner.email, dependent.email, admin.email}

    def test_admin_sweep(self, client, clock, owner, admin):
        clock.advance(days=31)
        response = client.post("/admin/inactivity/sweep", headers=as_user(admin))

        assert response.status_code == 200
        assert response.json()["count"] == 1
        assert response.json()["transitions"][0]["user_id"] == owner.id


class TestDependentRoutes:

    def test_add_list_update_remove(self, client, owner, dependent):
        response = client.post("/dependents", json={"email": dependent.email, "permissions": {"assets": True}},
                               headers=as_user(owner))
        assert response.status_code == 201
        rel_id = response.json()["id"]
        assert response.json()["access_granted"] is False

        listed = client.get("/dependents", headers=as_user(owner)).json()
        assert [r["id"] for r in listed] == [rel_id]
        assert listed[0]["dependent"]["email"] == dependent.email

        owners = client.get("/dependents/owners", headers=as_user(dependent)).json()
        assert owners[0]["owner"]["email"] == owner.email

        response = client.put(f"/dependents/{rel_id}", json={"permissions": dict(ALL_OFF, notes=True)},
                              headers=as_user(owner))
        assert response.status_code == 200
        assert response.json()["permissions"]["notes"] is True
        assert response.json()["permissions"]["assets"] is False

        assert client.delete(f"/dependents/{rel_id}", headers=as_user(owner)).status_code == 200
        assert client.get("/dependents", headers=as_user(owner)).json() == []

    def test_error_mapping(self, client, owner, dependent):
        body = {"email": dependent.email}
        assert client.post("/dependents", json=body, headers=as_user(owner)).status_code == 201
        assert client.post("/dependents", json=body, headers=as_user(owner)).status_code == 409
        assert client.post("/dependents", json={"email": "nobody@example.com"},
                           headers=as_user(owner)).status_code == 404
        assert client.post("/dependents", json={"email": "  "}, headers=as_user(owner)).status_code == 422
        assert client.put("/dependents/missing", json={"permissions": ALL_OFF},
                          headers=as_user(owner)).status_code == 404

    def test_partial_permission_update_rejected(self, client, owner, relationship):
        response = client.put(f"/dependents/{relationship.id}", json={"permissions": {"assets": True}},
                              headers=as_user(owner))
        assert response.status_code == 422


class TestAccessFlow:

    def test_full_scenario(self, client, services, clock, owner, dependent, admin, relationship):
        for category in (Category.NOTES, Category.ASSETS, Category.INSURANCE):
            services.entries.add_entry(owner.id, category, f"{category.value} entry", "...", now=clock())

        # Owner still active
        response = client.post("/access/request", json={"owner_id": owner.id, "reason": "emergency"},
                               headers=as_user(dependent))
        assert response.status_code == 400

        clock.advance(days=31)
        client.post("/admin/inactivity/sweep", headers=as_user(admin))

        response = client.post("/access/request", json={"owner_id": owner.id, "reason": "emergency"},
                               headers=as_user(dependent))
        assert response.status_code == 201
        request_id = response.json()["id"]
        assert response.json()["status"] == "pending"

        response = client.post("/access/request", json={"owner_id": owner.id, "reason": "again"},
                               headers=as_user(dependent))
        assert response.status_code == 409

        assert client.get(f"/access/vault/{owner.id}", headers=as_user(dependent)).status_code == 403

        pending = client.get("/access/pending", headers=as_user(admin)).json()
        assert [p["id"] for p in pending] == [request_id]
        assert pending[0]["dependent"]["email"] == dependent.email

        response = client.post(f"/access/{request_id}/approve", json={"admin_note": "verified"},
                               headers=as_user(admin))
        assert response.status_code == 200
        assert response.json()["request"]["status"] == "approved"
        assert client.post(f"/access/{request_id}/reject", headers=as_user(admin)).status_code == 400

        vault = client.get(f"/access/vault/{owner.id}", headers=as_user(dependent)).json()
        assert [e["category"] for e in vault["entries"]] == ["assets", "notes"]
        assert vault["permissions"] == dict(ALL_OFF, assets=True, notes=True)

        mine = client.get("/access/my-requests", headers=as_user(dependent)).json()
        assert mine[0]["admin_note"] == "verified"
        assert mine[0]["processed_by_user"]["email"] == admin.email

        logs = client.get("/access/logs", headers=as_user(owner)).json()
        assert [e["action"] for e in logs[:3]] == ["vault_viewed", "access_approved", "access_requested"]
        assert logs[0]["performer"]["email"] == dependent.email
        assert logs[0]["performer"]["role"] == "dependent"
        assert logs[1]["performer"]["role"] == "admin"

        assert client.delete(f"/dependents/{relationship.id}", headers=as_user(owner)).status_code == 200
        assert client.get(f"/access/vault/{owner.id}", headers=as_user(dependent)).status_code == 403

    def test_reject_without_body(self, client, owner, dependent, admin, inactive_owner):
        request_id = client.post("/access/request", json={"owner_id": owner.id, "reason": "emergency"},
                                 headers=as_user(dependent)).json()["id"]

        response = client.post(f"/access/{request_id}/reject", headers=as_user(admin))
        assert response.status_code == 200
        assert response.json()["request"]["status"] == "rejected"

        all_requests = client.get("/access/all", headers=as_user(admin)).json()
        assert all_requests[0]["status"] == "rejected"

    def test_request_without_relationship(self, client, services, clock, owner):
        stranger = services.users.create_user("Stranger", "stranger@example.com", Role.DEPENDENT)
        clock.advance(days=31)
        services.activity.sweep()

        response = client.post("/access/request", json={"owner_id": owner.id, "reason": "emergency"},
                               headers=as_user(stranger))
        assert response.status_code == 403
        assert response.json()["detail"] == "You are not a registered dependent for this owner"

    def test_unknown_request(self, client, admin):
        assert client.post("/access/missing/approve", headers=as_user(admin)).status_code == 404

    def test_blank_reason(self, client, owner, dependent, inactive_owner):
        response = client.post("/access/request", json={"owner_id": owner.id, "reason": " "},
                               headers=as_user(dependent))
        assert response.status_code == 422


class TestVaultStats:

    def test_summary(self, client, services, clock, owner):
        services.entries.add_entry(owner.id, Category.CONTACTS, "Lawyer", "555", now=clock())
        data = client.get("/vault/stats/summary", headers=as_user(owner)).json()
        assert data["contacts"] == 1
        assert sum(data.values()) == 1
