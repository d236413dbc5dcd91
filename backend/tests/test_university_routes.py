"""
Noted.AI Backend: University Route Tests
========================================

What we test:
    ✅ Apply → 201 pending; duplicate domain → 400; lost insert race → 409
    ✅ Public status lookup; unknown domain → 404
    ✅ Dashboard: contact email and admins allowed, others 403
    ✅ Statistics refreshed from member accounts
    ✅ Settings merge; analytics buckets; paginated member list
    ✅ Admin-only listing and partnership updates
"""

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import auth_headers
from noted.exceptions import ConflictError
from noted.schemas.university import ApplyRequest
from noted.services.university_service import university_service

APPLICATION = {
    "name": "Example University",
    "domain": "Example.EDU",
    "contactEmail": "dean@example.edu",
    "contactPerson": {"name": "Dean Smith", "title": "Dean"},
    "departments": [{"name": "Physics", "code": "PHY", "studentCount": 300}],
    "estimatedStudents": 1200,
}


async def _apply(client) -> str:
    response = await client.post("/api/universities/apply", json=APPLICATION)
    assert response.status_code == 201, response.text
    return response.json()["university"]["id"]


class TestApplyAndStatus:
    @pytest.mark.asyncio
    async def test_apply(self, client):
        response = await client.post("/api/universities/apply", json=APPLICATION)

        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "Partnership application submitted successfully"
        assert body["university"]["domain"] == "example.edu"
        assert body["university"]["partnership"]["status"] == "pending"
        assert body["university"]["partnership"]["plan"] == "basic"

    @pytest.mark.asyncio
    async def test_duplicate_domain(self, client):
        await _apply(client)

        response = await client.post("/api/universities/apply", json=APPLICATION)

        assert response.status_code == 400
        assert response.json()["error"] == "University already registered"

    @pytest.mark.asyncio
    async def test_concurrent_apply_is_conflict(self, mock_db_session):
        # The duplicate check passed, but another application inserted first
        mock_db_session.execute.return_value.first.return_value = None
        mock_db_session.flush.side_effect = IntegrityError("INSERT INTO universities", {}, Exception("unique"))

        with pytest.raises(ConflictError) as exc_info:
            await university_service.apply(mock_db_session, ApplyRequest.model_validate(APPLICATION))

        assert exc_info.value.message == "University already registered"

    @pytest.mark.asyncio
    async def test_status_lookup(self, client):
        await _apply(client)

        response = await client.get("/api/universities/status/EXAMPLE.edu")

        assert response.status_code == 200
        assert response.json() == {
            "name": "Example University",
            "domain": "example.edu",
            "partnership": {"status": "pending", "plan": "basic"},
        }

    @pytest.mark.asyncio
    async def test_status_unknown(self, client):
        response = await client.get("/api/universities/status/nowhere.edu")

        assert response.status_code == 404
        assert response.json()["error"] == "University not found"


class TestDashboard:
    @pytest.mark.asyncio
    async def test_contact_can_open_dashboard(self, client, make_user):
        university_id = await _apply(client)
        dean = await make_user(email="dean@example.edu")

        response = await client.get(f"/api/universities/dashboard/{university_id}", headers=auth_headers(dean))

        assert response.status_code == 200
        university = response.json()["university"]
        # No members yet: the application's estimate stands
        assert university["statistics"]["totalStudents"] == 1200
        assert university["isActive"] is False
        assert response.json()["recentUsers"] == []

    @pytest.mark.asyncio
    async def test_stranger_is_403(self, client, headers):
        university_id = await _apply(client)

        response = await client.get(f"/api/universities/dashboard/{university_id}", headers=headers)

        assert response.status_code == 403
        assert response.json()["error"] == "Access denied"

    @pytest.mark.asyncio
    async def test_statistics_from_members(self, client, make_user):
        university_id = await _apply(client)
        admin = await make_user(role="admin")
        await make_user(university_domain="example.edu", usage_total_notes=4, usage_total_summaries=2)
        await make_user(university_domain="example.edu", usage_total_flashcards=2)

        response = await client.get(f"/api/universities/dashboard/{university_id}", headers=auth_headers(admin))

        stats = response.json()["university"]["statistics"]
        assert stats["totalStudents"] == 2
        assert stats["activeUsers"] == 2
        assert stats["totalNotes"] == 4
        assert stats["averageUsagePerStudent"] == 4.0
        assert len(response.json()["recentUsers"]) == 2


class TestManagement:
    @pytest.mark.asyncio
    async def test_settings_merge(self, client, make_user):
        university_id = await _apply(client)
        dean = auth_headers(await make_user(email="dean@example.edu"))

        response = await client.put(
            f"/api/universities/{university_id}/settings",
            json={
                "allowedDomains": ["Students.Example.edu"],
                "defaultCitationStyle": "Chicago",
                "features": {"enableSharing": False},
            },
            headers=dean,
        )

        assert response.status_code == 200
        settings = response.json()["settings"]
        assert settings["allowedDomains"] == ["students.example.edu"]
        assert settings["defaultCitationStyle"] == "Chicago"
        assert settings["features"] == {
            "enableSharing": False,
            "enableAnalytics": True,
            "requireVerification": False,
        }

    @pytest.mark.asyncio
    async def test_analytics(self, client, make_user):
        university_id = await _apply(client)
        dean = auth_headers(await make_user(email="dean@example.edu"))
        await make_user(university_domain="example.edu", usage_total_assignments=3)
        await make_user(university_domain="example.edu", usage_total_notes=1)

        response = await client.get(
            f"/api/universities/{university_id}/analytics", params={"period": "7d"}, headers=dean
        )

        body = response.json()
        assert body["period"] == "7d"
        assert len(body["userAnalytics"]) == 1
        assert body["userAnalytics"][0]["newUsers"] == 2
        assert body["userAnalytics"][0]["activeUsers"] == 2
        assert body["usageAnalytics"]["totalAssignments"] == 3
        assert body["usageAnalytics"]["averageUsagePerUser"] == 2.0

    @pytest.mark.asyncio
    async def test_members_paginated(self, client, make_user):
        university_id = await _apply(client)
        dean = auth_headers(await make_user(email="dean@example.edu"))
        for _ in range(3):
            await make_user(university_domain="example.edu")

        response = await client.get(
            f"/api/universities/{university_id}/users", params={"page": 1, "limit": 2}, headers=dean
        )

        body = response.json()
        assert len(body["users"]) == 2
        assert body["total"] == 3
        assert body["totalPages"] == 2
        assert body["users"][0]["subscription"]["plan"] == "free"

    @pytest.mark.asyncio
    async def test_admin_list_and_activate(self, client, make_user):
        university_id = await _apply(client)
        admin = auth_headers(await make_user(role="admin"))

        listing = (await client.get("/api/universities", headers=admin)).json()["universities"]
        assert [u["domain"] for u in listing] == ["example.edu"]

        response = await client.patch(
            f"/api/universities/{university_id}/partnership",
            json={"status": "active", "plan": "premium"},
            headers=admin,
        )
        assert response.status_code == 200
        assert response.json()["message"] == "Partnership status updated successfully"
        assert response.json()["partnership"]["status"] == "active"

        status = (await client.get("/api/universities/status/example.edu")).json()
        assert status["partnership"] == {"status": "active", "plan": "premium"}

    @pytest.mark.asyncio
    async def test_contact_cannot_change_partnership(self, client, make_user):
        university_id = await _apply(client)
        dean = auth_headers(await make_user(email="dean@example.edu"))

        response = await client.patch(
            f"/api/universities/{university_id}/partnership", json={"status": "active"}, headers=dean
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_list_requires_admin(self, client, headers):
        response = await client.get("/api/universities", headers=headers)
        assert response.status_code == 403
