"""
Noted.AI Backend: Notes Route Tests
===================================

What:  /api/notes/* through the full app against an in-memory database.

What we test:
    ✅ Create → 201 with derived metadata; missing title/content → 400
    ✅ Get / update / delete, and 404 once deleted
    ✅ Another user's note → 404, never 403
    ✅ Listing: pagination, subject / tags / search filters, X-Total-Count
    ✅ Archive toggles and hides from the listing
    ✅ Study count and last studied
    ✅ Sharing: unknown recipient, duplicate share, recipient read access
    ✅ Stats over non-archived notes
"""

import pytest

from conftest import auth_headers, reload_user

CONTENT = "Cells are the basic unit of life and contain organelles with specific jobs."


async def _create(client, headers, **fields):
    body = {"title": "Biology", "content": CONTENT, **fields}
    response = await client.post("/api/notes", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["note"]


class TestCreateNote:
    @pytest.mark.asyncio
    async def test_create_returns_201(self, client, user, headers, session_factory):
        response = await client.post(
            "/api/notes",
            json={"title": "Biology", "content": CONTENT, "subject": "Science", "tags": ["cells", "exam"]},
            headers=headers,
        )

        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "Note created successfully"
        note = body["note"]
        assert note["user"] == str(user.id)
        assert note["tags"] == ["cells", "exam"]
        assert note["metadata"]["wordCount"] == 13
        assert note["metadata"]["readingTime"] == 1
        assert note["isArchived"] is False
        assert note["studyCount"] == 0
        assert (await reload_user(session_factory, user.id)).usage_total_notes == 1

    @pytest.mark.asyncio
    async def test_missing_content_is_400(self, client, headers):
        response = await client.post("/api/notes", json={"title": "Only a title"}, headers=headers)

        assert response.status_code == 400
        assert response.json()["error"] == "Title and content are required"

    @pytest.mark.asyncio
    async def test_requires_auth(self, client):
        response = await client.post("/api/notes", json={"title": "T", "content": CONTENT})

        assert response.status_code == 401
        assert response.json()["error"] == "No token, authorization denied"


class TestReadUpdateDelete:
    @pytest.mark.asyncio
    async def test_get_note(self, client, headers):
        note = await _create(client, headers)

        response = await client.get(f"/api/notes/{note['id']}", headers=headers)

        assert response.status_code == 200
        assert response.json()["note"]["title"] == "Biology"
        assert response.headers["Cache-Control"] == "private, no-cache"

    @pytest.mark.asyncio
    async def test_update_recomputes_metadata(self, client, headers):
        note = await _create(client, headers)

        response = await client.put(
            f"/api/notes/{note['id']}",
            json={"content": "Short text now.", "tags": ["revised"]},
            headers=headers,
        )

        assert response.status_code == 200
        updated = response.json()["note"]
        assert updated["title"] == "Biology"
        assert updated["metadata"]["wordCount"] == 3
        assert updated["tags"] == ["revised"]

    @pytest.mark.asyncio
    async def test_delete_then_404(self, client, headers):
        note = await _create(client, headers)

        response = await client.delete(f"/api/notes/{note['id']}", headers=headers)
        assert response.status_code == 200
        assert response.json()["message"] == "Note deleted successfully"

        response = await client.get(f"/api/notes/{note['id']}", headers=headers)
        assert response.status_code == 404
        assert response.json()["error"] == "Note not found"

    @pytest.mark.asyncio
    async def test_other_users_note_is_404(self, client, headers, make_user):
        note = await _create(client, headers)
        stranger = auth_headers(await make_user())

        for response in (
            await client.get(f"/api/notes/{note['id']}", headers=stranger),
            await client.put(f"/api/notes/{note['id']}", json={"title": "Mine"}, headers=stranger),
            await client.delete(f"/api/notes/{note['id']}", headers=stranger),
        ):
            assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_malformed_id_is_rejected(self, client, headers):
        response = await client.get("/api/notes/not-a-uuid", headers=headers)
        assert response.status_code == 400
        assert response.json()["details"]["errors"][0]["field"] == "note_id"


class TestListNotes:
    @pytest.mark.asyncio
    async def test_pagination(self, client, headers):
        for i in range(3):
            await _create(client, headers, title=f"Note {i}")

        response = await client.get("/api/notes", params={"page": 2, "limit": 2}, headers=headers)

        body = response.json()
        assert len(body["notes"]) == 1
        assert body["totalPages"] == 2
        assert body["currentPage"] == 2
        assert body["total"] == 3
        assert response.headers["X-Total-Count"] == "3"

    @pytest.mark.asyncio
    async def test_filters(self, client, headers):
        await _create(client, headers, title="Mitosis", subject="Biology", tags=["cells"])
        await _create(client, headers, title="Derivatives", subject="Maths", tags=["calculus", "exam"])
        await _create(client, headers, title="Enzymes", subject="Biology", tags=["exam"])

        by_subject = (await client.get("/api/notes", params={"subject": "Biology"}, headers=headers)).json()
        assert {n["title"] for n in by_subject["notes"]} == {"Mitosis", "Enzymes"}

        by_tags = (await client.get("/api/notes", params={"tags": "cells, calculus"}, headers=headers)).json()
        assert {n["title"] for n in by_tags["notes"]} == {"Mitosis", "Derivatives"}

        by_search = (await client.get("/api/notes", params={"search": "DERIV"}, headers=headers)).json()
        assert [n["title"] for n in by_search["notes"]] == ["Derivatives"]

    @pytest.mark.asyncio
    async def test_only_own_notes(self, client, headers, make_user):
        await _create(client, headers)
        other = auth_headers(await make_user())

        response = await client.get("/api/notes", headers=other)

        assert response.json()["total"] == 0


class TestArchiveAndStudy:
    @pytest.mark.asyncio
    async def test_archive_toggles_and_hides(self, client, headers):
        note = await _create(client, headers)

        response = await client.patch(f"/api/notes/{note['id']}/archive", headers=headers)
        assert response.json()["message"] == "Note archived successfully"
        assert response.json()["note"]["isArchived"] is True
        assert (await client.get("/api/notes", headers=headers)).json()["total"] == 0

        response = await client.patch(f"/api/notes/{note['id']}/archive", headers=headers)
        assert response.json()["message"] == "Note unarchived successfully"
        assert (await client.get("/api/notes", headers=headers)).json()["total"] == 1

    @pytest.mark.asyncio
    async def test_study_increments(self, client, headers):
        note = await _create(client, headers)

        await client.post(f"/api/notes/{note['id']}/study", headers=headers)
        response = await client.post(f"/api/notes/{note['id']}/study", headers=headers)

        studied = response.json()["note"]
        assert studied["studyCount"] == 2
        assert studied["lastStudied"] is not None


class TestSharing:
    @pytest.mark.asyncio
    async def test_share_and_recipient_access(self, client, user, headers, make_user):
        note = await _create(client, headers)
        friend = await make_user(email="grace@example.edu", first_name="Grace")

        response = await client.post(
            f"/api/notes/{note['id']}/share", json={"email": "Grace@Example.edu"}, headers=headers
        )
        assert response.status_code == 200
        shared = response.json()["note"]
        assert shared["visibility"] == "shared"
        assert shared["sharedWith"][0]["user"] == str(friend.id)
        assert shared["sharedWith"][0]["permission"] == "view"

        friend_headers = auth_headers(friend)
        assert (await client.get(f"/api/notes/{note['id']}", headers=friend_headers)).status_code == 200

        inbox = (await client.get("/api/notes/shared/with-me", headers=friend_headers)).json()["notes"]
        assert len(inbox) == 1
        assert inbox[0]["owner"]["email"] == user.email

        # Read-only: the recipient cannot edit or delete
        response = await client.delete(f"/api/notes/{note['id']}", headers=friend_headers)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_unknown_recipient(self, client, headers):
        note = await _create(client, headers)

        response = await client.post(
            f"/api/notes/{note['id']}/share", json={"email": "nobody@example.edu"}, headers=headers
        )

        assert response.status_code == 404
        assert response.json()["error"] == "User not found"

    @pytest.mark.asyncio
    async def test_duplicate_share(self, client, headers, make_user):
        note = await _create(client, headers)
        await make_user(email="grace@example.edu")
        body = {"email": "grace@example.edu", "permission": "edit"}

        await client.post(f"/api/notes/{note['id']}/share", json=body, headers=headers)
        response = await client.post(f"/api/notes/{note['id']}/share", json=body, headers=headers)

        assert response.status_code == 400
        assert response.json()["error"] == "Note already shared with this user"


class TestStats:
    @pytest.mark.filterwarnings("error::sqlalchemy.exc.SAWarning")
    @pytest.mark.asyncio
    async def test_stats_skip_archived(self, client, headers):
        await _create(client, headers, subject="Biology", tags=["cells", "exam"])
        await _create(client, headers, subject="Maths", tags=["exam"], content="One two three four.")
        archived = await _create(client, headers, subject="History", tags=["dates"])
        await client.patch(f"/api/notes/{archived['id']}/archive", headers=headers)

        response = await client.get("/api/notes/stats", headers=headers)

        stats = response.json()
        assert stats["totalNotes"] == 2
        assert stats["totalWords"] == 17
        assert stats["totalReadingTime"] == 2
        assert stats["subjects"] == ["Biology", "Maths"]
        assert stats["tags"] == ["cells", "exam"]

    @pytest.mark.asyncio
    async def test_empty_stats(self, client, headers):
        stats = (await client.get("/api/notes/stats", headers=headers)).json()
        assert stats == {"totalNotes": 0, "totalWords": 0, "totalReadingTime": 0, "subjects": [], "tags": []}
