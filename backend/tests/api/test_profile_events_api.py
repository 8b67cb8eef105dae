import pytest

from gittogether.domain.identity.service import ProfileService

PREFIX = "/api/v1"


@pytest.mark.asyncio
async def test_profile_round_trip(api_client, auth_headers):
    me = await api_client.get(f"{PREFIX}/auth/me", headers=auth_headers("nina"))
    assert me.status_code == 200
    assert me.json()["email"] == "nina@example.edu"
    assert me.json()["is_admin"] is False

    updated = await api_client.put(
        f"{PREFIX}/auth/me",
        json={"bio": "  systems nerd  ", "department": "CSE", "year": "3"},
        headers=auth_headers("nina"),
    )
    assert updated.status_code == 200
    assert updated.json()["department"] == "CSE"

    added = await api_client.post(f"{PREFIX}/users/me/skills/python", headers=auth_headers("nina"))
    assert [s["id"] for s in added.json()] == ["python"]
    missing = await api_client.post(f"{PREFIX}/users/me/skills/cobol", headers=auth_headers("nina"))
    assert missing.status_code == 404
    assert missing.json()["detail"] == "skill_not_found"

    public = await api_client.get(f"{PREFIX}/users/nina", headers=auth_headers("omar"))
    assert public.status_code == 200
    body = public.json()
    assert body["department"] == "CSE"
    assert "roll_number" not in body
    assert [s["id"] for s in body["skills"]] == ["python"]

    unknown = await api_client.get(f"{PREFIX}/users/ghost", headers=auth_headers("omar"))
    assert unknown.status_code == 404


@pytest.mark.asyncio
async def test_event_board_permissions(api_client, auth_headers):
    created = await api_client.post(
        f"{PREFIX}/events/",
        json={"title": "Demo day", "description": "Show your builds", "link": "https://example.edu/demo"},
        headers=auth_headers("nina"),
    )
    assert created.status_code == 201
    event_id = created.json()["id"]
    assert created.json()["can_delete"] is True

    bad_link = await api_client.post(
        f"{PREFIX}/events/",
        json={"title": "Bad", "description": "x", "link": "ftp://example.edu"},
        headers=auth_headers("nina"),
    )
    assert bad_link.status_code == 422

    listed = await api_client.get(f"{PREFIX}/events/", headers=auth_headers("omar"))
    assert [(e["id"], e["can_delete"]) for e in listed.json()] == [(event_id, False)]

    denied = await api_client.delete(f"{PREFIX}/events/{event_id}", headers=auth_headers("omar"))
    assert denied.status_code == 403
    removed = await api_client.delete(f"{PREFIX}/events/{event_id}", headers=auth_headers("root", roles="admin"))
    assert removed.status_code == 204
    gone = await api_client.delete(f"{PREFIX}/events/{event_id}", headers=auth_headers("nina"))
    assert gone.status_code == 404


@pytest.mark.asyncio
async def test_dashboard_and_admin_summary(api_client, auth_headers):
    await api_client.post(
        f"{PREFIX}/posts/",
        json={"title": "Compiler club", "description": "Write a toy compiler"},
        headers=auth_headers("nina"),
    )
    summary = await api_client.get(f"{PREFIX}/dashboard/summary", headers=auth_headers("nina"))
    assert summary.status_code == 200
    assert summary.json()["my_posts"] == 1
    assert summary.json()["teams"] == 1

    refused = await api_client.get(f"{PREFIX}/admin/summary", headers=auth_headers("nina"))
    assert refused.status_code == 403
    assert refused.json()["detail"] == "insufficient_role"

    await ProfileService().set_account_flags("nina", is_admin=True)
    granted = await api_client.get(f"{PREFIX}/admin/summary", headers=auth_headers("nina"))
    assert granted.status_code == 200
    assert granted.json()["posts"]["total"] == 1
