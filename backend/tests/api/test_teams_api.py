import pytest

PREFIX = "/api/v1"


async def _create_post(api_client, auth_headers, owner="olive", **overrides):
    body = {"title": "Hackathon squad", "description": "Building a study planner", "max_members": 3}
    body.update(overrides)
    response = await api_client.post(f"{PREFIX}/posts/", json=body, headers=auth_headers(owner))
    assert response.status_code == 201, response.text
    return response.json()


async def _apply(api_client, auth_headers, post_id, user):
    return await api_client.post(
        f"{PREFIX}/requests/", json={"post_id": post_id, "message": "I can help"}, headers=auth_headers(user)
    )


async def _answer(api_client, auth_headers, request_id, status, owner="olive"):
    return await api_client.put(
        f"{PREFIX}/requests/{request_id}", json={"status": status}, headers=auth_headers(owner)
    )


@pytest.mark.asyncio
async def test_post_validation_errors_carry_request_id(api_client, auth_headers):
    response = await api_client.post(
        f"{PREFIX}/posts/",
        json={"title": "  ab ", "description": "x", "max_members": 1},
        headers=auth_headers("olive"),
    )
    assert response.status_code == 422
    body = response.json()
    assert body["detail"] == "validation_error"
    assert body["request_id"]
    assert response.headers["X-Request-Id"] == body["request_id"]


@pytest.mark.asyncio
async def test_capacity_is_enforced_on_accept(api_client, auth_headers):
    post = await _create_post(api_client, auth_headers)
    assert post["current_members"] == 1
    assert post["status"] == "open"

    ids = {}
    for user in ("amy", "ben", "cal"):
        response = await _apply(api_client, auth_headers, post["id"], user)
        assert response.status_code == 201
        ids[user] = response.json()["id"]

    received = await api_client.get(f"{PREFIX}/requests/received", headers=auth_headers("olive"))
    assert {r["id"] for r in received.json()} == set(ids.values())

    assert (await _answer(api_client, auth_headers, ids["amy"], "accepted")).status_code == 200
    assert (await _answer(api_client, auth_headers, ids["ben"], "accepted")).status_code == 200
    full = await _answer(api_client, auth_headers, ids["cal"], "accepted")
    assert full.status_code == 409
    assert full.json()["detail"] == "capacity_reached"

    team = await api_client.get(f"{PREFIX}/teams/{post['id']}", headers=auth_headers("amy"))
    assert team.status_code == 200
    assert team.json()["current_members"] == 3
    assert team.json()["status"] == "full"

    outsider = await api_client.get(f"{PREFIX}/teams/{post['id']}", headers=auth_headers("cal"))
    assert outsider.status_code == 403


@pytest.mark.asyncio
async def test_request_rules_over_http(api_client, auth_headers):
    post = await _create_post(api_client, auth_headers)
    own = await _apply(api_client, auth_headers, post["id"], "olive")
    assert own.status_code == 400
    assert own.json()["detail"] == "own_post"

    first = await _apply(api_client, auth_headers, post["id"], "amy")
    again = await _apply(api_client, auth_headers, post["id"], "amy")
    assert again.status_code == 409
    assert again.json()["detail"] == "already_requested"

    not_owner = await _answer(api_client, auth_headers, first.json()["id"], "accepted", owner="amy")
    assert not_owner.status_code == 403

    withdrawn = await api_client.delete(f"{PREFIX}/requests/{first.json()['id']}", headers=auth_headers("amy"))
    assert withdrawn.status_code == 204
    sent = await api_client.get(f"{PREFIX}/requests/sent", headers=auth_headers("amy"))
    assert sent.json() == []

    missing = await _apply(api_client, auth_headers, "no-such-post", "amy")
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_closed_post_and_owner_only_updates(api_client, auth_headers):
    post = await _create_post(api_client, auth_headers)
    forbidden = await api_client.put(
        f"{PREFIX}/posts/{post['id']}", json={"is_open": False}, headers=auth_headers("amy")
    )
    assert forbidden.status_code == 403

    closed = await api_client.put(
        f"{PREFIX}/posts/{post['id']}", json={"is_open": False}, headers=auth_headers("olive")
    )
    assert closed.status_code == 200
    assert closed.json()["status"] == "closed"

    refused = await _apply(api_client, auth_headers, post["id"], "amy")
    assert refused.status_code == 409
    assert refused.json()["detail"] == "post_closed"

    listed = await api_client.get(f"{PREFIX}/posts/", headers=auth_headers("amy"))
    assert listed.json() == []
    with_closed = await api_client.get(
        f"{PREFIX}/posts/", params={"include_closed": "true"}, headers=auth_headers("amy")
    )
    assert [p["id"] for p in with_closed.json()] == [post["id"]]


@pytest.mark.asyncio
async def test_member_removal_and_team_chat(api_client, auth_headers):
    post = await _create_post(api_client, auth_headers)
    request = await _apply(api_client, auth_headers, post["id"], "amy")
    await _answer(api_client, auth_headers, request.json()["id"], "accepted")

    sent = await api_client.post(
        f"{PREFIX}/teams/{post['id']}/messages", json={"content": " kickoff at 6 "}, headers=auth_headers("amy")
    )
    assert sent.status_code == 200
    assert sent.json()["content"] == "kickoff at 6"

    mine = await api_client.get(f"{PREFIX}/teams/mine", headers=auth_headers("olive"))
    (team,) = mine.json()
    assert team["role"] == "owner"
    assert team["latest_message"]["content"] == "kickoff at 6"

    self_remove = await api_client.delete(
        f"{PREFIX}/teams/{post['id']}/members/olive", headers=auth_headers("olive")
    )
    assert self_remove.status_code == 400
    assert self_remove.json()["detail"] == "cannot_remove_owner"

    removed = await api_client.delete(f"{PREFIX}/teams/{post['id']}/members/amy", headers=auth_headers("olive"))
    assert removed.status_code == 200
    assert removed.json()["current_members"] == 1

    blocked = await api_client.get(f"{PREFIX}/teams/{post['id']}/messages", headers=auth_headers("amy"))
    assert blocked.status_code == 403
    assert blocked.json()["detail"] == "not_member"


@pytest.mark.asyncio
async def test_skill_catalogue_routes(api_client, auth_headers):
    skills = await api_client.get(f"{PREFIX}/posts/skills/", headers=auth_headers("amy"))
    assert skills.status_code == 200
    assert "python" in {s["id"] for s in skills.json()}
    categories = await api_client.get(f"{PREFIX}/posts/skills/categories", headers=auth_headers("amy"))
    assert "Programming" in categories.json()

    unknown = await api_client.post(
        f"{PREFIX}/posts/",
        json={"title": "Legacy", "description": "COBOL port", "required_skill_ids": ["cobol"]},
        headers=auth_headers("olive"),
    )
    assert unknown.status_code == 400
    assert unknown.json()["detail"] == "unknown_skill"
