import pytest

from gittogether.infra import jwt as jwt_helper

PREFIX = "/api/v1"


async def _sign_in(api_client, auth_headers, *names):
    for name in names:
        response = await api_client.get(f"{PREFIX}/auth/me", headers=auth_headers(name))
        assert response.status_code == 200


@pytest.mark.asyncio
async def test_requires_authentication(api_client):
    response = await api_client.get(f"{PREFIX}/friends/")
    assert response.status_code == 401
    body = response.json()
    assert body["detail"] == "invalid_token"
    assert body["request_id"]


@pytest.mark.asyncio
async def test_bearer_token_is_accepted(api_client):
    token = jwt_helper.encode_access({"sub": "tok-user", "email": "tok@example.edu", "name": "Token User"})
    response = await api_client.get(f"{PREFIX}/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    assert response.json()["name"] == "Token User"

    bad = await api_client.get(f"{PREFIX}/auth/me", headers={"Authorization": "Bearer not-a-token"})
    assert bad.status_code == 401


@pytest.mark.asyncio
async def test_friend_request_lifecycle(api_client, auth_headers):
    await _sign_in(api_client, auth_headers, "alice", "bob")
    created = await api_client.post(
        f"{PREFIX}/friends/requests",
        json={"target_user_id": "bob", "message": "study buddy?"},
        headers=auth_headers("alice"),
    )
    assert created.status_code == 200
    request_id = created.json()["id"]

    duplicate = await api_client.post(
        f"{PREFIX}/friends/requests", json={"target_user_id": "bob"}, headers=auth_headers("alice")
    )
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"] == "already_sent"
    reverse = await api_client.post(
        f"{PREFIX}/friends/requests", json={"target_user_id": "alice"}, headers=auth_headers("bob")
    )
    assert reverse.status_code == 409
    assert reverse.json()["detail"] == "incoming_pending"

    status = await api_client.get(f"{PREFIX}/friends/status/alice", headers=auth_headers("bob"))
    assert status.json()["relationship_status"] == "pending_incoming"
    pending = await api_client.get(f"{PREFIX}/friends/requests", headers=auth_headers("bob"))
    assert [r["id"] for r in pending.json()["incoming"]] == [request_id]

    forbidden = await api_client.post(f"{PREFIX}/friends/requests/{request_id}/accept", headers=auth_headers("alice"))
    assert forbidden.status_code == 403

    accepted = await api_client.post(f"{PREFIX}/friends/requests/{request_id}/accept", headers=auth_headers("bob"))
    assert accepted.status_code == 200
    assert accepted.json()["status"] == "accepted"
    again = await api_client.post(f"{PREFIX}/friends/requests/{request_id}/accept", headers=auth_headers("bob"))
    assert again.status_code == 410

    friends = await api_client.get(f"{PREFIX}/friends/", headers=auth_headers("alice"))
    assert [f["id"] for f in friends.json()["friends"]] == ["bob"]


@pytest.mark.asyncio
async def test_unknown_target_and_request(api_client, auth_headers):
    await _sign_in(api_client, auth_headers, "alice")
    missing_user = await api_client.post(
        f"{PREFIX}/friends/requests", json={"target_user_id": "ghost"}, headers=auth_headers("alice")
    )
    assert missing_user.status_code == 404
    missing_request = await api_client.post(f"{PREFIX}/friends/requests/nope/cancel", headers=auth_headers("alice"))
    assert missing_request.status_code == 404


@pytest.mark.asyncio
async def test_friend_messages_need_friendship(api_client, auth_headers):
    await _sign_in(api_client, auth_headers, "alice", "bob")
    blocked = await api_client.post(
        f"{PREFIX}/friends/bob/messages", json={"content": "hi"}, headers=auth_headers("alice")
    )
    assert blocked.status_code == 403
    assert blocked.json()["detail"] == "not_friends"

    created = await api_client.post(
        f"{PREFIX}/friends/requests", json={"target_user_id": "bob"}, headers=auth_headers("alice")
    )
    await api_client.post(f"{PREFIX}/friends/requests/{created.json()['id']}/accept", headers=auth_headers("bob"))

    empty = await api_client.post(
        f"{PREFIX}/friends/bob/messages", json={"content": "   "}, headers=auth_headers("alice")
    )
    assert empty.status_code == 422
    sent = await api_client.post(
        f"{PREFIX}/friends/bob/messages", json={"content": " hello "}, headers=auth_headers("alice")
    )
    assert sent.status_code == 200
    assert sent.json()["content"] == "hello"
    listed = await api_client.get(f"{PREFIX}/friends/alice/messages", headers=auth_headers("bob"))
    assert [m["content"] for m in listed.json()] == ["hello"]


@pytest.mark.asyncio
async def test_search_returns_relationship(api_client, auth_headers):
    await _sign_in(api_client, auth_headers, "alice", "bob", "bobby")
    await api_client.post(f"{PREFIX}/friends/requests", json={"target_user_id": "bob"}, headers=auth_headers("alice"))
    response = await api_client.get(f"{PREFIX}/friends/search", params={"q": "bob"}, headers=auth_headers("alice"))
    assert response.status_code == 200
    statuses = {r["user"]["id"]: r["relationship_status"] for r in response.json()}
    assert statuses == {"bob": "pending_outgoing", "bobby": "none"}
