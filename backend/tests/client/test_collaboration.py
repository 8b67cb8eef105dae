import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport

from gittogether.client import ApiClient, ApiRejected, ApplyNotOffered, CollaborationClient, CollaborationState
from gittogether.main import app


@pytest_asyncio.fixture
async def session(auth_headers):
    clients = {}

    async def _open(user_id):
        api = ApiClient(
            "http://testserver/api/v1",
            transport=ASGITransport(app=app),
            headers=auth_headers(user_id),
        )
        await api.get("/auth/me")
        clients[user_id] = CollaborationClient(api)
        return clients[user_id]

    yield _open
    for client in clients.values():
        await client.api.aclose()


@pytest.mark.asyncio
async def test_friend_request_mutations_refetch_state(session):
    alice = await session("alice")
    bob = await session("bob")

    created = await alice.send_friend_request("bob", "hi")
    assert [r["id"] for r in alice.state.outgoing] == [created["id"]]
    assert await bob.relationship("alice") == "pending_incoming"

    await bob.refresh_friends()
    await bob.accept_friend_request(bob.state.incoming[0]["id"])
    assert [f["id"] for f in bob.state.friends] == ["alice"]
    assert bob.state.incoming == []

    await alice.send_friend_message("bob", "lunch?")
    assert [m["content"] for m in alice.state.friend_messages["bob"]] == ["lunch?"]

    poller = bob.friend_chat_poller("alice")
    assert await poller.refresh() is True
    assert [m["content"] for m in bob.state.friend_messages["alice"]] == ["lunch?"]


@pytest.mark.asyncio
async def test_failed_mutation_leaves_state_untouched(session):
    alice = await session("alice")
    await alice.refresh_friends()
    before = (list(alice.state.friends), list(alice.state.outgoing))

    with pytest.raises(ApiRejected) as exc_info:
        await alice.send_friend_request("ghost")
    assert exc_info.value.status_code == 404
    assert (alice.state.friends, alice.state.outgoing) == before
    assert not alice.guard.is_busy("friend:send:ghost")


@pytest.mark.asyncio
async def test_full_team_surfaces_capacity_rejection(session):
    owner = await session("olive")
    post = await owner.api.post(
        "/posts/", {"title": "Hack night", "description": "Two spots left", "max_members": 3}
    )

    applicants = {}
    for name in ("amy", "ben", "cal"):
        applicants[name] = await session(name)
        await applicants[name].apply_to_post(post["id"], "count me in")
        assert applicants[name].state.sent_requests[0]["status"] == "pending"

    await owner.refresh_team_requests()
    by_requester = {r["requester"]["id"]: r["id"] for r in owner.state.received_requests}

    await owner.accept_team_request(by_requester["amy"])
    await owner.accept_team_request(by_requester["ben"])
    (team,) = owner.state.teams
    assert team["current_members"] == 3
    snapshot = list(owner.state.received_requests)

    with pytest.raises(ApiRejected) as exc_info:
        await owner.accept_team_request(by_requester["cal"])
    assert exc_info.value.detail == "capacity_reached"
    assert owner.state.received_requests == snapshot
    (team,) = owner.state.teams
    assert team["current_members"] == 3
    assert "cal" not in {m["user"]["id"] for m in team["members"]}

    await applicants["cal"].refresh_team_requests()
    assert applicants["cal"].state.sent_requests[0]["status"] == "pending"

    await owner.send_team_message(post["id"], "welcome")
    await applicants["amy"].load_team_messages(post["id"])
    assert [m["content"] for m in applicants["amy"].state.team_messages[post["id"]]] == ["welcome"]


@pytest.mark.asyncio
async def test_mutation_outcome_ignores_failed_refetch():
    accepted = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST" and request.url.path.endswith("/friends/requests/r1/accept"):
            accepted.append(request.url.path)
            return httpx.Response(200, json={"id": "r1", "status": "accepted"})
        return httpx.Response(503, json={"detail": "busy"})

    api = ApiClient("http://api.test/api/v1", transport=httpx.MockTransport(handler))
    client = CollaborationClient(api)
    client.state.incoming = [{"id": "r1", "status": "pending"}]
    try:
        result = await client.accept_friend_request("r1")
    finally:
        await api.aclose()

    assert result == {"id": "r1", "status": "accepted"}
    assert len(accepted) == 1
    assert client.state.incoming == [{"id": "r1", "status": "pending"}]
    assert not client.guard.is_busy("friend:request:r1")


@pytest.mark.asyncio
async def test_apply_is_offered_only_when_the_viewer_has_no_live_request(session):
    owner = await session("olive")
    amy = await session("amy")
    post = await owner.api.post("/posts/", {"title": "Robotics", "description": "Arm control", "max_members": 3})

    (own_view,) = await owner.list_posts()
    assert owner.state.apply_blocker(own_view) == "own_post"
    with pytest.raises(ApplyNotOffered) as exc_info:
        await owner.apply_to_post(post["id"])
    assert exc_info.value.reason == "own_post"

    (listed,) = await amy.list_posts()
    assert amy.can_apply(listed)
    await amy.apply_to_post(post["id"], "hello")
    assert amy.state.apply_blocker(listed) == "already_requested"
    with pytest.raises(ApplyNotOffered):
        await amy.apply_to_post(post["id"])
    assert [r["post_id"] for r in amy.state.sent_requests] == [post["id"]]

    (listed,) = await amy.list_posts()
    assert listed["my_request_status"] == "pending"
    assert not amy.can_apply(listed)


def test_apply_blocker_reads_post_and_request_state():
    state = CollaborationState()
    post = {"id": "p1", "is_owner": False, "is_open": True, "status": "full", "my_request_status": None}
    assert state.apply_blocker(post) is None
    assert state.apply_blocker({**post, "is_open": False, "status": "closed"}) == "post_closed"
    assert state.apply_blocker({**post, "my_request_status": "rejected"}) is None
    state.sent_requests = [{"post_id": "p1", "status": "accepted"}]
    assert state.apply_blocker(post) == "already_member"
