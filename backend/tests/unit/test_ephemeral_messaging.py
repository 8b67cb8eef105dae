from datetime import datetime, timedelta, timezone

import pytest

from gittogether.domain.identity.service import ProfileService
from gittogether.domain.messaging import ephemeral
from gittogether.domain.messaging import service as messaging_service
from gittogether.domain.messaging.service import FriendChatService, TeamChatService
from gittogether.domain.social import sockets as social_sockets
from gittogether.domain.social.exceptions import NotFriends
from gittogether.domain.social.service import FriendService
from gittogether.domain.teams.policy import TeamPolicyError
from gittogether.domain.teams.schemas import TeamPostCreate
from gittogether.domain.teams.service import PostService, TeamRequestService, TeamService
from gittogether.infra.rate_limit import RateLimitExceeded
from gittogether.settings import settings

T = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "elapsed, visible",
    [
        (timedelta(hours=23, minutes=59), True),
        (timedelta(hours=23, minutes=59, seconds=59, microseconds=999999), True),
        (timedelta(hours=24), False),
        (timedelta(hours=24, minutes=1), False),
    ],
)
def test_visibility_window_is_exclusive(elapsed, visible):
    expires_at = ephemeral.expires_at_for(T)
    assert expires_at == T + timedelta(hours=24)
    assert ephemeral.is_visible(expires_at, T + elapsed) is visible


def test_ttl_follows_settings(monkeypatch):
    monkeypatch.setattr(settings, "message_ttl_hours", 2)
    assert ephemeral.expires_at_for(T) == T + timedelta(hours=2)
    monkeypatch.setattr(settings, "message_ttl_hours", 0)
    assert ephemeral.message_ttl() == ephemeral.MESSAGE_TTL


@pytest.fixture
def chat(clock, make_user):
    profiles = ProfileService(clock=clock)
    friends = FriendService(profiles=profiles, clock=clock)
    teams = TeamService(profiles=profiles, clock=clock)
    return {
        "profiles": profiles,
        "friends": friends,
        "posts": PostService(profiles=profiles, clock=clock),
        "requests": TeamRequestService(profiles=profiles, clock=clock),
        "teams": teams,
        "friend_chat": FriendChatService(friends=friends, profiles=profiles, clock=clock),
        "team_chat": TeamChatService(teams=teams, profiles=profiles, clock=clock),
    }


async def _befriend(chat, a, b):
    await chat["profiles"].ensure_user(b)
    request = await chat["friends"].send_request(a, b.id)
    await chat["friends"].accept_request(b, request.id)


@pytest.mark.asyncio
async def test_friend_message_disappears_for_both_users_after_a_day(chat, clock, make_user):
    x, y = make_user("xavier"), make_user("yara")
    await _befriend(chat, x, y)
    t0 = clock.now

    clock.advance(hours=1)
    sent = await chat["friend_chat"].send_message(x, "yara", "see you at the lab")
    assert sent.expires_at == sent.created_at + timedelta(hours=24)

    clock.advance(hours=23, minutes=58)
    assert [m.id for m in await chat["friend_chat"].list_messages(y, "xavier")] == [sent.id]

    clock.now = sent.created_at + timedelta(hours=24)
    assert await chat["friend_chat"].list_messages(x, "yara") == []

    clock.now = t0 + timedelta(hours=24, minutes=59)
    assert await chat["friend_chat"].list_messages(x, "yara") == []
    assert await chat["friend_chat"].list_messages(y, "xavier") == []


@pytest.mark.asyncio
async def test_reads_are_idempotent_and_ordered(chat, clock, make_user):
    x, y = make_user("xavier"), make_user("yara")
    await _befriend(chat, x, y)
    first = await chat["friend_chat"].send_message(x, "yara", "one")
    clock.advance(seconds=1)
    second = await chat["friend_chat"].send_message(y, "xavier", "two")
    once = await chat["friend_chat"].list_messages(x, "yara")
    twice = await chat["friend_chat"].list_messages(x, "yara")
    assert [m.id for m in once] == [first.id, second.id]
    assert once == twice


@pytest.mark.asyncio
async def test_friend_chat_requires_friendship(chat, make_user):
    x, y = make_user("xavier"), make_user("yara")
    await chat["profiles"].ensure_user(x)
    await chat["profiles"].ensure_user(y)
    with pytest.raises(NotFriends):
        await chat["friend_chat"].send_message(x, "yara", "hello?")
    with pytest.raises(NotFriends):
        await chat["friend_chat"].list_messages(y, "xavier")


@pytest.mark.asyncio
async def test_team_chat_follows_membership_and_expiry(chat, clock, make_user):
    owner, amy, ben = make_user("owner"), make_user("amy"), make_user("ben")
    post = await chat["posts"].create_post(owner, TeamPostCreate(title="Compilers", description="LLVM", max_members=4))
    request = await chat["requests"].create_request(amy, post.id)
    await chat["requests"].update_status(owner, request.id, "accepted")

    message = await chat["team_chat"].send_message(amy, post.id, "hi team")
    assert [m.id for m in await chat["team_chat"].list_messages(owner, post.id)] == [message.id]
    latest = await chat["team_chat"].latest_for([post.id])
    assert latest[post.id].id == message.id

    with pytest.raises(TeamPolicyError):
        await chat["team_chat"].list_messages(ben, post.id)

    await chat["teams"].remove_member(owner, post.id, "amy")
    with pytest.raises(TeamPolicyError) as exc_info:
        await chat["team_chat"].send_message(amy, post.id, "still here?")
    assert exc_info.value.code == "not_member"

    clock.advance(hours=24)
    assert await chat["team_chat"].list_messages(owner, post.id) == []
    assert await chat["team_chat"].latest_for([post.id]) == {}


@pytest.mark.asyncio
async def test_purge_removes_only_expired_messages(chat, clock, make_user):
    x, y = make_user("xavier"), make_user("yara")
    await _befriend(chat, x, y)
    await chat["friend_chat"].send_message(x, "yara", "old")
    clock.advance(hours=12)
    fresh = await chat["friend_chat"].send_message(x, "yara", "new")
    clock.advance(hours=13)
    assert await messaging_service.purge_expired(clock) == 1
    assert [m.id for m in await chat["friend_chat"].list_messages(y, "xavier")] == [fresh.id]


@pytest.mark.asyncio
async def test_send_rate_limit(chat, make_user, monkeypatch):
    monkeypatch.setattr(settings, "messages_per_minute", 1)
    x, y = make_user("xavier"), make_user("yara")
    await _befriend(chat, x, y)
    await chat["friend_chat"].send_message(x, "yara", "first")
    with pytest.raises(RateLimitExceeded):
        await chat["friend_chat"].send_message(x, "yara", "second")


@pytest.mark.asyncio
async def test_message_is_stored_even_when_fanout_fails(chat, make_user, monkeypatch):
    x, y = make_user("xavier"), make_user("yara")
    await _befriend(chat, x, y)

    async def socket_down(*args, **kwargs):
        raise ConnectionError("socket server gone")

    monkeypatch.setattr(social_sockets, "emit_message_new", socket_down)
    sent = await chat["friend_chat"].send_message(x, "yara", "still here")
    assert [m.id for m in await chat["friend_chat"].list_messages(y, "xavier")] == [sent.id]
