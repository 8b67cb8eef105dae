from datetime import datetime, timedelta, timezone

import pytest

from gittogether.domain.social import relationship
from gittogether.domain.social.models import FriendRequest, FriendRequestStatus, RelationshipStatus

T0 = datetime(2025, 3, 1, tzinfo=timezone.utc)


def _request(requester: str, target: str, status: FriendRequestStatus, *, minutes: int = 0) -> FriendRequest:
    at = T0 + timedelta(minutes=minutes)
    return FriendRequest(
        id=f"{requester}-{target}-{minutes}",
        requester_id=requester,
        target_id=target,
        status=status,
        created_at=at,
        updated_at=at,
    )


def test_viewer_is_target_resolves_self():
    history = [_request("alice", "bob", FriendRequestStatus.ACCEPTED)]
    assert relationship.resolve("alice", "alice", history) is RelationshipStatus.SELF


def test_accepted_request_in_either_direction_is_friend():
    history = [_request("bob", "alice", FriendRequestStatus.ACCEPTED)]
    assert relationship.resolve("alice", "bob", history) is RelationshipStatus.FRIEND
    assert relationship.resolve("bob", "alice", history) is RelationshipStatus.FRIEND


def test_pending_direction_decides_incoming_or_outgoing():
    history = [_request("bob", "alice", FriendRequestStatus.PENDING)]
    assert relationship.resolve("alice", "bob", history) is RelationshipStatus.PENDING_INCOMING
    assert relationship.resolve("bob", "alice", history) is RelationshipStatus.PENDING_OUTGOING


def test_friend_wins_over_stale_pending():
    history = [
        _request("alice", "bob", FriendRequestStatus.PENDING),
        _request("bob", "alice", FriendRequestStatus.ACCEPTED, minutes=5),
    ]
    assert relationship.resolve("alice", "bob", history) is RelationshipStatus.FRIEND


def test_incoming_takes_precedence_over_outgoing():
    history = [
        _request("alice", "bob", FriendRequestStatus.PENDING),
        _request("bob", "alice", FriendRequestStatus.PENDING, minutes=1),
    ]
    assert relationship.resolve("alice", "bob", history) is RelationshipStatus.PENDING_INCOMING


@pytest.mark.parametrize(
    "status",
    [FriendRequestStatus.REJECTED, FriendRequestStatus.CANCELLED],
)
def test_closed_requests_resolve_to_none(status):
    history = [_request("alice", "bob", status)]
    assert relationship.resolve("alice", "bob", history) is RelationshipStatus.NONE


def test_requests_with_other_users_are_ignored():
    history = [
        _request("alice", "carol", FriendRequestStatus.ACCEPTED),
        _request("dave", "bob", FriendRequestStatus.PENDING),
    ]
    assert relationship.resolve("alice", "bob", history) is RelationshipStatus.NONE


def test_resolve_many_and_friend_ids_share_the_history():
    history = [
        _request("alice", "bob", FriendRequestStatus.ACCEPTED),
        _request("carol", "alice", FriendRequestStatus.PENDING),
        _request("alice", "dave", FriendRequestStatus.PENDING),
    ]
    statuses = relationship.resolve_many("alice", ["bob", "carol", "dave", "erin", "alice"], history)
    assert statuses == {
        "bob": RelationshipStatus.FRIEND,
        "carol": RelationshipStatus.PENDING_INCOMING,
        "dave": RelationshipStatus.PENDING_OUTGOING,
        "erin": RelationshipStatus.NONE,
        "alice": RelationshipStatus.SELF,
    }
    assert relationship.friend_ids("alice", history) == {"bob"}


def test_only_none_permits_sending():
    allowed = [status for status in RelationshipStatus if relationship.can_send(status)]
    assert allowed == [RelationshipStatus.NONE]
