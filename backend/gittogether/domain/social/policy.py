"""Policy helpers and guard checks for friend requests."""

from __future__ import annotations

from gittogether.domain.social import relationship
from gittogether.domain.social.exceptions import (
	AlreadyFriends,
	FriendRequestAlreadySent,
	FriendRequestForbidden,
	FriendRequestGone,
	FriendRequestIncomingPending,
	FriendRequestNotFound,
	FriendRequestRateLimitExceeded,
	FriendRequestSelf,
)
from gittogether.domain.social.models import FriendRequest, FriendRequestStatus, RelationshipStatus
from gittogether.infra import rate_limit
from gittogether.settings import settings

_CONFLICTS = {
	RelationshipStatus.SELF: FriendRequestSelf,
	RelationshipStatus.FRIEND: AlreadyFriends,
	RelationshipStatus.PENDING_INCOMING: FriendRequestIncomingPending,
	RelationshipStatus.PENDING_OUTGOING: FriendRequestAlreadySent,
}


async def enforce_send_limits(user_id: str) -> None:
	if not await rate_limit.allow(
		"friend_request", user_id, limit=settings.friend_requests_per_minute, window_seconds=60
	):
		raise FriendRequestRateLimitExceeded("per_minute")
	if not await rate_limit.allow(
		"friend_request_daily", user_id, limit=settings.friend_requests_per_day, window_seconds=86_400
	):
		raise FriendRequestRateLimitExceeded("per_day")


def guard_not_self(user_id: str, target_id: str) -> None:
	if str(user_id) == str(target_id):
		raise FriendRequestSelf()


def ensure_can_send(status: RelationshipStatus) -> None:
	"""Only a pair with no relationship may start a new request."""
	if relationship.can_send(status):
		return
	raise _CONFLICTS[status]()


def ensure_participant(request: FriendRequest, user_id: str) -> None:
	if str(user_id) not in (request.requester_id, request.target_id):
		raise FriendRequestNotFound()


def ensure_recipient(request: FriendRequest, user_id: str) -> None:
	ensure_participant(request, user_id)
	if request.target_id != str(user_id):
		raise FriendRequestForbidden("not_recipient")


def ensure_requester(request: FriendRequest, user_id: str) -> None:
	ensure_participant(request, user_id)
	if request.requester_id != str(user_id):
		raise FriendRequestForbidden("not_requester")


def ensure_pending(request: FriendRequest) -> None:
	if request.status is not FriendRequestStatus.PENDING:
		raise FriendRequestGone("not_pending")
