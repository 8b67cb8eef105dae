"""Domain-level exceptions for friend requests and friendships."""

from __future__ import annotations

from gittogether.infra.rate_limit import RateLimitExceeded


class SocialError(Exception):
	"""Base class for social feature errors."""

	reason: str = "unknown"

	def __init__(self, reason: str | None = None) -> None:
		super().__init__(reason or self.reason)
		if reason:
			self.reason = reason


class FriendRequestConflict(SocialError):
	reason = "conflict"


class FriendRequestAlreadySent(FriendRequestConflict):
	reason = "already_sent"


class FriendRequestIncomingPending(FriendRequestConflict):
	reason = "incoming_pending"


class AlreadyFriends(FriendRequestConflict):
	reason = "already_friends"


class FriendRequestSelf(FriendRequestConflict):
	reason = "self_request"


class FriendRequestForbidden(SocialError):
	reason = "forbidden"


class FriendRequestNotFound(SocialError):
	reason = "not_found"


class FriendRequestGone(SocialError):
	"""The request already left the pending state."""

	reason = "gone"


class NotFriends(SocialError):
	reason = "not_friends"


class FriendRequestRateLimitExceeded(RateLimitExceeded):
	"""Raised when friend request sending hits a quota."""

	def __init__(self, reason: str) -> None:
		super().__init__(reason)
		self.reason = reason
