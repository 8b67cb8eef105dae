"""Domain models for friend requests and the derived relationship state."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class RelationshipStatus(str, Enum):
	"""Connection state between a viewer and a target user."""

	SELF = "self"
	FRIEND = "friend"
	PENDING_INCOMING = "pending_incoming"
	PENDING_OUTGOING = "pending_outgoing"
	NONE = "none"


class FriendRequestStatus(str, Enum):
	PENDING = "pending"
	ACCEPTED = "accepted"
	REJECTED = "rejected"
	CANCELLED = "cancelled"


MESSAGE_MAX_LENGTH = 500


@dataclass(slots=True)
class FriendRequest:
	"""A directional request from ``requester_id`` to ``target_id``."""

	id: str
	requester_id: str
	target_id: str
	status: FriendRequestStatus
	created_at: datetime
	updated_at: datetime
	message: Optional[str] = None

	@classmethod
	def from_record(cls, record) -> "FriendRequest":
		return cls(
			id=str(record["id"]),
			requester_id=str(record["requester_id"]),
			target_id=str(record["target_id"]),
			status=FriendRequestStatus(record["status"]),
			created_at=record["created_at"],
			updated_at=record["updated_at"],
			message=record.get("message"),
		)

	def between(self, user_a: str, user_b: str) -> bool:
		return {self.requester_id, self.target_id} == {str(user_a), str(user_b)}

	def other_party(self, user_id: str) -> str:
		return self.target_id if self.requester_id == str(user_id) else self.requester_id
