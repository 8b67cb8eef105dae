"""Domain models for team posts, join requests and derived membership."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

MIN_MEMBERS = 2
MAX_MEMBERS = 50


class TeamRequestStatus(str, Enum):
	PENDING = "pending"
	ACCEPTED = "accepted"
	REJECTED = "rejected"


class PostStatus(str, Enum):
	OPEN = "open"
	FULL = "full"
	CLOSED = "closed"


class MemberRole(str, Enum):
	OWNER = "owner"
	MEMBER = "member"


# Statuses that hold a requester's slot on a post.
ACTIVE_REQUEST_STATUSES = frozenset({TeamRequestStatus.PENDING, TeamRequestStatus.ACCEPTED})


@dataclass(slots=True)
class TeamPost:
	"""A published call for collaborators owned by a single user."""

	id: str
	owner_id: str
	title: str
	description: str
	max_members: int
	created_at: datetime
	updated_at: datetime
	is_open: bool = True
	required_skill_ids: Tuple[str, ...] = field(default_factory=tuple)

	@classmethod
	def from_record(cls, record, skill_ids: Tuple[str, ...] = ()) -> "TeamPost":
		return cls(
			id=str(record["id"]),
			owner_id=str(record["owner_id"]),
			title=record["title"],
			description=record["description"],
			max_members=int(record["max_members"]),
			created_at=record["created_at"],
			updated_at=record["updated_at"],
			is_open=bool(record["is_open"]),
			required_skill_ids=tuple(skill_ids),
		)


@dataclass(slots=True)
class TeamRequest:
	id: str
	post_id: str
	requester_id: str
	status: TeamRequestStatus
	created_at: datetime
	updated_at: datetime
	message: Optional[str] = None
	response_message: Optional[str] = None

	@classmethod
	def from_record(cls, record) -> "TeamRequest":
		return cls(
			id=str(record["id"]),
			post_id=str(record["post_id"]),
			requester_id=str(record["requester_id"]),
			status=TeamRequestStatus(record["status"]),
			created_at=record["created_at"],
			updated_at=record["updated_at"],
			message=record.get("message"),
			response_message=record.get("response_message"),
		)

	@property
	def is_active(self) -> bool:
		return self.status in ACTIVE_REQUEST_STATUSES


@dataclass(frozen=True, slots=True)
class TeamMember:
	user_id: str
	role: MemberRole
	joined_at: datetime
