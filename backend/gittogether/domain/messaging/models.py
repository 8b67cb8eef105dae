"""Domain models for ephemeral friend and team messages."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Tuple


def pair_key(user_one: str, user_two: str) -> Tuple[str, str]:
	"""Canonical ordering of a 1:1 conversation's participants."""
	low, high = sorted((str(user_one), str(user_two)))
	return low, high


@dataclass(slots=True)
class FriendMessage:
	id: str
	sender_id: str
	receiver_id: str
	content: str
	created_at: datetime
	expires_at: datetime

	@classmethod
	def from_record(cls, record) -> "FriendMessage":
		return cls(
			id=str(record["id"]),
			sender_id=str(record["sender_id"]),
			receiver_id=str(record["receiver_id"]),
			content=record["content"],
			created_at=record["created_at"],
			expires_at=record["expires_at"],
		)

	@property
	def pair(self) -> Tuple[str, str]:
		return pair_key(self.sender_id, self.receiver_id)


@dataclass(slots=True)
class TeamMessage:
	id: str
	team_id: str
	sender_id: str
	content: str
	created_at: datetime
	expires_at: datetime

	@classmethod
	def from_record(cls, record) -> "TeamMessage":
		return cls(
			id=str(record["id"]),
			team_id=str(record["team_id"]),
			sender_id=str(record["sender_id"]),
			content=record["content"],
			created_at=record["created_at"],
			expires_at=record["expires_at"],
		)
