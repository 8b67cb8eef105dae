"""Pydantic schemas for friend and team chat messages."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from gittogether.domain.identity.schemas import UserSummary

MAX_CONTENT_LENGTH = 2000


class MessageCreate(BaseModel):
	content: str = Field(..., min_length=1, max_length=MAX_CONTENT_LENGTH)

	@field_validator("content", mode="before")
	@classmethod
	def strip_content(cls, value):
		if isinstance(value, str):
			return value.strip()
		return value


class FriendMessageOut(BaseModel):
	id: str
	content: str
	created_at: datetime
	expires_at: datetime
	sender: UserSummary
	receiver: UserSummary


class TeamMessageOut(BaseModel):
	id: str
	team_id: str
	content: str
	created_at: datetime
	expires_at: datetime
	sender: UserSummary
