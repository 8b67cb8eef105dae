"""Pydantic schemas for team posts, join requests and team views."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from gittogether.domain.identity.schemas import SkillOut, UserSummary
from gittogether.domain.messaging.schemas import TeamMessageOut
from gittogether.domain.teams.models import MAX_MEMBERS, MIN_MEMBERS

RequestStatusLiteral = Literal["pending", "accepted", "rejected"]


def _clean(value):
	if isinstance(value, str):
		return value.strip()
	return value


class TeamPostCreate(BaseModel):
	title: str = Field(..., min_length=3, max_length=120)
	description: str = Field(..., min_length=1, max_length=5000)
	max_members: int = Field(default=4, ge=MIN_MEMBERS, le=MAX_MEMBERS)
	required_skill_ids: List[str] = Field(default_factory=list, max_length=20)

	@field_validator("title", "description", mode="before")
	@classmethod
	def strip_text(cls, value):
		return _clean(value)


class TeamPostUpdate(BaseModel):
	title: Optional[str] = Field(default=None, min_length=3, max_length=120)
	description: Optional[str] = Field(default=None, min_length=1, max_length=5000)
	max_members: Optional[int] = Field(default=None, ge=MIN_MEMBERS, le=MAX_MEMBERS)
	required_skill_ids: Optional[List[str]] = Field(default=None, max_length=20)
	is_open: Optional[bool] = None

	@field_validator("title", "description", mode="before")
	@classmethod
	def strip_text(cls, value):
		return _clean(value)


class TeamPostOut(BaseModel):
	id: str
	title: str
	description: str
	max_members: int
	current_members: int
	status: Literal["open", "full", "closed"]
	is_open: bool
	owner: UserSummary
	required_skills: List[SkillOut] = Field(default_factory=list)
	created_at: datetime
	updated_at: datetime
	is_owner: bool = False
	my_request_status: Optional[RequestStatusLiteral] = None
	my_request_id: Optional[str] = None


class TeamRequestCreate(BaseModel):
	post_id: str = Field(..., min_length=1)
	message: Optional[str] = Field(default=None, max_length=1000)


class TeamRequestStatusUpdate(BaseModel):
	status: Literal["accepted", "rejected"]
	response_message: Optional[str] = Field(default=None, max_length=1000)


class TeamRequestOut(BaseModel):
	id: str
	post_id: str
	post_title: Optional[str] = None
	status: RequestStatusLiteral
	message: Optional[str] = None
	response_message: Optional[str] = None
	created_at: datetime
	updated_at: datetime
	requester: UserSummary
	post_owner: Optional[UserSummary] = None


class TeamMemberOut(BaseModel):
	user: UserSummary
	role: Literal["owner", "member"]
	joined_at: datetime


class TeamOut(BaseModel):
	id: str
	title: str
	description: str
	role: Literal["owner", "member"]
	status: Literal["open", "full", "closed"]
	current_members: int
	max_members: int
	owner: UserSummary
	members: List[TeamMemberOut] = Field(default_factory=list)
	created_at: datetime
	latest_message: Optional[TeamMessageOut] = None


class TeamRequestUpdatePayload(BaseModel):
	id: str
	post_id: str
	status: Literal["pending", "accepted", "rejected", "withdrawn"]


class MemberRemovedPayload(BaseModel):
	team_id: str
	user_id: str
