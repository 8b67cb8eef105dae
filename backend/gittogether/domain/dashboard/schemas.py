from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field

from gittogether.domain.teams.schemas import TeamPostOut, TeamRequestOut


class DashboardSummary(BaseModel):
	my_posts: int = 0
	open_posts: int = 0
	pending_received_requests: int = 0
	pending_sent_requests: int = 0
	teams: int = 0
	friends: int = 0
	incoming_friend_requests: int = 0


class UserStats(BaseModel):
	total: int = 0
	active: int = 0
	new_last_7_days: int = 0


class PostStats(BaseModel):
	total: int = 0
	open: int = 0
	closed: int = 0


class RequestStats(BaseModel):
	total: int = 0
	pending: int = 0
	accepted: int = 0
	rejected: int = 0


class SkillCount(BaseModel):
	name: str
	count: int


class AdminSummary(BaseModel):
	users: UserStats
	posts: PostStats
	requests: RequestStats
	top_skills: List[SkillCount] = Field(default_factory=list)
	recent_posts: List[TeamPostOut] = Field(default_factory=list)
	recent_requests: List[TeamRequestOut] = Field(default_factory=list)
