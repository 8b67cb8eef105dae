"""Pydantic schemas for friend requests, friends and relationship search."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from gittogether.domain.identity.schemas import UserSummary
from gittogether.domain.social.models import MESSAGE_MAX_LENGTH

RelationshipLiteral = Literal["self", "friend", "pending_incoming", "pending_outgoing", "none"]


class FriendRequestCreate(BaseModel):
	target_user_id: str = Field(..., min_length=1, description="User receiving the request")
	message: Optional[str] = Field(default=None, max_length=MESSAGE_MAX_LENGTH)


class FriendRequestOut(BaseModel):
	id: str
	status: Literal["pending", "accepted", "rejected", "cancelled"]
	created_at: datetime
	updated_at: datetime
	message: Optional[str] = None
	requester: UserSummary
	target: UserSummary


class FriendRequestsPayload(BaseModel):
	incoming: List[FriendRequestOut] = Field(default_factory=list)
	outgoing: List[FriendRequestOut] = Field(default_factory=list)


class FriendListResponse(BaseModel):
	friends: List[UserSummary] = Field(default_factory=list)


class FriendSearchResult(BaseModel):
	user: UserSummary
	relationship_status: RelationshipLiteral


class RelationshipOut(BaseModel):
	user_id: str
	relationship_status: RelationshipLiteral


class FriendRequestUpdatePayload(BaseModel):
	id: str
	status: Literal["pending", "accepted", "rejected", "cancelled"]


class FriendUpdatePayload(BaseModel):
	user_id: str
	friend_id: str
	status: Literal["friend", "none"]
