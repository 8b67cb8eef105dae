"""Pydantic schemas for profile and skill endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .models import Skill, User


class SkillOut(BaseModel):
	id: str
	name: str
	category: Optional[str] = None
	description: Optional[str] = None

	@classmethod
	def from_model(cls, skill: Skill) -> "SkillOut":
		return cls(id=skill.id, name=skill.name, category=skill.category, description=skill.description)


class UserSummary(BaseModel):
	"""Compact user card embedded in friend, request and team payloads."""

	id: str
	name: str
	email: Optional[str] = None
	profile_picture: Optional[str] = None
	bio: Optional[str] = None

	@classmethod
	def from_model(cls, user: User) -> "UserSummary":
		return cls(
			id=user.id,
			name=user.name,
			email=user.email,
			profile_picture=user.profile_picture,
			bio=user.bio,
		)


class PublicProfileOut(UserSummary):
	department: Optional[str] = None
	year: Optional[str] = None
	linkedin: Optional[str] = None
	github: Optional[str] = None
	skills: List[SkillOut] = Field(default_factory=list)
	created_at: Optional[datetime] = None

	@classmethod
	def from_model(cls, user: User) -> "PublicProfileOut":
		return cls(
			id=user.id,
			name=user.name,
			email=user.email,
			profile_picture=user.profile_picture,
			bio=user.bio,
			department=user.department,
			year=user.year,
			linkedin=user.linkedin,
			github=user.github,
			skills=[SkillOut.from_model(skill) for skill in user.skills],
			created_at=user.created_at,
		)


class ProfileOut(PublicProfileOut):
	roll_number: Optional[str] = None
	is_admin: bool = False

	@classmethod
	def from_model(cls, user: User) -> "ProfileOut":
		base = PublicProfileOut.from_model(user).model_dump()
		return cls(**base, roll_number=user.roll_number, is_admin=user.is_admin)


class ProfileUpdate(BaseModel):
	name: Optional[str] = Field(default=None, min_length=1, max_length=120)
	profile_picture: Optional[str] = Field(default=None, max_length=500)
	bio: Optional[str] = Field(default=None, max_length=1000)
	department: Optional[str] = Field(default=None, max_length=120)
	year: Optional[str] = Field(default=None, max_length=20)
	roll_number: Optional[str] = Field(default=None, max_length=40)
	linkedin: Optional[str] = Field(default=None, max_length=300)
	github: Optional[str] = Field(default=None, max_length=300)
