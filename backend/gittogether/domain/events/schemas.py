"""Pydantic schemas for the events board."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from gittogether.domain.identity.schemas import UserSummary


class EventCreate(BaseModel):
	title: str = Field(..., min_length=1, max_length=200)
	description: str = Field(..., min_length=1, max_length=5000)
	link: str = Field(..., min_length=1, max_length=500)
	image_url: Optional[str] = Field(default=None, max_length=500)

	@field_validator("title", "description", "link", "image_url", mode="before")
	@classmethod
	def strip_text(cls, value):
		if isinstance(value, str):
			return value.strip() or None
		return value

	@field_validator("link", "image_url")
	@classmethod
	def require_http(cls, value: Optional[str]) -> Optional[str]:
		if value is not None and not value.lower().startswith(("http://", "https://")):
			raise ValueError("must be an http(s) URL")
		return value


class EventOut(BaseModel):
	id: str
	title: str
	description: str
	link: str
	image_url: Optional[str] = None
	created_at: datetime
	owner: UserSummary
	can_delete: bool = False
