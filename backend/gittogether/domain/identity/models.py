"""Domain models for users, profiles and skills."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple


@dataclass(slots=True)
class Skill:
	id: str
	name: str
	category: Optional[str] = None
	description: Optional[str] = None

	@classmethod
	def from_record(cls, record) -> "Skill":
		return cls(
			id=str(record["id"]),
			name=record["name"],
			category=record.get("category"),
			description=record.get("description"),
		)


@dataclass(slots=True)
class User:
	"""A student account, materialised on first sign-in."""

	id: str
	name: str
	email: Optional[str]
	created_at: datetime
	updated_at: datetime
	profile_picture: Optional[str] = None
	bio: Optional[str] = None
	department: Optional[str] = None
	year: Optional[str] = None
	roll_number: Optional[str] = None
	linkedin: Optional[str] = None
	github: Optional[str] = None
	is_admin: bool = False
	is_active: bool = True
	skills: Tuple[Skill, ...] = field(default_factory=tuple)

	@classmethod
	def from_record(cls, record) -> "User":
		return cls(
			id=str(record["id"]),
			name=record["name"],
			email=record.get("email"),
			created_at=record["created_at"],
			updated_at=record["updated_at"],
			profile_picture=record.get("profile_picture"),
			bio=record.get("bio"),
			department=record.get("department"),
			year=record.get("year"),
			roll_number=record.get("roll_number"),
			linkedin=record.get("linkedin"),
			github=record.get("github"),
			is_admin=bool(record.get("is_admin", False)),
			is_active=bool(record.get("is_active", True)),
		)


# Profile fields a user may edit on their own account.
EDITABLE_FIELDS = (
	"name",
	"profile_picture",
	"bio",
	"department",
	"year",
	"roll_number",
	"linkedin",
	"github",
)

# Seed catalogue used when no database is attached.
DEFAULT_SKILLS: Tuple[Tuple[str, str], ...] = (
	("python", "Programming"),
	("javascript", "Programming"),
	("typescript", "Programming"),
	("react", "Frontend"),
	("next.js", "Frontend"),
	("fastapi", "Backend"),
	("django", "Backend"),
	("postgresql", "Data"),
	("machine learning", "Data"),
	("ui/ux design", "Design"),
	("figma", "Design"),
	("devops", "Infrastructure"),
)
