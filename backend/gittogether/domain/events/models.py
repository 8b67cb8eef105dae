from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(slots=True)
class Event:
	id: str
	owner_id: str
	title: str
	description: str
	link: str
	created_at: datetime
	image_url: Optional[str] = None

	@classmethod
	def from_record(cls, record) -> "Event":
		return cls(
			id=str(record["id"]),
			owner_id=str(record["owner_id"]),
			title=record["title"],
			description=record["description"],
			link=record["link"],
			created_at=record["created_at"],
			image_url=record.get("image_url"),
		)
