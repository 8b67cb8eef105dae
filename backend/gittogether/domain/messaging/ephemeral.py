"""Visibility window for chat messages.

A message is stamped with ``expires_at = created_at + ttl`` when it is stored
and that value never changes. Reads only return messages while
``now < expires_at``; at exactly the expiry instant a message is gone.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, List, Optional, TypeVar

from gittogether.settings import settings

MESSAGE_TTL = timedelta(hours=24)

T = TypeVar("T")


def message_ttl() -> timedelta:
	hours = settings.message_ttl_hours
	return timedelta(hours=hours) if hours > 0 else MESSAGE_TTL


def expires_at_for(created_at: datetime, ttl: Optional[timedelta] = None) -> datetime:
	return created_at + (ttl if ttl is not None else message_ttl())


def is_visible(expires_at: datetime, now: datetime) -> bool:
	return now < expires_at


def visible(messages: Iterable[T], now: datetime) -> List[T]:
	"""Keep messages whose ``expires_at`` is still in the future."""
	return [message for message in messages if is_visible(message.expires_at, now)]
