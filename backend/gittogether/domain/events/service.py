"""Events board: anyone may publish, owners and admins may delete."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional

import ulid

from gittogether.domain.common.clock import Clock, utcnow
from gittogether.domain.common.repo import PoolRepository
from gittogether.domain.events.models import Event
from gittogether.domain.events.schemas import EventCreate, EventOut
from gittogether.domain.identity.schemas import UserSummary
from gittogether.domain.identity.service import ProfileService
from gittogether.infra.auth import AuthenticatedUser
from gittogether.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


class EventNotFound(LookupError):
	pass


class EventForbidden(PermissionError):
	pass


class _MemoryStore:
	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self.events: Dict[str, Event] = {}

	async def create(self, event: Event) -> Event:
		async with self._lock:
			self.events[event.id] = event
			return event

	async def get(self, event_id: str) -> Optional[Event]:
		async with self._lock:
			return self.events.get(event_id)

	async def list(self, limit: int) -> List[Event]:
		async with self._lock:
			items = list(self.events.values())
		items.sort(key=lambda e: (e.created_at, e.id), reverse=True)
		return items[:limit]

	async def delete(self, event_id: str) -> None:
		async with self._lock:
			self.events.pop(event_id, None)


_MEMORY = _MemoryStore()


class EventRepository(PoolRepository):
	async def create(self, event: Event) -> Event:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.create(event)
		async with pool.acquire() as conn:
			await conn.execute(
				"""
				INSERT INTO events (id, owner_id, title, description, link, image_url, created_at)
				VALUES ($1, $2, $3, $4, $5, $6, $7)
				""",
				event.id,
				event.owner_id,
				event.title,
				event.description,
				event.link,
				event.image_url,
				event.created_at,
			)
		return event

	async def get(self, event_id: str) -> Optional[Event]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.get(event_id)
		async with pool.acquire() as conn:
			row = await conn.fetchrow("SELECT * FROM events WHERE id = $1", event_id)
		return Event.from_record(row) if row else None

	async def list(self, limit: int = 100) -> List[Event]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.list(limit)
		async with pool.acquire() as conn:
			rows = await conn.fetch("SELECT * FROM events ORDER BY created_at DESC, id DESC LIMIT $1", limit)
		return [Event.from_record(row) for row in rows]

	async def delete(self, event_id: str) -> None:
		pool = await self._pool_or_none()
		if pool is None:
			await _MEMORY.delete(event_id)
			return
		async with pool.acquire() as conn:
			await conn.execute("DELETE FROM events WHERE id = $1", event_id)


class EventService:
	def __init__(
		self,
		repository: EventRepository | None = None,
		*,
		profiles: ProfileService | None = None,
		clock: Clock | None = None,
	) -> None:
		self._repo = repository or EventRepository()
		self._clock = clock or utcnow
		self._profiles = profiles or ProfileService(clock=self._clock)

	@staticmethod
	def _can_delete(event: Event, user: AuthenticatedUser) -> bool:
		return event.owner_id == str(user.id) or user.has_role("admin")

	async def _views(self, events: List[Event], viewer: AuthenticatedUser) -> List[EventOut]:
		owners = await self._profiles.summaries({e.owner_id for e in events})
		return [
			EventOut(
				id=e.id,
				title=e.title,
				description=e.description,
				link=e.link,
				image_url=e.image_url,
				created_at=e.created_at,
				owner=owners.get(e.owner_id) or UserSummary(id=e.owner_id, name="Unknown user"),
				can_delete=self._can_delete(e, viewer),
			)
			for e in events
		]

	async def list_events(self, auth_user: AuthenticatedUser, *, limit: int = 100) -> List[EventOut]:
		return await self._views(await self._repo.list(limit), auth_user)

	async def create_event(self, auth_user: AuthenticatedUser, payload: EventCreate) -> EventOut:
		await self._profiles.ensure_user(auth_user)
		event = await self._repo.create(
			Event(
				id=str(ulid.new()),
				owner_id=str(auth_user.id),
				title=payload.title,
				description=payload.description,
				link=payload.link,
				image_url=payload.image_url,
				created_at=self._clock(),
			)
		)
		obs_metrics.inc_event_created()
		logger.info("event_created", extra={"event_id": event.id})
		(view,) = await self._views([event], auth_user)
		return view

	async def delete_event(self, auth_user: AuthenticatedUser, event_id: str) -> None:
		event = await self._repo.get(event_id)
		if event is None:
			raise EventNotFound(event_id)
		if not self._can_delete(event, auth_user):
			raise EventForbidden(event_id)
		await self._repo.delete(event.id)


async def reset_memory_state() -> None:
	"""Test helper to clear in-memory store state."""
	async with _MEMORY._lock:  # type: ignore[attr-defined]
		_MEMORY.events.clear()
