"""Friend chat and team chat over the 24 hour visibility window."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

import ulid

from gittogether.domain.common.clock import Clock, utcnow
from gittogether.domain.common.repo import PoolRepository
from gittogether.domain.identity.schemas import UserSummary
from gittogether.domain.identity.service import ProfileService
from gittogether.domain.messaging import ephemeral
from gittogether.domain.messaging.models import FriendMessage, TeamMessage, pair_key
from gittogether.domain.messaging.schemas import FriendMessageOut, TeamMessageOut
from gittogether.domain.social import sockets as social_sockets
from gittogether.domain.social.exceptions import NotFriends
from gittogether.domain.social.service import FriendService
from gittogether.domain.teams import sockets as team_sockets
from gittogether.domain.teams.service import TeamService
from gittogether.infra import rate_limit
from gittogether.infra.auth import AuthenticatedUser
from gittogether.obs import metrics as obs_metrics
from gittogether.settings import settings

logger = logging.getLogger(__name__)


class _MemoryStore:
	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self.friend_messages: List[FriendMessage] = []
		self.team_message_items: List[TeamMessage] = []

	async def add_friend_message(self, message: FriendMessage) -> FriendMessage:
		async with self._lock:
			self.friend_messages.append(message)
			return message

	async def friend_messages_between(self, user_a: str, user_b: str, now: datetime) -> List[FriendMessage]:
		key = pair_key(user_a, user_b)
		async with self._lock:
			items = [m for m in self.friend_messages if m.pair == key and now < m.expires_at]
		return sorted(items, key=lambda m: (m.created_at, m.id))

	async def add_team_message(self, message: TeamMessage) -> TeamMessage:
		async with self._lock:
			self.team_message_items.append(message)
			return message

	async def team_messages(self, team_id: str, now: datetime) -> List[TeamMessage]:
		async with self._lock:
			items = [m for m in self.team_message_items if m.team_id == team_id and now < m.expires_at]
		return sorted(items, key=lambda m: (m.created_at, m.id))

	async def latest_team_messages(self, team_ids: Iterable[str], now: datetime) -> Dict[str, TeamMessage]:
		wanted = set(team_ids)
		latest: Dict[str, TeamMessage] = {}
		async with self._lock:
			for message in self.team_message_items:
				if message.team_id not in wanted or not now < message.expires_at:
					continue
				current = latest.get(message.team_id)
				if current is None or (message.created_at, message.id) > (current.created_at, current.id):
					latest[message.team_id] = message
		return latest

	async def purge_expired(self, now: datetime) -> int:
		async with self._lock:
			before = len(self.friend_messages) + len(self.team_message_items)
			self.friend_messages = [m for m in self.friend_messages if now < m.expires_at]
			self.team_message_items = [m for m in self.team_message_items if now < m.expires_at]
			return before - len(self.friend_messages) - len(self.team_message_items)


_MEMORY = _MemoryStore()


class MessageRepository(PoolRepository):
	"""Message storage; every read filters on ``expires_at > now``."""

	async def add_friend_message(self, message: FriendMessage) -> FriendMessage:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.add_friend_message(message)
		async with pool.acquire() as conn:
			await conn.execute(
				"""
				INSERT INTO friend_messages (id, sender_id, receiver_id, content, created_at, expires_at)
				VALUES ($1, $2, $3, $4, $5, $6)
				""",
				message.id,
				message.sender_id,
				message.receiver_id,
				message.content,
				message.created_at,
				message.expires_at,
			)
		return message

	async def friend_messages_between(self, user_a: str, user_b: str, now: datetime) -> List[FriendMessage]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.friend_messages_between(user_a, user_b, now)
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT * FROM friend_messages
				WHERE ((sender_id = $1 AND receiver_id = $2) OR (sender_id = $2 AND receiver_id = $1))
				  AND expires_at > $3
				ORDER BY created_at, id
				""",
				user_a,
				user_b,
				now,
			)
		return [FriendMessage.from_record(row) for row in rows]

	async def add_team_message(self, message: TeamMessage) -> TeamMessage:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.add_team_message(message)
		async with pool.acquire() as conn:
			await conn.execute(
				"""
				INSERT INTO team_messages (id, team_id, sender_id, content, created_at, expires_at)
				VALUES ($1, $2, $3, $4, $5, $6)
				""",
				message.id,
				message.team_id,
				message.sender_id,
				message.content,
				message.created_at,
				message.expires_at,
			)
		return message

	async def team_messages(self, team_id: str, now: datetime) -> List[TeamMessage]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.team_messages(team_id, now)
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"SELECT * FROM team_messages WHERE team_id = $1 AND expires_at > $2 ORDER BY created_at, id",
				team_id,
				now,
			)
		return [TeamMessage.from_record(row) for row in rows]

	async def latest_team_messages(self, team_ids: Iterable[str], now: datetime) -> Dict[str, TeamMessage]:
		ids = list(dict.fromkeys(team_ids))
		if not ids:
			return {}
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.latest_team_messages(ids, now)
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT DISTINCT ON (team_id) *
				FROM team_messages
				WHERE team_id = ANY($1::text[]) AND expires_at > $2
				ORDER BY team_id, created_at DESC, id DESC
				""",
				ids,
				now,
			)
		return {str(row["team_id"]): TeamMessage.from_record(row) for row in rows}

	async def purge_expired(self, now: datetime) -> int:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.purge_expired(now)
		async with pool.acquire() as conn:
			friend = await conn.execute("DELETE FROM friend_messages WHERE expires_at <= $1", now)
			team = await conn.execute("DELETE FROM team_messages WHERE expires_at <= $1", now)
		return int(friend.split()[-1]) + int(team.split()[-1])


def _summary(summaries: Dict[str, UserSummary], user_id: str) -> UserSummary:
	return summaries.get(user_id) or UserSummary(id=user_id, name="Unknown user")


async def _enforce_send_limit(user_id: str) -> None:
	if not await rate_limit.allow("message_send", user_id, limit=settings.messages_per_minute, window_seconds=60):
		raise rate_limit.RateLimitExceeded("rate_limited:send")


class FriendChatService:
	def __init__(
		self,
		repository: MessageRepository | None = None,
		*,
		friends: FriendService | None = None,
		profiles: ProfileService | None = None,
		clock: Clock | None = None,
	) -> None:
		self._repo = repository or MessageRepository()
		self._clock = clock or utcnow
		self._profiles = profiles or ProfileService(clock=self._clock)
		self._friends = friends or FriendService(profiles=self._profiles, clock=self._clock)

	async def _ensure_friends(self, user_id: str, friend_id: str) -> None:
		if not await self._friends.are_friends(user_id, friend_id):
			raise NotFriends()

	async def _views(self, messages: List[FriendMessage]) -> List[FriendMessageOut]:
		summaries = await self._profiles.summaries({uid for m in messages for uid in (m.sender_id, m.receiver_id)})
		return [
			FriendMessageOut(
				id=m.id,
				content=m.content,
				created_at=m.created_at,
				expires_at=m.expires_at,
				sender=_summary(summaries, m.sender_id),
				receiver=_summary(summaries, m.receiver_id),
			)
			for m in messages
		]

	async def list_messages(self, auth_user: AuthenticatedUser, friend_id: str) -> List[FriendMessageOut]:
		"""Full-window fetch of every message still visible between the pair."""
		await self._ensure_friends(auth_user.id, friend_id)
		now = self._clock()
		messages = await self._repo.friend_messages_between(str(auth_user.id), str(friend_id), now)
		return await self._views(ephemeral.visible(messages, now))

	async def send_message(self, auth_user: AuthenticatedUser, friend_id: str, content: str) -> FriendMessageOut:
		await self._ensure_friends(auth_user.id, friend_id)
		await _enforce_send_limit(str(auth_user.id))
		now = self._clock()
		message = await self._repo.add_friend_message(
			FriendMessage(
				id=str(ulid.new()),
				sender_id=str(auth_user.id),
				receiver_id=str(friend_id),
				content=content,
				created_at=now,
				expires_at=ephemeral.expires_at_for(now),
			)
		)
		obs_metrics.inc_message_sent("friend")
		(view,) = await self._views([message])
		payload = view.model_dump(mode="json")
		try:
			await social_sockets.emit_message_new(message.receiver_id, payload)
			await social_sockets.emit_message_new(message.sender_id, payload)
		except Exception:
			logger.warning("message_fanout_failed", extra={"message_id": message.id}, exc_info=True)
		return view


class TeamChatService:
	def __init__(
		self,
		repository: MessageRepository | None = None,
		*,
		teams: TeamService | None = None,
		profiles: ProfileService | None = None,
		clock: Clock | None = None,
	) -> None:
		self._repo = repository or MessageRepository()
		self._clock = clock or utcnow
		self._profiles = profiles or ProfileService(clock=self._clock)
		self._teams = teams or TeamService(profiles=self._profiles, clock=self._clock)

	async def _views(self, messages: Iterable[TeamMessage]) -> List[TeamMessageOut]:
		items = list(messages)
		summaries = await self._profiles.summaries({m.sender_id for m in items})
		return [
			TeamMessageOut(
				id=m.id,
				team_id=m.team_id,
				content=m.content,
				created_at=m.created_at,
				expires_at=m.expires_at,
				sender=_summary(summaries, m.sender_id),
			)
			for m in items
		]

	async def list_messages(self, auth_user: AuthenticatedUser, team_id: str) -> List[TeamMessageOut]:
		post, _ = await self._teams.require_member(team_id, auth_user.id)
		now = self._clock()
		messages = await self._repo.team_messages(post.id, now)
		return await self._views(ephemeral.visible(messages, now))

	async def send_message(self, auth_user: AuthenticatedUser, team_id: str, content: str) -> TeamMessageOut:
		post, _ = await self._teams.require_member(team_id, auth_user.id)
		await _enforce_send_limit(str(auth_user.id))
		now = self._clock()
		message = await self._repo.add_team_message(
			TeamMessage(
				id=str(ulid.new()),
				team_id=post.id,
				sender_id=str(auth_user.id),
				content=content,
				created_at=now,
				expires_at=ephemeral.expires_at_for(now),
			)
		)
		obs_metrics.inc_message_sent("team")
		(view,) = await self._views([message])
		try:
			await team_sockets.emit_message_new(post.id, view.model_dump(mode="json"))
		except Exception:
			logger.warning("message_fanout_failed", extra={"message_id": message.id}, exc_info=True)
		return view

	async def latest_for(self, team_ids: Iterable[str]) -> Dict[str, TeamMessageOut]:
		latest = await self._repo.latest_team_messages(team_ids, self._clock())
		views = await self._views(latest.values())
		return {view.team_id: view for view in views}


async def purge_expired(clock: Optional[Clock] = None) -> int:
	"""Delete messages past their window; reads never depend on this running."""
	removed = await MessageRepository().purge_expired((clock or utcnow)())
	if removed:
		logger.info("messages_purged", extra={"count": removed})
	return removed


async def run_purge_sweeper(interval_s: int = 3600) -> None:
	"""Periodically delete expired messages until cancelled."""
	interval = max(1, int(interval_s))
	while True:
		await asyncio.sleep(interval)
		try:
			await purge_expired()
		except asyncio.CancelledError:
			raise
		except Exception:  # pragma: no cover - background loop
			logger.exception("message purge sweeper iteration failed")


async def reset_memory_state() -> None:
	"""Test helper to clear in-memory store state."""
	async with _MEMORY._lock:  # type: ignore[attr-defined]
		_MEMORY.friend_messages.clear()
		_MEMORY.team_message_items.clear()
