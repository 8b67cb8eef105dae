"""Friend request workflow and friendship queries."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

import ulid

from gittogether.domain.common.clock import Clock, utcnow
from gittogether.domain.common.repo import PoolRepository
from gittogether.domain.identity.schemas import UserSummary
from gittogether.domain.identity.service import ProfileNotFound, ProfileService
from gittogether.domain.social import audit, policy, relationship, sockets
from gittogether.domain.social.exceptions import FriendRequestNotFound, FriendRequestGone
from gittogether.domain.social.models import FriendRequest, FriendRequestStatus, RelationshipStatus
from gittogether.domain.social.schemas import (
	FriendListResponse,
	FriendRequestOut,
	FriendRequestsPayload,
	FriendRequestUpdatePayload,
	FriendSearchResult,
	FriendUpdatePayload,
)
from gittogether.infra.auth import AuthenticatedUser

logger = logging.getLogger(__name__)

_LIVE_STATUSES = (FriendRequestStatus.PENDING.value, FriendRequestStatus.ACCEPTED.value)


def _log_side_effect_failure(event: str, request_id: str) -> None:
	logger.warning("friend_request_side_effect_failed", extra={"event": event, "request_id": request_id}, exc_info=True)


class _MemoryStore:
	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self.requests: Dict[str, FriendRequest] = {}

	def _pair(self, user_a: str, user_b: str) -> List[FriendRequest]:
		return [r for r in self.requests.values() if r.between(user_a, user_b)]

	async def create_if_unrelated(self, request: FriendRequest) -> Tuple[RelationshipStatus, Optional[FriendRequest]]:
		async with self._lock:
			status = relationship.resolve(request.requester_id, request.target_id, self._pair(request.requester_id, request.target_id))
			if not relationship.can_send(status):
				return status, None
			self.requests[request.id] = request
			return status, request

	async def get_request(self, request_id: str) -> Optional[FriendRequest]:
		async with self._lock:
			return self.requests.get(request_id)

	async def transition(
		self,
		request_id: str,
		expected: FriendRequestStatus,
		new_status: FriendRequestStatus,
		now: datetime,
	) -> Optional[FriendRequest]:
		async with self._lock:
			current = self.requests.get(request_id)
			if current is None or current.status is not expected:
				return None
			updated = replace(current, status=new_status, updated_at=now)
			self.requests[request_id] = updated
			return updated

	async def live_requests_for(self, user_id: str) -> List[FriendRequest]:
		async with self._lock:
			return sorted(
				(
					r
					for r in self.requests.values()
					if user_id in (r.requester_id, r.target_id) and r.status.value in _LIVE_STATUSES
				),
				key=lambda r: r.created_at,
				reverse=True,
			)

	async def live_requests_between(self, user_a: str, user_b: str) -> List[FriendRequest]:
		async with self._lock:
			return [r for r in self._pair(user_a, user_b) if r.status.value in _LIVE_STATUSES]


_MEMORY = _MemoryStore()


class FriendRepository(PoolRepository):
	"""Friend request persistence backed by asyncpg with an in-memory fallback."""

	async def create_if_unrelated(self, request: FriendRequest) -> Tuple[RelationshipStatus, Optional[FriendRequest]]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.create_if_unrelated(request)
		low, high = sorted((request.requester_id, request.target_id))
		async with pool.acquire() as conn:
			async with conn.transaction():
				# Serialise writers for this pair so the state check and insert are atomic.
				await conn.execute("SELECT pg_advisory_xact_lock(hashtext($1))", f"friend:{low}:{high}")
				rows = await conn.fetch(
					"""
					SELECT * FROM friend_requests
					WHERE ((requester_id = $1 AND target_id = $2) OR (requester_id = $2 AND target_id = $1))
					  AND status = ANY($3::text[])
					""",
					request.requester_id,
					request.target_id,
					list(_LIVE_STATUSES),
				)
				history = [FriendRequest.from_record(row) for row in rows]
				status = relationship.resolve(request.requester_id, request.target_id, history)
				if not relationship.can_send(status):
					return status, None
				row = await conn.fetchrow(
					"""
					INSERT INTO friend_requests (id, requester_id, target_id, status, message, created_at, updated_at)
					VALUES ($1, $2, $3, 'pending', $4, $5, $5)
					RETURNING *
					""",
					request.id,
					request.requester_id,
					request.target_id,
					request.message,
					request.created_at,
				)
		return status, FriendRequest.from_record(row)

	async def get_request(self, request_id: str) -> Optional[FriendRequest]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.get_request(request_id)
		async with pool.acquire() as conn:
			row = await conn.fetchrow("SELECT * FROM friend_requests WHERE id = $1", request_id)
		return FriendRequest.from_record(row) if row else None

	async def transition(
		self,
		request_id: str,
		expected: FriendRequestStatus,
		new_status: FriendRequestStatus,
		now: datetime,
	) -> Optional[FriendRequest]:
		"""Compare-and-set the status; ``None`` when the request moved on already."""
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.transition(request_id, expected, new_status, now)
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"""
				UPDATE friend_requests
				SET status = $3, updated_at = $4
				WHERE id = $1 AND status = $2
				RETURNING *
				""",
				request_id,
				expected.value,
				new_status.value,
				now,
			)
		return FriendRequest.from_record(row) if row else None

	async def live_requests_for(self, user_id: str) -> List[FriendRequest]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.live_requests_for(user_id)
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT * FROM friend_requests
				WHERE (requester_id = $1 OR target_id = $1)
				  AND status = ANY($2::text[])
				ORDER BY created_at DESC
				""",
				user_id,
				list(_LIVE_STATUSES),
			)
		return [FriendRequest.from_record(row) for row in rows]

	async def live_requests_between(self, user_a: str, user_b: str) -> List[FriendRequest]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.live_requests_between(user_a, user_b)
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT * FROM friend_requests
				WHERE ((requester_id = $1 AND target_id = $2) OR (requester_id = $2 AND target_id = $1))
				  AND status = ANY($3::text[])
				""",
				user_a,
				user_b,
				list(_LIVE_STATUSES),
			)
		return [FriendRequest.from_record(row) for row in rows]


def _placeholder_summary(user_id: str) -> UserSummary:
	return UserSummary(id=user_id, name="Unknown user")


class FriendService:
	"""Send, answer and query friend requests.

	Every transition is a single compare-and-set on the stored request, so a
	repeated accept after a lost response either succeeds once or reports
	``gone`` without changing anything.
	"""

	def __init__(
		self,
		repository: FriendRepository | None = None,
		*,
		profiles: ProfileService | None = None,
		clock: Clock | None = None,
	) -> None:
		self._repo = repository or FriendRepository()
		self._clock = clock or utcnow
		self._profiles = profiles or ProfileService(clock=self._clock)

	async def _to_out(self, requests: Iterable[FriendRequest]) -> List[FriendRequestOut]:
		items = list(requests)
		ids = {uid for r in items for uid in (r.requester_id, r.target_id)}
		summaries = await self._profiles.summaries(ids)
		return [
			FriendRequestOut(
				id=r.id,
				status=r.status.value,
				created_at=r.created_at,
				updated_at=r.updated_at,
				message=r.message,
				requester=summaries.get(r.requester_id) or _placeholder_summary(r.requester_id),
				target=summaries.get(r.target_id) or _placeholder_summary(r.target_id),
			)
			for r in items
		]

	async def _load_request(self, request_id: str) -> FriendRequest:
		request = await self._repo.get_request(request_id)
		if request is None:
			raise FriendRequestNotFound()
		return request

	async def _emit_update(self, request: FriendRequest) -> None:
		payload = FriendRequestUpdatePayload(id=request.id, status=request.status.value).model_dump(mode="json")
		await sockets.emit_request_update(request.requester_id, payload)
		await sockets.emit_request_update(request.target_id, payload)

	async def _emit_friend_pair(self, user_a: str, user_b: str, status: str) -> None:
		payload_a = FriendUpdatePayload(user_id=user_a, friend_id=user_b, status=status).model_dump(mode="json")
		payload_b = FriendUpdatePayload(user_id=user_b, friend_id=user_a, status=status).model_dump(mode="json")
		await sockets.emit_friend_update(user_a, payload_a)
		await sockets.emit_friend_update(user_b, payload_b)

	async def send_request(
		self,
		auth_user: AuthenticatedUser,
		target_user_id: str,
		message: str | None = None,
	) -> FriendRequestOut:
		requester_id = str(auth_user.id)
		target_id = str(target_user_id)
		policy.guard_not_self(requester_id, target_id)
		await self._profiles.ensure_user(auth_user)
		await self._profiles.require_user(target_id)
		await policy.enforce_send_limits(requester_id)

		now = self._clock()
		text = (message or "").strip() or None
		draft = FriendRequest(
			id=str(ulid.new()),
			requester_id=requester_id,
			target_id=target_id,
			status=FriendRequestStatus.PENDING,
			created_at=now,
			updated_at=now,
			message=text,
		)
		prior, created = await self._repo.create_if_unrelated(draft)
		if created is None:
			audit.inc_send_reject(prior.value)
			policy.ensure_can_send(prior)
			raise FriendRequestGone("not_sendable")

		audit.inc_transition("sent")
		(summary,) = await self._to_out([created])
		try:
			await audit.log_request_event(
				"sent",
				{"request_id": created.id, "from": requester_id, "to": target_id, "status": created.status.value},
			)
			await sockets.emit_request_new(target_id, summary.model_dump(mode="json"))
		except Exception:
			_log_side_effect_failure("sent", created.id)
		logger.info("friend_request_sent", extra={"request_id": created.id})
		return summary

	async def _answer(
		self,
		auth_user: AuthenticatedUser,
		request_id: str,
		new_status: FriendRequestStatus,
	) -> FriendRequest:
		request = await self._load_request(request_id)
		if new_status is FriendRequestStatus.CANCELLED:
			policy.ensure_requester(request, auth_user.id)
		else:
			policy.ensure_recipient(request, auth_user.id)
		policy.ensure_pending(request)
		updated = await self._repo.transition(request.id, FriendRequestStatus.PENDING, new_status, self._clock())
		if updated is None:
			raise FriendRequestGone("not_pending")
		audit.inc_transition(new_status.value)
		# Committed; audit and fan-out are best effort from here.
		try:
			await audit.log_request_event(
				new_status.value,
				{
					"request_id": updated.id,
					"from": updated.requester_id,
					"to": updated.target_id,
					"status": updated.status.value,
				},
			)
			await self._emit_update(updated)
			if new_status is FriendRequestStatus.ACCEPTED:
				await audit.log_friend_event(
					"accepted",
					{"user_id": updated.requester_id, "friend_id": updated.target_id, "status": "friend"},
				)
				await self._emit_friend_pair(updated.requester_id, updated.target_id, "friend")
		except Exception:
			_log_side_effect_failure(new_status.value, updated.id)
		return updated

	async def accept_request(self, auth_user: AuthenticatedUser, request_id: str) -> FriendRequestOut:
		updated = await self._answer(auth_user, request_id, FriendRequestStatus.ACCEPTED)
		(summary,) = await self._to_out([updated])
		return summary

	async def reject_request(self, auth_user: AuthenticatedUser, request_id: str) -> FriendRequestOut:
		updated = await self._answer(auth_user, request_id, FriendRequestStatus.REJECTED)
		(summary,) = await self._to_out([updated])
		return summary

	async def cancel_request(self, auth_user: AuthenticatedUser, request_id: str) -> FriendRequestOut:
		updated = await self._answer(auth_user, request_id, FriendRequestStatus.CANCELLED)
		(summary,) = await self._to_out([updated])
		return summary

	async def list_requests(self, auth_user: AuthenticatedUser) -> FriendRequestsPayload:
		user_id = str(auth_user.id)
		pending = [
			r for r in await self._repo.live_requests_for(user_id) if r.status is FriendRequestStatus.PENDING
		]
		incoming = await self._to_out(r for r in pending if r.target_id == user_id)
		outgoing = await self._to_out(r for r in pending if r.requester_id == user_id)
		return FriendRequestsPayload(incoming=incoming, outgoing=outgoing)

	async def friend_ids(self, user_id: str) -> List[str]:
		history = await self._repo.live_requests_for(str(user_id))
		return sorted(relationship.friend_ids(str(user_id), history))

	async def list_friends(self, auth_user: AuthenticatedUser) -> FriendListResponse:
		ids = await self.friend_ids(auth_user.id)
		summaries = await self._profiles.summaries(ids)
		friends = [summaries.get(uid) or _placeholder_summary(uid) for uid in ids]
		friends.sort(key=lambda s: s.name.lower())
		return FriendListResponse(friends=friends)

	async def relationship(self, viewer_id: str, target_id: str) -> RelationshipStatus:
		if str(viewer_id) == str(target_id):
			return RelationshipStatus.SELF
		history = await self._repo.live_requests_between(str(viewer_id), str(target_id))
		return relationship.resolve(viewer_id, target_id, history)

	async def are_friends(self, user_a: str, user_b: str) -> bool:
		return await self.relationship(user_a, user_b) is RelationshipStatus.FRIEND

	async def relationship_for(self, auth_user: AuthenticatedUser, target_id: str) -> RelationshipStatus:
		try:
			await self._profiles.require_user(target_id)
		except ProfileNotFound:
			if str(target_id) != str(auth_user.id):
				raise
		return await self.relationship(auth_user.id, target_id)

	async def search(self, auth_user: AuthenticatedUser, query: str, *, limit: int = 20) -> List[FriendSearchResult]:
		term = query.strip()
		if not term:
			return []
		users = await self._profiles.search(term, limit=limit)
		history = await self._repo.live_requests_for(str(auth_user.id))
		statuses = relationship.resolve_many(auth_user.id, [u.id for u in users], history)
		return [
			FriendSearchResult(user=UserSummary.from_model(user), relationship_status=statuses[user.id].value)
			for user in users
		]


async def reset_memory_state() -> None:
	"""Test helper to clear in-memory store state."""
	async with _MEMORY._lock:  # type: ignore[attr-defined]
		_MEMORY.requests.clear()
