"""Persistence for team posts and join requests."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Sequence

import asyncpg

from gittogether.domain.common.repo import PoolRepository
from gittogether.domain.teams.models import TeamPost, TeamRequest, TeamRequestStatus

# Guards run while the post is locked and raise to abort the write.
PostGuard = Callable[[Optional[TeamPost], List[TeamRequest]], None]
RequestGuard = Callable[[Optional[TeamPost], List[TeamRequest], TeamRequest], None]


class _MemoryStore:
	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self.posts: Dict[str, TeamPost] = {}
		self.requests: Dict[str, TeamRequest] = {}

	def _post_requests(self, post_id: str) -> List[TeamRequest]:
		return [r for r in self.requests.values() if r.post_id == post_id]

	async def create_post(self, post: TeamPost) -> TeamPost:
		async with self._lock:
			self.posts[post.id] = post
			return post

	async def get_post(self, post_id: str) -> Optional[TeamPost]:
		async with self._lock:
			return self.posts.get(post_id)

	async def get_posts(self, post_ids: Iterable[str]) -> List[TeamPost]:
		async with self._lock:
			return [self.posts[pid] for pid in post_ids if pid in self.posts]

	async def list_posts(
		self,
		*,
		search: Optional[str],
		skill_id: Optional[str],
		include_closed: bool,
		limit: int,
		offset: int,
	) -> List[TeamPost]:
		needle = search.lower() if search else None
		async with self._lock:
			posts = [
				post
				for post in self.posts.values()
				if (include_closed or post.is_open)
				and (needle is None or needle in post.title.lower() or needle in post.description.lower())
				and (skill_id is None or skill_id in post.required_skill_ids)
			]
		posts.sort(key=lambda p: (p.created_at, p.id), reverse=True)
		return posts[offset : offset + limit]

	async def list_posts_by_owner(self, owner_id: str) -> List[TeamPost]:
		async with self._lock:
			posts = [p for p in self.posts.values() if p.owner_id == owner_id]
		posts.sort(key=lambda p: (p.created_at, p.id), reverse=True)
		return posts

	async def update_post(
		self,
		post_id: str,
		changes: dict,
		skill_ids: Optional[Sequence[str]],
		now: datetime,
		guard: PostGuard,
	) -> Optional[TeamPost]:
		async with self._lock:
			post = self.posts.get(post_id)
			guard(post, self._post_requests(post_id))
			if post is None:
				return None
			if skill_ids is not None:
				changes = {**changes, "required_skill_ids": tuple(skill_ids)}
			updated = replace(post, updated_at=now, **changes)
			self.posts[post_id] = updated
			return updated

	async def delete_post(self, post_id: str) -> bool:
		async with self._lock:
			if self.posts.pop(post_id, None) is None:
				return False
			for request_id in [r.id for r in self._post_requests(post_id)]:
				self.requests.pop(request_id, None)
			return True

	async def requests_for_posts(self, post_ids: Iterable[str]) -> List[TeamRequest]:
		wanted = set(post_ids)
		async with self._lock:
			return [r for r in self.requests.values() if r.post_id in wanted]

	async def requests_by_requester(self, user_id: str) -> List[TeamRequest]:
		async with self._lock:
			return [r for r in self.requests.values() if r.requester_id == user_id]

	async def get_request(self, request_id: str) -> Optional[TeamRequest]:
		async with self._lock:
			return self.requests.get(request_id)

	async def insert_request(self, request: TeamRequest, guard: PostGuard) -> TeamRequest:
		async with self._lock:
			guard(self.posts.get(request.post_id), self._post_requests(request.post_id))
			self.requests[request.id] = request
			return request

	async def update_request_status(
		self,
		request_id: str,
		status: TeamRequestStatus,
		response_message: Optional[str],
		now: datetime,
		guard: RequestGuard,
	) -> Optional[TeamRequest]:
		async with self._lock:
			request = self.requests.get(request_id)
			if request is None:
				return None
			guard(self.posts.get(request.post_id), self._post_requests(request.post_id), request)
			updated = replace(request, status=status, response_message=response_message, updated_at=now)
			self.requests[request_id] = updated
			return updated

	async def delete_request(self, request_id: str, guard: RequestGuard) -> Optional[TeamRequest]:
		async with self._lock:
			request = self.requests.get(request_id)
			if request is None:
				return None
			guard(self.posts.get(request.post_id), self._post_requests(request.post_id), request)
			return self.requests.pop(request_id)

	async def recent_requests(self, limit: int) -> List[TeamRequest]:
		async with self._lock:
			items = list(self.requests.values())
		items.sort(key=lambda r: (r.created_at, r.id), reverse=True)
		return items[:limit]

	async def post_stats(self) -> Dict[str, int]:
		async with self._lock:
			posts = list(self.posts.values())
		open_count = sum(1 for p in posts if p.is_open)
		return {"total": len(posts), "open": open_count, "closed": len(posts) - open_count}

	async def request_stats(self) -> Dict[str, int]:
		async with self._lock:
			requests = list(self.requests.values())
		stats = {"total": len(requests)}
		for status in TeamRequestStatus:
			stats[status.value] = sum(1 for r in requests if r.status is status)
		return stats


_MEMORY = _MemoryStore()


async def _skill_ids_by_post(conn: asyncpg.Connection, post_ids: Sequence[str]) -> Dict[str, tuple]:
	if not post_ids:
		return {}
	rows = await conn.fetch(
		"SELECT post_id, skill_id FROM team_post_skills WHERE post_id = ANY($1::text[]) ORDER BY skill_id",
		list(post_ids),
	)
	grouped: Dict[str, list] = {}
	for row in rows:
		grouped.setdefault(str(row["post_id"]), []).append(str(row["skill_id"]))
	return {pid: tuple(ids) for pid, ids in grouped.items()}


async def _rows_to_posts(conn: asyncpg.Connection, rows: Sequence[asyncpg.Record]) -> List[TeamPost]:
	skills = await _skill_ids_by_post(conn, [str(row["id"]) for row in rows])
	return [TeamPost.from_record(row, skills.get(str(row["id"]), ())) for row in rows]


async def _replace_skills(conn: asyncpg.Connection, post_id: str, skill_ids: Sequence[str]) -> None:
	await conn.execute("DELETE FROM team_post_skills WHERE post_id = $1", post_id)
	if skill_ids:
		await conn.executemany(
			"INSERT INTO team_post_skills (post_id, skill_id) VALUES ($1, $2) ON CONFLICT DO NOTHING",
			[(post_id, sid) for sid in skill_ids],
		)


async def _lock_post(conn: asyncpg.Connection, post_id: str) -> tuple[Optional[TeamPost], List[TeamRequest]]:
	row = await conn.fetchrow("SELECT * FROM team_posts WHERE id = $1 FOR UPDATE", post_id)
	if not row:
		return None, []
	(post,) = await _rows_to_posts(conn, [row])
	rows = await conn.fetch("SELECT * FROM team_requests WHERE post_id = $1", post_id)
	return post, [TeamRequest.from_record(r) for r in rows]


class TeamRepository(PoolRepository):
	"""Team posts and requests backed by asyncpg with an in-memory fallback.

	Writes that depend on the roster (apply, accept, withdraw, resize) lock the
	post row and run the caller's guard against a fresh read inside the same
	transaction, so capacity and uniqueness checks cannot interleave.
	"""

	async def create_post(self, post: TeamPost) -> TeamPost:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.create_post(post)
		async with pool.acquire() as conn:
			async with conn.transaction():
				await conn.execute(
					"""
					INSERT INTO team_posts (id, owner_id, title, description, max_members, is_open, created_at, updated_at)
					VALUES ($1, $2, $3, $4, $5, $6, $7, $7)
					""",
					post.id,
					post.owner_id,
					post.title,
					post.description,
					post.max_members,
					post.is_open,
					post.created_at,
				)
				await _replace_skills(conn, post.id, post.required_skill_ids)
		return post

	async def get_post(self, post_id: str) -> Optional[TeamPost]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.get_post(post_id)
		async with pool.acquire() as conn:
			row = await conn.fetchrow("SELECT * FROM team_posts WHERE id = $1", post_id)
			if not row:
				return None
			(post,) = await _rows_to_posts(conn, [row])
		return post

	async def get_posts(self, post_ids: Iterable[str]) -> List[TeamPost]:
		ids = list(dict.fromkeys(post_ids))
		if not ids:
			return []
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.get_posts(ids)
		async with pool.acquire() as conn:
			rows = await conn.fetch("SELECT * FROM team_posts WHERE id = ANY($1::text[])", ids)
			return await _rows_to_posts(conn, rows)

	async def list_posts(
		self,
		*,
		search: Optional[str] = None,
		skill_id: Optional[str] = None,
		include_closed: bool = False,
		limit: int = 50,
		offset: int = 0,
	) -> List[TeamPost]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.list_posts(
				search=search, skill_id=skill_id, include_closed=include_closed, limit=limit, offset=offset
			)
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT p.* FROM team_posts p
				WHERE ($1::text IS NULL OR p.title ILIKE $1 OR p.description ILIKE $1)
				  AND ($2::text IS NULL OR EXISTS (
					SELECT 1 FROM team_post_skills s WHERE s.post_id = p.id AND s.skill_id = $2
				  ))
				  AND ($3 OR p.is_open)
				ORDER BY p.created_at DESC, p.id DESC
				LIMIT $4 OFFSET $5
				""",
				f"%{search}%" if search else None,
				skill_id,
				include_closed,
				limit,
				offset,
			)
			return await _rows_to_posts(conn, rows)

	async def list_posts_by_owner(self, owner_id: str) -> List[TeamPost]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.list_posts_by_owner(owner_id)
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"SELECT * FROM team_posts WHERE owner_id = $1 ORDER BY created_at DESC, id DESC",
				owner_id,
			)
			return await _rows_to_posts(conn, rows)

	async def update_post(
		self,
		post_id: str,
		changes: dict,
		skill_ids: Optional[Sequence[str]],
		now: datetime,
		guard: PostGuard,
	) -> Optional[TeamPost]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.update_post(post_id, changes, skill_ids, now, guard)
		columns = [name for name in ("title", "description", "max_members", "is_open") if name in changes]
		assignments = "".join(f", {name} = ${idx + 3}" for idx, name in enumerate(columns))
		async with pool.acquire() as conn:
			async with conn.transaction():
				post, requests = await _lock_post(conn, post_id)
				guard(post, requests)
				if post is None:
					return None
				await conn.execute(
					f"UPDATE team_posts SET updated_at = $2{assignments} WHERE id = $1",
					post_id,
					now,
					*[changes[name] for name in columns],
				)
				if skill_ids is not None:
					await _replace_skills(conn, post_id, skill_ids)
				updated, _ = await _lock_post(conn, post_id)
		return updated

	async def delete_post(self, post_id: str) -> bool:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.delete_post(post_id)
		async with pool.acquire() as conn:
			result = await conn.execute("DELETE FROM team_posts WHERE id = $1", post_id)
		return result.endswith(" 1")

	async def requests_for_posts(self, post_ids: Iterable[str]) -> List[TeamRequest]:
		ids = list(dict.fromkeys(post_ids))
		if not ids:
			return []
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.requests_for_posts(ids)
		async with pool.acquire() as conn:
			rows = await conn.fetch("SELECT * FROM team_requests WHERE post_id = ANY($1::text[])", ids)
		return [TeamRequest.from_record(row) for row in rows]

	async def requests_by_requester(self, user_id: str) -> List[TeamRequest]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.requests_by_requester(user_id)
		async with pool.acquire() as conn:
			rows = await conn.fetch("SELECT * FROM team_requests WHERE requester_id = $1", user_id)
		return [TeamRequest.from_record(row) for row in rows]

	async def get_request(self, request_id: str) -> Optional[TeamRequest]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.get_request(request_id)
		async with pool.acquire() as conn:
			row = await conn.fetchrow("SELECT * FROM team_requests WHERE id = $1", request_id)
		return TeamRequest.from_record(row) if row else None

	async def insert_request(self, request: TeamRequest, guard: PostGuard) -> TeamRequest:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.insert_request(request, guard)
		async with pool.acquire() as conn:
			async with conn.transaction():
				post, requests = await _lock_post(conn, request.post_id)
				guard(post, requests)
				row = await conn.fetchrow(
					"""
					INSERT INTO team_requests (id, post_id, requester_id, status, message, created_at, updated_at)
					VALUES ($1, $2, $3, $4, $5, $6, $6)
					RETURNING *
					""",
					request.id,
					request.post_id,
					request.requester_id,
					request.status.value,
					request.message,
					request.created_at,
				)
		return TeamRequest.from_record(row)

	async def update_request_status(
		self,
		request_id: str,
		status: TeamRequestStatus,
		response_message: Optional[str],
		now: datetime,
		guard: RequestGuard,
	) -> Optional[TeamRequest]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.update_request_status(request_id, status, response_message, now, guard)
		async with pool.acquire() as conn:
			async with conn.transaction():
				row = await conn.fetchrow("SELECT post_id FROM team_requests WHERE id = $1", request_id)
				if not row:
					return None
				post, requests = await _lock_post(conn, str(row["post_id"]))
				current = next((r for r in requests if r.id == request_id), None)
				if current is None:
					return None
				guard(post, requests, current)
				updated = await conn.fetchrow(
					"""
					UPDATE team_requests
					SET status = $2, response_message = $3, updated_at = $4
					WHERE id = $1
					RETURNING *
					""",
					request_id,
					status.value,
					response_message,
					now,
				)
		return TeamRequest.from_record(updated)

	async def delete_request(self, request_id: str, guard: RequestGuard) -> Optional[TeamRequest]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.delete_request(request_id, guard)
		async with pool.acquire() as conn:
			async with conn.transaction():
				row = await conn.fetchrow("SELECT post_id FROM team_requests WHERE id = $1", request_id)
				if not row:
					return None
				post, requests = await _lock_post(conn, str(row["post_id"]))
				current = next((r for r in requests if r.id == request_id), None)
				if current is None:
					return None
				guard(post, requests, current)
				await conn.execute("DELETE FROM team_requests WHERE id = $1", request_id)
		return current

	async def recent_requests(self, limit: int = 5) -> List[TeamRequest]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.recent_requests(limit)
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"SELECT * FROM team_requests ORDER BY created_at DESC, id DESC LIMIT $1",
				limit,
			)
		return [TeamRequest.from_record(row) for row in rows]

	async def post_stats(self) -> Dict[str, int]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.post_stats()
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"""
				SELECT COUNT(*) AS total,
					COUNT(*) FILTER (WHERE is_open) AS open,
					COUNT(*) FILTER (WHERE NOT is_open) AS closed
				FROM team_posts
				"""
			)
		return {key: int(row[key]) for key in ("total", "open", "closed")}

	async def request_stats(self) -> Dict[str, int]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.request_stats()
		async with pool.acquire() as conn:
			rows = await conn.fetch("SELECT status, COUNT(*) AS cnt FROM team_requests GROUP BY status")
		stats = {status.value: 0 for status in TeamRequestStatus}
		for row in rows:
			stats[row["status"]] = int(row["cnt"])
		stats["total"] = sum(stats.values())
		return stats


async def reset_memory_state() -> None:
	"""Test helper to clear in-memory store state."""
	async with _MEMORY._lock:  # type: ignore[attr-defined]
		_MEMORY.posts.clear()
		_MEMORY.requests.clear()
