"""Profiles, public profile reads and the skills catalogue."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

import asyncpg

from gittogether.domain.common.clock import Clock, utcnow
from gittogether.domain.common.repo import PoolRepository
from gittogether.domain.identity import schemas
from gittogether.domain.identity.models import DEFAULT_SKILLS, EDITABLE_FIELDS, Skill, User
from gittogether.infra.auth import AuthenticatedUser
from gittogether.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

_ACCOUNT_FLAGS = ("is_admin", "is_active")


class ProfileNotFound(LookupError):
	"""Raised when a user profile cannot be located."""


class SkillNotFound(LookupError):
	"""Raised when a skill id is not in the catalogue."""


def _skill_slug(name: str) -> str:
	return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


class _MemoryStore:
	"""Fallback store used in tests when Postgres is unavailable."""

	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self.users: Dict[str, User] = {}
		self.skills: Dict[str, Skill] = {}
		self.user_skills: Dict[str, List[str]] = {}
		self.seed_skills()

	def seed_skills(self) -> None:
		self.skills = {
			_skill_slug(name): Skill(id=_skill_slug(name), name=name, category=category)
			for name, category in DEFAULT_SKILLS
		}

	def _with_skills(self, user: User) -> User:
		owned = tuple(self.skills[sid] for sid in self.user_skills.get(user.id, []) if sid in self.skills)
		return replace(user, skills=owned)

	async def get_user(self, user_id: str) -> Optional[User]:
		async with self._lock:
			user = self.users.get(user_id)
			return self._with_skills(user) if user else None

	async def get_users(self, user_ids: Iterable[str]) -> Dict[str, User]:
		async with self._lock:
			return {uid: self.users[uid] for uid in set(user_ids) if uid in self.users}

	async def create_user(self, user: User) -> User:
		async with self._lock:
			existing = self.users.get(user.id)
			if existing is not None:
				return self._with_skills(existing)
			self.users[user.id] = user
			return user

	async def update_user(self, user_id: str, changes: dict, updated_at: datetime) -> Optional[User]:
		async with self._lock:
			user = self.users.get(user_id)
			if user is None:
				return None
			updated = replace(user, updated_at=updated_at, **{k: v for k, v in changes.items() if k in EDITABLE_FIELDS})
			self.users[user_id] = updated
			return self._with_skills(updated)

	async def set_flags(self, user_id: str, flags: dict, updated_at: datetime) -> Optional[User]:
		async with self._lock:
			user = self.users.get(user_id)
			if user is None:
				return None
			updated = replace(user, updated_at=updated_at, **{k: bool(v) for k, v in flags.items() if k in _ACCOUNT_FLAGS})
			self.users[user_id] = updated
			return self._with_skills(updated)

	async def search_users(self, query: str, limit: int) -> List[User]:
		needle = query.lower()
		async with self._lock:
			matches = [
				user
				for user in self.users.values()
				if user.is_active and (needle in user.name.lower() or needle in (user.email or "").lower())
			]
			matches.sort(key=lambda u: u.name.lower())
			return matches[:limit]

	async def list_skills(self) -> List[Skill]:
		async with self._lock:
			return sorted(self.skills.values(), key=lambda s: s.name)

	async def get_skills(self, skill_ids: Iterable[str]) -> List[Skill]:
		async with self._lock:
			return [self.skills[sid] for sid in skill_ids if sid in self.skills]

	async def add_user_skill(self, user_id: str, skill_id: str) -> None:
		async with self._lock:
			owned = self.user_skills.setdefault(user_id, [])
			if skill_id not in owned:
				owned.append(skill_id)

	async def remove_user_skill(self, user_id: str, skill_id: str) -> None:
		async with self._lock:
			owned = self.user_skills.get(user_id, [])
			if skill_id in owned:
				owned.remove(skill_id)

	async def user_stats(self, since: datetime) -> Dict[str, int]:
		async with self._lock:
			users = list(self.users.values())
			return {
				"total": len(users),
				"active": sum(1 for u in users if u.is_active),
				"new_last_7_days": sum(1 for u in users if u.created_at >= since),
			}

	async def top_skills(self, limit: int) -> List[tuple[str, int]]:
		async with self._lock:
			counts: Dict[str, int] = {}
			for owned in self.user_skills.values():
				for sid in owned:
					if sid in self.skills:
						name = self.skills[sid].name
						counts[name] = counts.get(name, 0) + 1
			ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
			return ranked[:limit]


_MEMORY = _MemoryStore()


class IdentityRepository(PoolRepository):
	"""Repository backed by asyncpg with an in-memory fallback."""

	async def get_user(self, user_id: str) -> Optional[User]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.get_user(user_id)
		async with pool.acquire() as conn:
			row = await conn.fetchrow("SELECT * FROM users WHERE id = $1", user_id)
			if not row:
				return None
			user = User.from_record(row)
			skills = await self._fetch_user_skills(conn, user_id)
			return replace(user, skills=tuple(skills))

	async def get_users(self, user_ids: Iterable[str]) -> Dict[str, User]:
		ids = list({str(uid) for uid in user_ids})
		if not ids:
			return {}
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.get_users(ids)
		async with pool.acquire() as conn:
			rows = await conn.fetch("SELECT * FROM users WHERE id = ANY($1::text[])", ids)
		return {str(row["id"]): User.from_record(row) for row in rows}

	async def create_user(self, user: User) -> User:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.create_user(user)
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"""
				INSERT INTO users (id, name, email, profile_picture, created_at, updated_at)
				VALUES ($1, $2, $3, $4, $5, $5)
				ON CONFLICT (id) DO UPDATE SET id = EXCLUDED.id
				RETURNING *
				""",
				user.id,
				user.name,
				user.email,
				user.profile_picture,
				user.created_at,
			)
			return User.from_record(row)

	async def update_user(self, user_id: str, changes: dict, updated_at: datetime) -> Optional[User]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.update_user(user_id, changes, updated_at)
		columns = [name for name in EDITABLE_FIELDS if name in changes]
		assignments = ", ".join(f"{name} = ${idx + 3}" for idx, name in enumerate(columns))
		set_clause = f"updated_at = $2{', ' + assignments if assignments else ''}"
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				f"UPDATE users SET {set_clause} WHERE id = $1 RETURNING *",
				user_id,
				updated_at,
				*[changes[name] for name in columns],
			)
			if not row:
				return None
			skills = await self._fetch_user_skills(conn, user_id)
		return replace(User.from_record(row), skills=tuple(skills))

	async def set_flags(self, user_id: str, flags: dict, updated_at: datetime) -> Optional[User]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.set_flags(user_id, flags, updated_at)
		columns = [name for name in _ACCOUNT_FLAGS if name in flags]
		assignments = "".join(f", {name} = ${idx + 3}" for idx, name in enumerate(columns))
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				f"UPDATE users SET updated_at = $2{assignments} WHERE id = $1 RETURNING *",
				user_id,
				updated_at,
				*[bool(flags[name]) for name in columns],
			)
			if not row:
				return None
			skills = await self._fetch_user_skills(conn, user_id)
		return replace(User.from_record(row), skills=tuple(skills))

	async def search_users(self, query: str, limit: int) -> List[User]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.search_users(query, limit)
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT * FROM users
				WHERE is_active AND (name ILIKE $1 OR email ILIKE $1)
				ORDER BY lower(name)
				LIMIT $2
				""",
				f"%{query}%",
				limit,
			)
		return [User.from_record(row) for row in rows]

	async def list_skills(self) -> List[Skill]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.list_skills()
		async with pool.acquire() as conn:
			rows = await conn.fetch("SELECT * FROM skills ORDER BY name")
		return [Skill.from_record(row) for row in rows]

	async def get_skills(self, skill_ids: Iterable[str]) -> List[Skill]:
		ids = list(dict.fromkeys(str(sid) for sid in skill_ids))
		if not ids:
			return []
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.get_skills(ids)
		async with pool.acquire() as conn:
			rows = await conn.fetch("SELECT * FROM skills WHERE id = ANY($1::text[])", ids)
		by_id = {str(row["id"]): Skill.from_record(row) for row in rows}
		return [by_id[sid] for sid in ids if sid in by_id]

	async def add_user_skill(self, user_id: str, skill_id: str) -> None:
		pool = await self._pool_or_none()
		if pool is None:
			await _MEMORY.add_user_skill(user_id, skill_id)
			return
		async with pool.acquire() as conn:
			await conn.execute(
				"INSERT INTO user_skills (user_id, skill_id) VALUES ($1, $2) ON CONFLICT DO NOTHING",
				user_id,
				skill_id,
			)

	async def remove_user_skill(self, user_id: str, skill_id: str) -> None:
		pool = await self._pool_or_none()
		if pool is None:
			await _MEMORY.remove_user_skill(user_id, skill_id)
			return
		async with pool.acquire() as conn:
			await conn.execute("DELETE FROM user_skills WHERE user_id = $1 AND skill_id = $2", user_id, skill_id)

	async def user_stats(self, since: datetime) -> Dict[str, int]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.user_stats(since)
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"""
				SELECT COUNT(*) AS total,
					COUNT(*) FILTER (WHERE is_active) AS active,
					COUNT(*) FILTER (WHERE created_at >= $1) AS new_last_7_days
				FROM users
				""",
				since,
			)
		return {key: int(row[key]) for key in ("total", "active", "new_last_7_days")}

	async def top_skills(self, limit: int) -> List[tuple[str, int]]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.top_skills(limit)
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT s.name, COUNT(*) AS cnt
				FROM user_skills us JOIN skills s ON s.id = us.skill_id
				GROUP BY s.name
				ORDER BY cnt DESC, s.name
				LIMIT $1
				""",
				limit,
			)
		return [(row["name"], int(row["cnt"])) for row in rows]

	async def _fetch_user_skills(self, conn: asyncpg.Connection, user_id: str) -> List[Skill]:
		rows = await conn.fetch(
			"""
			SELECT s.* FROM user_skills us
			JOIN skills s ON s.id = us.skill_id
			WHERE us.user_id = $1
			ORDER BY s.name
			""",
			user_id,
		)
		return [Skill.from_record(row) for row in rows]


class ProfileService:
	def __init__(self, repository: IdentityRepository | None = None, *, clock: Clock | None = None) -> None:
		self._repo = repository or IdentityRepository()
		self._clock = clock or utcnow

	@property
	def repository(self) -> IdentityRepository:
		return self._repo

	async def ensure_user(self, auth_user: AuthenticatedUser) -> User:
		"""Return the caller's user row, creating it from token claims on first sign-in."""
		existing = await self._repo.get_user(auth_user.id)
		if existing is not None:
			return existing
		now = self._clock()
		email = auth_user.email
		name = (auth_user.name or "").strip() or (email.split("@", 1)[0] if email else "Student")
		user = await self._repo.create_user(
			User(
				id=auth_user.id,
				name=name,
				email=email,
				profile_picture=auth_user.picture,
				created_at=now,
				updated_at=now,
			)
		)
		logger.info("user_created", extra={"user_id": user.id})
		return user

	async def with_profile_roles(self, auth_user: AuthenticatedUser) -> AuthenticatedUser:
		"""Grant the admin role to users flagged as admins on their profile."""
		if auth_user.has_role("admin"):
			return auth_user
		user = await self._repo.get_user(auth_user.id)
		if user is None or not user.is_admin:
			return auth_user
		return replace(auth_user, roles=(*auth_user.roles, "admin"))

	async def get_me(self, auth_user: AuthenticatedUser) -> schemas.ProfileOut:
		user = await self.ensure_user(auth_user)
		return schemas.ProfileOut.from_model(user)

	async def update_me(self, auth_user: AuthenticatedUser, payload: schemas.ProfileUpdate) -> schemas.ProfileOut:
		await self.ensure_user(auth_user)
		changes = payload.model_dump(exclude_unset=True)
		if "name" in changes:
			if changes["name"] is None or not changes["name"].strip():
				changes.pop("name")
			else:
				changes["name"] = changes["name"].strip()
		updated = await self._repo.update_user(auth_user.id, changes, self._clock())
		if updated is None:
			raise ProfileNotFound(auth_user.id)
		obs_metrics.inc_profile_update()
		return schemas.ProfileOut.from_model(updated)

	async def set_account_flags(
		self,
		user_id: str,
		*,
		is_admin: Optional[bool] = None,
		is_active: Optional[bool] = None,
	) -> User:
		"""Operator switch for the admin flag and account deactivation."""
		flags = {name: value for name, value in (("is_admin", is_admin), ("is_active", is_active)) if value is not None}
		updated = await self._repo.set_flags(user_id, flags, self._clock())
		if updated is None:
			raise ProfileNotFound(user_id)
		logger.info("user_flags_updated", extra={"user_id": user_id, **flags})
		return updated

	async def get_public_profile(self, user_id: str) -> schemas.PublicProfileOut:
		user = await self._repo.get_user(user_id)
		if user is None or not user.is_active:
			raise ProfileNotFound(user_id)
		return schemas.PublicProfileOut.from_model(user)

	async def require_user(self, user_id: str) -> User:
		user = await self._repo.get_user(user_id)
		if user is None or not user.is_active:
			raise ProfileNotFound(user_id)
		return user

	async def summaries(self, user_ids: Iterable[str]) -> Dict[str, schemas.UserSummary]:
		users = await self._repo.get_users(user_ids)
		return {uid: schemas.UserSummary.from_model(user) for uid, user in users.items()}

	async def search(self, query: str, *, limit: int = 20) -> List[User]:
		return await self._repo.search_users(query, limit)

	async def list_skills(self) -> List[schemas.SkillOut]:
		return [schemas.SkillOut.from_model(skill) for skill in await self._repo.list_skills()]

	async def list_categories(self) -> List[str]:
		skills = await self._repo.list_skills()
		return sorted({skill.category for skill in skills if skill.category})

	async def resolve_skills(self, skill_ids: Iterable[str]) -> List[Skill]:
		ids = list(dict.fromkeys(str(sid) for sid in skill_ids))
		skills = await self._repo.get_skills(ids)
		if len(skills) != len(ids):
			found = {skill.id for skill in skills}
			raise SkillNotFound(next(sid for sid in ids if sid not in found))
		return skills

	async def list_my_skills(self, auth_user: AuthenticatedUser) -> List[schemas.SkillOut]:
		user = await self.ensure_user(auth_user)
		return [schemas.SkillOut.from_model(skill) for skill in user.skills]

	async def add_my_skill(self, auth_user: AuthenticatedUser, skill_id: str) -> List[schemas.SkillOut]:
		await self.ensure_user(auth_user)
		await self.resolve_skills([skill_id])
		await self._repo.add_user_skill(auth_user.id, skill_id)
		return await self.list_my_skills(auth_user)

	async def remove_my_skill(self, auth_user: AuthenticatedUser, skill_id: str) -> List[schemas.SkillOut]:
		await self.ensure_user(auth_user)
		await self._repo.remove_user_skill(auth_user.id, skill_id)
		return await self.list_my_skills(auth_user)

	async def admin_stats(self, *, top_skills: int = 5) -> dict:
		since = self._clock() - timedelta(days=7)
		return {
			"users": await self._repo.user_stats(since),
			"top_skills": [{"name": name, "count": count} for name, count in await self._repo.top_skills(top_skills)],
		}


async def reset_memory_state() -> None:
	"""Test helper to clear in-memory store state."""
	async with _MEMORY._lock:  # type: ignore[attr-defined]
		_MEMORY.users.clear()
		_MEMORY.user_skills.clear()
		_MEMORY.seed_skills()
