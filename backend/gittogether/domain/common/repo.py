"""Shared plumbing for asyncpg repositories with an in-memory fallback."""

from __future__ import annotations

from typing import Optional

import asyncpg

from gittogether.infra.postgres import get_pool


class PoolRepository:
	"""Resolve the asyncpg pool once; ``None`` means the memory store is in use."""

	def __init__(self) -> None:
		self._pool_checked = False
		self._pool: Optional[asyncpg.Pool] = None

	async def _pool_or_none(self) -> Optional[asyncpg.Pool]:
		if self._pool_checked:
			return self._pool
		self._pool_checked = True
		try:
			pool = await get_pool()
		except AssertionError:
			pool = None
		except (OSError, asyncpg.PostgresError):
			pool = None
		self._pool = pool
		return pool
