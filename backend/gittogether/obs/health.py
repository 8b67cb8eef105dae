"""Liveness and readiness for the collaboration API.

Readiness asks what the service needs to honour its invariants right now:
redis for send quotas and audit streams, and a store for relationships, teams
and messages. The store is Postgres (schema at or past ``health_min_migration``)
or, in development only, the in-process memory fallback the repositories use
when no pool can be opened.
"""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, Dict, Optional, Tuple

import asyncpg

from gittogether.infra import postgres
from gittogether.infra.redis import redis_client
from gittogether.obs import metrics
from gittogether.settings import settings

LOGGER = logging.getLogger(__name__)

STORE_POSTGRES = "postgres"
STORE_MEMORY = "memory"


def _elapsed_ms(start: float) -> float:
	return round((perf_counter() - start) * 1000, 2)


async def check_redis(timeout: float = 0.2) -> Dict[str, Any]:
	start = perf_counter()
	try:
		await asyncio.wait_for(redis_client.ping(), timeout=timeout)
	except Exception as exc:
		metrics.mark_redis(False)
		LOGGER.warning("redis_unreachable", exc_info=True)
		return {"ok": False, "error": str(exc) or exc.__class__.__name__}
	metrics.mark_redis(True, latency_seconds=perf_counter() - start)
	return {"ok": True, "latency_ms": _elapsed_ms(start)}


async def _open_pool() -> Optional[asyncpg.Pool]:
	# Same failures the repositories treat as "use the memory store".
	try:
		return await postgres.get_pool()
	except (AssertionError, OSError, asyncpg.PostgresError):
		return None


async def check_store(timeout: float = 0.3) -> Dict[str, Any]:
	pool = await _open_pool()
	if pool is None:
		metrics.mark_postgres(False)
		if settings.is_dev():
			return {"ok": True, "mode": STORE_MEMORY}
		return {"ok": False, "mode": STORE_MEMORY, "error": "postgres_unavailable"}

	start = perf_counter()
	try:
		async with pool.acquire() as conn:
			version = await asyncio.wait_for(
				conn.fetchval("SELECT max(version) FROM schema_migrations"),
				timeout=timeout,
			)
	except (asyncio.TimeoutError, OSError, asyncpg.PostgresError) as exc:
		metrics.mark_postgres(False)
		LOGGER.warning("postgres_readiness_failed", exc_info=True)
		return {"ok": False, "mode": STORE_POSTGRES, "error": str(exc) or exc.__class__.__name__}
	metrics.mark_postgres(True, latency_seconds=perf_counter() - start)

	required = settings.health_min_migration
	current = str(version) if version is not None else None
	return {
		"ok": current is not None and current >= required,
		"mode": STORE_POSTGRES,
		"latency_ms": _elapsed_ms(start),
		"schema": current,
		"schema_required": required,
	}


async def liveness() -> Dict[str, Any]:
	return {"status": "ok"}


async def readiness() -> Tuple[int, Dict[str, Any]]:
	redis_state, store_state = await asyncio.gather(check_redis(), check_store())
	ok = bool(redis_state["ok"] and store_state["ok"])
	return (
		200 if ok else 503,
		{
			"status": "ok" if ok else "degraded",
			"service": settings.service_name,
			"store": store_state.get("mode"),
			"checks": {"redis": redis_state, "store": store_state},
		},
	)
