import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from gittogether.domain.events import service as events_service
from gittogether.domain.identity import service as identity_service
from gittogether.domain.messaging import service as messaging_service
from gittogether.domain.social import service as social_service
from gittogether.domain.social import sockets as social_sockets
from gittogether.domain.teams import repository as teams_repository
from gittogether.domain.teams import sockets as team_sockets
from gittogether.infra import postgres
from gittogether.infra.auth import AuthenticatedUser
from gittogether.main import app, social_namespace, teams_namespace
from gittogether.settings import settings


class FrozenClock:
	"""Manually advanced clock for expiry boundaries."""

	def __init__(self, now: datetime) -> None:
		self.now = now

	def __call__(self) -> datetime:
		return self.now

	def advance(self, **delta) -> datetime:
		self.now = self.now + timedelta(**delta)
		return self.now


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from gittogether.infra.redis import redis_client, set_redis_client
	original = redis_client._client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture(autouse=True)
def force_test_settings():
	"""API tests authenticate with X-User-Id headers, which only dev mode accepts."""
	original_env = settings.environment
	original_reapply = settings.team_reapply_after_reject
	settings.environment = "dev"
	settings.team_reapply_after_reject = True
	try:
		yield
	finally:
		settings.environment = original_env
		settings.team_reapply_after_reject = original_reapply


@pytest.fixture(autouse=True)
def detach_socket_namespaces():
	"""No server is running; emits become no-ops unless a test installs a namespace."""
	social_sockets.set_namespace(None)
	team_sockets.set_namespace(None)
	try:
		yield
	finally:
		social_sockets.set_namespace(social_namespace)
		team_sockets.set_namespace(teams_namespace)


@pytest_asyncio.fixture(autouse=True)
async def reset_memory_stores():
	yield
	await identity_service.reset_memory_state()
	await social_service.reset_memory_state()
	await teams_repository.reset_memory_state()
	await messaging_service.reset_memory_state()
	await events_service.reset_memory_state()


@pytest.fixture
def clock():
	return FrozenClock(datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def make_user():
	def _make(user_id: str, *, name: str | None = None, roles: tuple = ()) -> AuthenticatedUser:
		return AuthenticatedUser(
			id=user_id,
			email=f"{user_id}@example.edu",
			name=name or user_id.capitalize(),
			roles=roles,
		)

	return _make


@pytest.fixture
def auth_headers():
	def _headers(user_id: str, *, roles: str | None = None) -> dict:
		headers = {"X-User-Id": user_id, "X-User-Name": user_id.capitalize(), "X-User-Email": f"{user_id}@example.edu"}
		if roles:
			headers["X-User-Roles"] = roles
		return headers

	return _headers


@pytest_asyncio.fixture
async def api_client():
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
