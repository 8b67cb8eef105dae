"""FastAPI application entrypoint."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

import asyncpg
import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gittogether.api import dashboard, events, ops, posts, profile, requests, social, teams
from gittogether.api.errors import install_error_handlers
from gittogether.domain.messaging import service as messaging_service
from gittogether.domain.social.sockets import SocialNamespace, set_namespace as set_social_namespace
from gittogether.domain.teams.service import TeamService
from gittogether.domain.teams.sockets import TeamsNamespace, set_namespace as set_teams_namespace
from gittogether.infra import postgres
from gittogether.obs import init as obs_init
from gittogether.settings import settings

logger = logging.getLogger(__name__)

_DEV_ORIGINS = [
	"http://localhost:3000",
	"http://127.0.0.1:3000",
	"http://localhost:5173",
	"http://127.0.0.1:5173",
]


@asynccontextmanager
async def lifespan(app: FastAPI):
	try:
		await postgres.init_pool()
	except (OSError, asyncpg.PostgresError):
		if not settings.is_dev():
			raise
		logger.warning("postgres unavailable, using in-memory stores", exc_info=True)
	worker_tasks: list[asyncio.Task] = [
		asyncio.create_task(messaging_service.run_purge_sweeper(), name="message-purge-sweeper"),
	]
	try:
		yield
	finally:
		for task in worker_tasks:
			task.cancel()
		await asyncio.gather(*worker_tasks, return_exceptions=True)
		await postgres.close_pool()


app = FastAPI(title="GitTogether", lifespan=lifespan)
obs_init(app)
install_error_handlers(app)

allow_origins = list(settings.cors_allow_origins)
if not allow_origins:
	allow_origins = list(_DEV_ORIGINS) if settings.is_dev() else []

# Starlette disallows wildcard '*' with allow_credentials=True.
if "*" in allow_origins:
	allow_origins = list(_DEV_ORIGINS) if settings.is_dev() else [o for o in allow_origins if o != "*"]

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)

sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=allow_origins)
social_namespace = SocialNamespace()
sio.register_namespace(social_namespace)
set_social_namespace(social_namespace)
teams_namespace = TeamsNamespace(membership_check=TeamService().is_member)
sio.register_namespace(teams_namespace)
set_teams_namespace(teams_namespace)
socket_app = socketio.ASGIApp(sio, other_asgi_app=app)

for module in (profile, social, posts, requests, teams, events, dashboard):
	app.include_router(module.router, prefix=settings.api_prefix)
app.include_router(ops.router, tags=["ops"])
