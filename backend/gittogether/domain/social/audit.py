"""Audit helpers for friend requests and friendships."""

from __future__ import annotations

from typing import Dict

from gittogether.infra.redis import redis_client
from gittogether.obs import metrics as obs_metrics


async def log_request_event(event: str, fields: Dict[str, str]) -> None:
	payload = {"event": event, **fields}
	await redis_client.xadd("x:friend_requests.events", payload)


async def log_friend_event(event: str, fields: Dict[str, str]) -> None:
	payload = {"event": event, **fields}
	await redis_client.xadd("x:friendships.events", payload)


def inc_transition(transition: str) -> None:
	obs_metrics.inc_friend_request(transition)


def inc_send_reject(reason: str) -> None:
	obs_metrics.inc_friend_request_reject(reason)
