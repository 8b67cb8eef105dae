"""Socket.IO namespace for friend request and friendship updates."""

from __future__ import annotations

from typing import Optional

import socketio

from gittogether.infra.auth import AuthenticatedUser, authenticate_socket
from gittogether.obs import metrics as obs_metrics

_namespace: "SocialNamespace" | None = None


class SocialNamespace(socketio.AsyncNamespace):
	"""Namespace that keeps each client in their personal room."""

	def __init__(self) -> None:
		super().__init__("/social")
		self._sessions: dict[str, AuthenticatedUser] = {}

	async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
		obs_metrics.socket_connected(self.namespace)
		try:
			user = authenticate_socket(environ, auth)
		except ConnectionRefusedError:
			obs_metrics.socket_disconnected(self.namespace)
			raise
		self._sessions[sid] = user
		await self.enter_room(sid, self.user_room(user.id))
		await self.emit("social:ack", {"ok": True}, room=sid)

	async def on_disconnect(self, sid: str) -> None:
		obs_metrics.socket_disconnected(self.namespace)
		user = self._sessions.pop(sid, None)
		if user:
			await self.leave_room(sid, self.user_room(user.id))

	@staticmethod
	def user_room(user_id: str) -> str:
		return f"user:{user_id}"


def set_namespace(ns: SocialNamespace | None) -> None:
	global _namespace
	_namespace = ns


async def _emit(user_id: str, event: str, payload: dict) -> None:
	if _namespace is None:
		return
	obs_metrics.socket_event(_namespace.namespace, event)
	await _namespace.emit(event, payload, room=SocialNamespace.user_room(user_id))


async def emit_request_new(user_id: str, payload: dict) -> None:
	await _emit(user_id, "friend_request:new", payload)


async def emit_request_update(user_id: str, payload: dict) -> None:
	await _emit(user_id, "friend_request:update", payload)


async def emit_friend_update(user_id: str, payload: dict) -> None:
	await _emit(user_id, "friend:update", payload)


async def emit_message_new(user_id: str, payload: dict) -> None:
	await _emit(user_id, "friend_message:new", payload)
