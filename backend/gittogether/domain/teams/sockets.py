"""Socket.IO namespace for team requests, roster changes and team chat."""

from __future__ import annotations

from typing import Optional

import socketio

from gittogether.infra.auth import AuthenticatedUser, authenticate_socket
from gittogether.obs import metrics as obs_metrics

_namespace: "TeamsNamespace" | None = None


class TeamsNamespace(socketio.AsyncNamespace):
	"""Per-user rooms for request updates; per-team rooms for chat fan-out.

	Joining a team room is checked against the membership ledger through the
	``membership_check`` callable supplied at startup.
	"""

	def __init__(self, membership_check=None) -> None:
		super().__init__("/teams")
		self._sessions: dict[str, AuthenticatedUser] = {}
		self._membership_check = membership_check

	async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
		obs_metrics.socket_connected(self.namespace)
		try:
			user = authenticate_socket(environ, auth)
		except ConnectionRefusedError:
			obs_metrics.socket_disconnected(self.namespace)
			raise
		self._sessions[sid] = user
		await self.enter_room(sid, self.user_room(user.id))
		await self.emit("teams:ack", {"ok": True}, room=sid)

	async def on_disconnect(self, sid: str) -> None:
		obs_metrics.socket_disconnected(self.namespace)
		self._sessions.pop(sid, None)

	async def on_team_join(self, sid: str, payload: dict | None = None) -> dict:
		obs_metrics.socket_event(self.namespace, "team_join")
		user = self._sessions.get(sid)
		team_id = str((payload or {}).get("team_id") or "")
		if not user or not team_id:
			return {"ok": False, "error": "bad_request"}
		if self._membership_check is not None and not await self._membership_check(team_id, user.id):
			return {"ok": False, "error": "not_member"}
		await self.enter_room(sid, self.team_room(team_id))
		return {"ok": True}

	async def on_team_leave(self, sid: str, payload: dict | None = None) -> dict:
		obs_metrics.socket_event(self.namespace, "team_leave")
		team_id = str((payload or {}).get("team_id") or "")
		if team_id:
			await self.leave_room(sid, self.team_room(team_id))
		return {"ok": True}

	async def evict(self, team_id: str, user_id: str) -> None:
		for sid, user in list(self._sessions.items()):
			if user.id == str(user_id):
				await self.leave_room(sid, self.team_room(team_id))

	@staticmethod
	def user_room(user_id: str) -> str:
		return f"user:{user_id}"

	@staticmethod
	def team_room(team_id: str) -> str:
		return f"team:{team_id}"


def set_namespace(ns: TeamsNamespace | None) -> None:
	global _namespace
	_namespace = ns


async def emit_request_new(owner_id: str, payload: dict) -> None:
	if _namespace is None:
		return
	obs_metrics.socket_event(_namespace.namespace, "team_request:new")
	await _namespace.emit("team_request:new", payload, room=TeamsNamespace.user_room(owner_id))


async def emit_request_update(user_id: str, payload: dict) -> None:
	if _namespace is None:
		return
	obs_metrics.socket_event(_namespace.namespace, "team_request:update")
	await _namespace.emit("team_request:update", payload, room=TeamsNamespace.user_room(user_id))


async def emit_member_removed(team_id: str, user_id: str, payload: dict) -> None:
	if _namespace is None:
		return
	obs_metrics.socket_event(_namespace.namespace, "team:member_removed")
	await _namespace.emit("team:member_removed", payload, room=TeamsNamespace.team_room(team_id))
	await _namespace.emit("team:member_removed", payload, room=TeamsNamespace.user_room(user_id))
	await _namespace.evict(team_id, user_id)


async def emit_message_new(team_id: str, payload: dict) -> None:
	if _namespace is None:
		return
	obs_metrics.socket_event(_namespace.namespace, "team_message:new")
	await _namespace.emit("team_message:new", payload, room=TeamsNamespace.team_room(team_id))
