"""View state for friends, team requests, teams and chats.

Mutations are single calls whose outcome is the outcome of that call alone. After a
successful call the affected collections are re-fetched; a failed re-fetch is logged
and left to the next poll, it never turns an applied mutation into an error. A failed
call leaves the local state untouched and re-raises, so the view never shows an
outcome the server did not confirm.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from gittogether.client.guard import ActionGuard
from gittogether.client.http import ApiClient, ApiError
from gittogether.client.poller import Poller
from gittogether.settings import settings

logger = logging.getLogger(__name__)

FRIEND_POLL_SECONDS = settings.friend_poll_seconds
TEAM_POLL_SECONDS = settings.team_poll_seconds

_OUTSTANDING = ("pending", "accepted")


class ApplyNotOffered(RuntimeError):
	"""The apply action is not available for this post; no call was made."""

	def __init__(self, post_id: str, reason: str) -> None:
		super().__init__(f"cannot apply to {post_id}: {reason}")
		self.post_id = post_id
		self.reason = reason


@dataclass
class CollaborationState:
	friends: List[dict] = field(default_factory=list)
	incoming: List[dict] = field(default_factory=list)
	outgoing: List[dict] = field(default_factory=list)
	sent_requests: List[dict] = field(default_factory=list)
	received_requests: List[dict] = field(default_factory=list)
	teams: List[dict] = field(default_factory=list)
	posts: List[dict] = field(default_factory=list)
	friend_messages: Dict[str, List[dict]] = field(default_factory=dict)
	team_messages: Dict[str, List[dict]] = field(default_factory=dict)

	def apply_blocker(self, post: dict) -> Optional[str]:
		"""Why the viewer may not apply to ``post``, or ``None`` when they may.

		Combines the post's own view of the viewer with the viewer's outstanding
		requests, whichever was fetched more recently.
		"""
		if post.get("is_owner"):
			return "own_post"
		if not post.get("is_open", True) or post.get("status") == "closed":
			return "post_closed"
		statuses = {post.get("my_request_status")}
		statuses.update(r.get("status") for r in self.sent_requests if r.get("post_id") == post.get("id"))
		if "accepted" in statuses:
			return "already_member"
		if "pending" in statuses:
			return "already_requested"
		return None

	def can_apply(self, post: dict) -> bool:
		return self.apply_blocker(post) is None


class CollaborationClient:
	def __init__(self, api: ApiClient, *, guard: Optional[ActionGuard] = None) -> None:
		self.api = api
		self.guard = guard or ActionGuard()
		self.state = CollaborationState()

	async def _refetch(self, *refreshers: Callable[[], Awaitable[Any]]) -> None:
		for refresh in refreshers:
			try:
				await refresh()
			except ApiError as exc:
				logger.warning("refetch_after_mutation_failed", extra={"error": str(exc)})

	# Reads

	async def refresh_friends(self) -> None:
		friends = await self.api.get("/friends/")
		requests = await self.api.get("/friends/requests")
		self.state.friends = list(friends["friends"])
		self.state.incoming = list(requests["incoming"])
		self.state.outgoing = list(requests["outgoing"])

	async def refresh_team_requests(self) -> None:
		sent = await self.api.get("/requests/sent")
		received = await self.api.get("/requests/received")
		self.state.sent_requests = list(sent)
		self.state.received_requests = list(received)

	async def refresh_teams(self) -> None:
		self.state.teams = list(await self.api.get("/teams/mine"))

	async def refresh_all(self) -> None:
		await self.refresh_friends()
		await self.refresh_team_requests()
		await self.refresh_teams()

	async def search_users(self, query: str, *, limit: int = 20) -> List[dict]:
		return list(await self.api.get("/friends/search", q=query, limit=limit))

	async def relationship(self, user_id: str) -> str:
		payload = await self.api.get(f"/friends/status/{user_id}")
		return str(payload["relationship_status"])

	async def list_posts(self, **filters: Any) -> List[dict]:
		self.state.posts = list(await self.api.get("/posts/", **filters))
		return self.state.posts

	def can_apply(self, post: dict) -> bool:
		return self.state.can_apply(post)

	# Friend requests

	async def send_friend_request(self, target_user_id: str, message: Optional[str] = None) -> dict:
		async with self.guard.hold(f"friend:send:{target_user_id}"):
			created = await self.api.post("/friends/requests", {"target_user_id": target_user_id, "message": message})
			await self._refetch(self.refresh_friends)
		return created

	async def _answer_friend_request(self, request_id: str, action: str) -> dict:
		async with self.guard.hold(f"friend:request:{request_id}"):
			result = await self.api.post(f"/friends/requests/{request_id}/{action}")
			await self._refetch(self.refresh_friends)
		return result

	async def accept_friend_request(self, request_id: str) -> dict:
		return await self._answer_friend_request(request_id, "accept")

	async def reject_friend_request(self, request_id: str) -> dict:
		return await self._answer_friend_request(request_id, "reject")

	async def cancel_friend_request(self, request_id: str) -> dict:
		return await self._answer_friend_request(request_id, "cancel")

	# Team requests and membership

	async def apply_to_post(self, post_id: str, message: Optional[str] = None) -> dict:
		"""Apply to a post; refused locally when the loaded post says apply is not offered."""
		known = next((p for p in self.state.posts if p.get("id") == post_id), None)
		if known is not None:
			reason = self.state.apply_blocker(known)
			if reason is not None:
				raise ApplyNotOffered(post_id, reason)
		async with self.guard.hold(f"team:apply:{post_id}"):
			created = await self.api.post("/requests/", {"post_id": post_id, "message": message})
			await self._refetch(self.refresh_team_requests)
		return created

	async def answer_team_request(
		self,
		request_id: str,
		status: str,
		response_message: Optional[str] = None,
	) -> dict:
		async with self.guard.hold(f"team:request:{request_id}"):
			updated = await self.api.put(
				f"/requests/{request_id}",
				{"status": status, "response_message": response_message},
			)
			await self._refetch(self.refresh_team_requests, self.refresh_teams)
		return updated

	async def accept_team_request(self, request_id: str, response_message: Optional[str] = None) -> dict:
		return await self.answer_team_request(request_id, "accepted", response_message)

	async def reject_team_request(self, request_id: str, response_message: Optional[str] = None) -> dict:
		return await self.answer_team_request(request_id, "rejected", response_message)

	async def withdraw_team_request(self, request_id: str) -> None:
		async with self.guard.hold(f"team:request:{request_id}"):
			await self.api.delete(f"/requests/{request_id}")
			await self._refetch(self.refresh_team_requests)

	async def remove_member(self, team_id: str, member_id: str) -> None:
		async with self.guard.hold(f"team:member:{team_id}:{member_id}"):
			await self.api.delete(f"/teams/{team_id}/members/{member_id}")
			await self._refetch(self.refresh_teams)

	# Chats

	async def load_friend_messages(self, friend_id: str) -> List[dict]:
		messages = list(await self.api.get(f"/friends/{friend_id}/messages"))
		self.state.friend_messages[friend_id] = messages
		return messages

	async def send_friend_message(self, friend_id: str, content: str) -> dict:
		async with self.guard.hold(f"friend:message:{friend_id}"):
			sent = await self.api.post(f"/friends/{friend_id}/messages", {"content": content})
			await self._refetch(lambda: self.load_friend_messages(friend_id))
		return sent

	async def load_team_messages(self, team_id: str) -> List[dict]:
		messages = list(await self.api.get(f"/teams/{team_id}/messages"))
		self.state.team_messages[team_id] = messages
		return messages

	async def send_team_message(self, team_id: str, content: str) -> dict:
		async with self.guard.hold(f"team:message:{team_id}"):
			sent = await self.api.post(f"/teams/{team_id}/messages", {"content": content})
			await self._refetch(lambda: self.load_team_messages(team_id))
		return sent

	def friend_chat_poller(self, friend_id: str, *, interval: float = FRIEND_POLL_SECONDS) -> Poller:
		path = f"/friends/{friend_id}/messages"
		return Poller(
			lambda: self.api.get(path),
			lambda messages: self.state.friend_messages.__setitem__(friend_id, list(messages)),
			interval=interval,
		)

	def team_chat_poller(self, team_id: str, *, interval: float = TEAM_POLL_SECONDS) -> Poller:
		path = f"/teams/{team_id}/messages"
		return Poller(
			lambda: self.api.get(path),
			lambda messages: self.state.team_messages.__setitem__(team_id, list(messages)),
			interval=interval,
		)
