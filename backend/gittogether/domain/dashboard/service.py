"""Counts for the personal dashboard and the admin overview."""

from __future__ import annotations

from gittogether.domain.common.clock import Clock, utcnow
from gittogether.domain.dashboard.schemas import AdminSummary, DashboardSummary
from gittogether.domain.identity.service import ProfileService
from gittogether.domain.social.service import FriendService
from gittogether.domain.teams.service import PostService, TeamRequestService, TeamService
from gittogether.infra.auth import AuthenticatedUser


class DashboardService:
	def __init__(self, *, clock: Clock | None = None) -> None:
		self._clock = clock or utcnow
		self._profiles = ProfileService(clock=self._clock)
		self._friends = FriendService(profiles=self._profiles, clock=self._clock)
		self._posts = PostService(profiles=self._profiles, clock=self._clock)
		self._requests = TeamRequestService(profiles=self._profiles, clock=self._clock)
		self._teams = TeamService(profiles=self._profiles, clock=self._clock)

	async def summary(self, auth_user: AuthenticatedUser) -> DashboardSummary:
		await self._profiles.ensure_user(auth_user)
		posts = await self._posts.list_my_posts(auth_user)
		received = await self._requests.list_received(auth_user)
		sent = await self._requests.list_sent(auth_user)
		teams = await self._teams.list_my_teams(auth_user)
		friends = await self._friends.friend_ids(auth_user.id)
		friend_requests = await self._friends.list_requests(auth_user)
		return DashboardSummary(
			my_posts=len(posts),
			open_posts=sum(1 for p in posts if p.status == "open"),
			pending_received_requests=sum(1 for r in received if r.status == "pending"),
			pending_sent_requests=sum(1 for r in sent if r.status == "pending"),
			teams=len(teams),
			friends=len(friends),
			incoming_friend_requests=len(friend_requests.incoming),
		)

	async def admin_summary(self, auth_user: AuthenticatedUser, *, recent: int = 5) -> AdminSummary:
		identity = await self._profiles.admin_stats()
		teams = await self._teams.stats()
		recent_posts = await self._posts.list_posts(auth_user, include_closed=True, limit=recent)
		recent_requests = await self._requests.recent(recent)
		return AdminSummary(
			users=identity["users"],
			posts=teams["posts"],
			requests=teams["requests"],
			top_skills=identity["top_skills"],
			recent_posts=recent_posts,
			recent_requests=recent_requests,
		)
