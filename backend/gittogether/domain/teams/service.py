"""Team posts, the join request workflow and derived team views."""

from __future__ import annotations

import logging
from typing import Awaitable, Dict, Iterable, List, Optional, Sequence

import ulid

from gittogether.domain.common.clock import Clock, utcnow
from gittogether.domain.identity.schemas import UserSummary
from gittogether.domain.identity.service import ProfileService, SkillNotFound
from gittogether.domain.teams import ledger, policy, sockets
from gittogether.domain.teams.models import MemberRole, TeamPost, TeamRequest, TeamRequestStatus
from gittogether.domain.teams.policy import TeamPolicyError
from gittogether.domain.teams.repository import TeamRepository
from gittogether.domain.teams.schemas import (
	MemberRemovedPayload,
	TeamMemberOut,
	TeamOut,
	TeamPostCreate,
	TeamPostOut,
	TeamPostUpdate,
	TeamRequestOut,
	TeamRequestUpdatePayload,
)
from gittogether.infra.auth import AuthenticatedUser
from gittogether.obs import metrics as obs_metrics
from gittogether.settings import settings

logger = logging.getLogger(__name__)


async def _best_effort(event: str, notification: Awaitable[None]) -> None:
	"""Fan-out after a committed change; a failure is logged, never raised."""
	try:
		await notification
	except Exception:
		logger.warning("team_notify_failed", extra={"event": event}, exc_info=True)


def _group(requests: Iterable[TeamRequest]) -> Dict[str, List[TeamRequest]]:
	grouped: Dict[str, List[TeamRequest]] = {}
	for request in requests:
		grouped.setdefault(request.post_id, []).append(request)
	return grouped


def _summary(summaries: Dict[str, UserSummary], user_id: str) -> UserSummary:
	return summaries.get(user_id) or UserSummary(id=user_id, name="Unknown user")


class _TeamsBase:
	def __init__(
		self,
		repository: TeamRepository | None = None,
		*,
		profiles: ProfileService | None = None,
		clock: Clock | None = None,
	) -> None:
		self._repo = repository or TeamRepository()
		self._clock = clock or utcnow
		self._profiles = profiles or ProfileService(clock=self._clock)

	@property
	def repository(self) -> TeamRepository:
		return self._repo

	async def _require_post(self, post_id: str) -> TeamPost:
		return policy.ensure_post(await self._repo.get_post(post_id))

	async def _post_views(self, posts: Sequence[TeamPost], viewer_id: str) -> List[TeamPostOut]:
		if not posts:
			return []
		by_post = _group(await self._repo.requests_for_posts(p.id for p in posts))
		owners = await self._profiles.summaries({p.owner_id for p in posts})
		catalogue = {skill.id: skill for skill in await self._profiles.list_skills()}
		views: List[TeamPostOut] = []
		for post in posts:
			requests = by_post.get(post.id, [])
			count = ledger.current_members(post, requests)
			mine = ledger.active_request(requests, post.id, viewer_id)
			if mine is None:
				own = sorted((r for r in requests if r.requester_id == str(viewer_id)), key=lambda r: r.created_at)
				mine = own[-1] if own else None
			views.append(
				TeamPostOut(
					id=post.id,
					title=post.title,
					description=post.description,
					max_members=post.max_members,
					current_members=count,
					status=ledger.post_status(post, count).value,
					is_open=post.is_open,
					owner=_summary(owners, post.owner_id),
					required_skills=[catalogue[sid] for sid in post.required_skill_ids if sid in catalogue],
					created_at=post.created_at,
					updated_at=post.updated_at,
					is_owner=post.owner_id == str(viewer_id),
					my_request_status=mine.status.value if mine else None,
					my_request_id=mine.id if mine else None,
				)
			)
		return views

	async def _request_views(self, requests: Sequence[TeamRequest]) -> List[TeamRequestOut]:
		if not requests:
			return []
		posts = {post.id: post for post in await self._repo.get_posts(r.post_id for r in requests)}
		people = {r.requester_id for r in requests} | {p.owner_id for p in posts.values()}
		summaries = await self._profiles.summaries(people)
		views = []
		for request in sorted(requests, key=lambda r: (r.created_at, r.id), reverse=True):
			post = posts.get(request.post_id)
			views.append(
				TeamRequestOut(
					id=request.id,
					post_id=request.post_id,
					post_title=post.title if post else None,
					status=request.status.value,
					message=request.message,
					response_message=request.response_message,
					created_at=request.created_at,
					updated_at=request.updated_at,
					requester=_summary(summaries, request.requester_id),
					post_owner=_summary(summaries, post.owner_id) if post else None,
				)
			)
		return views

	async def _validate_skills(self, skill_ids: Sequence[str]) -> List[str]:
		try:
			skills = await self._profiles.resolve_skills(skill_ids)
		except SkillNotFound as exc:
			raise TeamPolicyError("unknown_skill", status_code=400) from exc
		return [skill.id for skill in skills]


class PostService(_TeamsBase):
	"""Create, browse, edit and delete team posts."""

	async def create_post(self, auth_user: AuthenticatedUser, payload: TeamPostCreate) -> TeamPostOut:
		await self._profiles.ensure_user(auth_user)
		skill_ids = await self._validate_skills(payload.required_skill_ids)
		now = self._clock()
		post = await self._repo.create_post(
			TeamPost(
				id=str(ulid.new()),
				owner_id=str(auth_user.id),
				title=payload.title,
				description=payload.description,
				max_members=payload.max_members,
				created_at=now,
				updated_at=now,
				required_skill_ids=tuple(skill_ids),
			)
		)
		obs_metrics.inc_post_created()
		logger.info("team_post_created", extra={"post_id": post.id})
		(view,) = await self._post_views([post], auth_user.id)
		return view

	async def get_post(self, auth_user: AuthenticatedUser, post_id: str) -> TeamPostOut:
		post = await self._require_post(post_id)
		(view,) = await self._post_views([post], auth_user.id)
		return view

	async def list_posts(
		self,
		auth_user: AuthenticatedUser,
		*,
		search: Optional[str] = None,
		skill_id: Optional[str] = None,
		include_closed: bool = False,
		limit: int = 50,
		offset: int = 0,
	) -> List[TeamPostOut]:
		posts = await self._repo.list_posts(
			search=(search or "").strip() or None,
			skill_id=skill_id or None,
			include_closed=include_closed,
			limit=limit,
			offset=offset,
		)
		return await self._post_views(posts, auth_user.id)

	async def list_my_posts(self, auth_user: AuthenticatedUser) -> List[TeamPostOut]:
		posts = await self._repo.list_posts_by_owner(str(auth_user.id))
		return await self._post_views(posts, auth_user.id)

	async def update_post(self, auth_user: AuthenticatedUser, post_id: str, payload: TeamPostUpdate) -> TeamPostOut:
		changes = payload.model_dump(exclude_unset=True, exclude={"required_skill_ids"})
		changes = {key: value for key, value in changes.items() if value is not None}
		skill_ids = None
		if payload.required_skill_ids is not None:
			skill_ids = await self._validate_skills(payload.required_skill_ids)
		new_max = changes.get("max_members")

		def guard(post: Optional[TeamPost], requests: List[TeamRequest]) -> None:
			post = policy.ensure_post(post)
			policy.ensure_owner(post, auth_user)
			if new_max is not None:
				policy.ensure_max_members(post, new_max, ledger.current_members(post, requests))

		updated = await self._repo.update_post(post_id, changes, skill_ids, self._clock(), guard)
		post = policy.ensure_post(updated)
		(view,) = await self._post_views([post], auth_user.id)
		return view

	async def delete_post(self, auth_user: AuthenticatedUser, post_id: str) -> None:
		post = await self._require_post(post_id)
		policy.ensure_owner(post, auth_user)
		await self._repo.delete_post(post.id)
		logger.info("team_post_deleted", extra={"post_id": post.id})


class TeamRequestService(_TeamsBase):
	"""Join request lifecycle: apply, answer, withdraw and list."""

	async def create_request(
		self,
		auth_user: AuthenticatedUser,
		post_id: str,
		message: Optional[str] = None,
	) -> TeamRequestOut:
		await self._profiles.ensure_user(auth_user)
		requester_id = str(auth_user.id)
		allow_reapply = settings.team_reapply_after_reject

		def guard(post: Optional[TeamPost], requests: List[TeamRequest]) -> None:
			post = policy.ensure_post(post)
			policy.ensure_not_owner(post, requester_id)
			policy.ensure_post_open(post)
			policy.ensure_can_apply(post, requester_id, requests, allow_reapply=allow_reapply)

		now = self._clock()
		created = await self._repo.insert_request(
			TeamRequest(
				id=str(ulid.new()),
				post_id=str(post_id),
				requester_id=requester_id,
				status=TeamRequestStatus.PENDING,
				created_at=now,
				updated_at=now,
				message=(message or "").strip() or None,
			),
			guard,
		)
		obs_metrics.inc_team_request("created")
		(view,) = await self._request_views([created])
		if view.post_owner is not None:
			await _best_effort("team_request:new", sockets.emit_request_new(view.post_owner.id, view.model_dump(mode="json")))
		return view

	async def list_sent(self, auth_user: AuthenticatedUser) -> List[TeamRequestOut]:
		return await self._request_views(await self._repo.requests_by_requester(str(auth_user.id)))

	async def list_received(self, auth_user: AuthenticatedUser) -> List[TeamRequestOut]:
		posts = await self._repo.list_posts_by_owner(str(auth_user.id))
		requests = await self._repo.requests_for_posts(p.id for p in posts)
		return await self._request_views(requests)

	async def recent(self, limit: int = 5) -> List[TeamRequestOut]:
		return await self._request_views(await self._repo.recent_requests(limit))

	async def update_status(
		self,
		auth_user: AuthenticatedUser,
		request_id: str,
		status: str,
		response_message: Optional[str] = None,
	) -> TeamRequestOut:
		"""Owner answers a pending request.

		Accepting re-counts the roster under the post lock; a full team refuses
		with ``capacity_reached`` and the request stays pending.
		"""
		target = TeamRequestStatus(status)

		def guard(post: Optional[TeamPost], requests: List[TeamRequest], request: TeamRequest) -> None:
			post = policy.ensure_post(post)
			policy.ensure_owner(post, auth_user)
			policy.ensure_transition(request, target)
			if target is TeamRequestStatus.ACCEPTED:
				policy.ensure_capacity_available(post, ledger.current_members(post, requests))

		updated = await self._repo.update_request_status(
			request_id,
			target,
			(response_message or "").strip() or None,
			self._clock(),
			guard,
		)
		if updated is None:
			raise TeamPolicyError("request_not_found", status_code=404)
		obs_metrics.inc_team_request(target.value)
		payload = TeamRequestUpdatePayload(id=updated.id, post_id=updated.post_id, status=updated.status.value)
		await _best_effort("team_request:update", sockets.emit_request_update(updated.requester_id, payload.model_dump(mode="json")))
		logger.info("team_request_answered", extra={"request_id": updated.id, "status": target.value})
		(view,) = await self._request_views([updated])
		return view

	async def withdraw(self, auth_user: AuthenticatedUser, request_id: str) -> None:
		def guard(post: Optional[TeamPost], requests: List[TeamRequest], request: TeamRequest) -> None:
			policy.ensure_request_owner(request, auth_user)
			if request.status is not TeamRequestStatus.PENDING:
				raise TeamPolicyError("not_pending", status_code=409)

		removed = await self._repo.delete_request(request_id, guard)
		if removed is None:
			raise TeamPolicyError("request_not_found", status_code=404)
		obs_metrics.inc_team_request("withdrawn")
		post = await self._repo.get_post(removed.post_id)
		if post is not None:
			payload = TeamRequestUpdatePayload(id=removed.id, post_id=removed.post_id, status="withdrawn")
			await _best_effort("team_request:update", sockets.emit_request_update(post.owner_id, payload.model_dump(mode="json")))


class TeamService(_TeamsBase):
	"""Read the derived team aggregate and manage its roster."""

	async def roster(self, team_id: str) -> tuple[TeamPost, List[TeamRequest]]:
		post = await self._require_post(team_id)
		return post, await self._repo.requests_for_posts([post.id])

	async def require_member(self, team_id: str, user_id: str) -> tuple[TeamPost, List[str]]:
		"""Return the team and its member ids, refusing non-members."""
		post, requests = await self.roster(team_id)
		policy.ensure_member(post, requests, user_id)
		return post, ledger.member_ids(post, requests)

	async def is_member(self, team_id: str, user_id: str) -> bool:
		post = await self._repo.get_post(team_id)
		if post is None:
			return False
		return ledger.is_member(post, await self._repo.requests_for_posts([post.id]), user_id)

	async def _team_views(self, posts: Sequence[TeamPost], viewer_id: str) -> List[TeamOut]:
		by_post = _group(await self._repo.requests_for_posts(p.id for p in posts))
		rosters = {post.id: ledger.members(post, by_post.get(post.id, [])) for post in posts}
		summaries = await self._profiles.summaries(m.user_id for roster in rosters.values() for m in roster)
		views = []
		for post in posts:
			roster = rosters[post.id]
			count = len(roster)
			role = ledger.role_of(post, by_post.get(post.id, []), viewer_id) or MemberRole.MEMBER
			views.append(
				TeamOut(
					id=post.id,
					title=post.title,
					description=post.description,
					role=role.value,
					status=ledger.post_status(post, count).value,
					current_members=count,
					max_members=post.max_members,
					owner=_summary(summaries, post.owner_id),
					members=[
						TeamMemberOut(user=_summary(summaries, m.user_id), role=m.role.value, joined_at=m.joined_at)
						for m in roster
					],
					created_at=post.created_at,
				)
			)
		return views

	async def list_my_teams(self, auth_user: AuthenticatedUser) -> List[TeamOut]:
		user_id = str(auth_user.id)
		owned = await self._repo.list_posts_by_owner(user_id)
		joined_ids = [
			r.post_id for r in await self._repo.requests_by_requester(user_id) if r.status is TeamRequestStatus.ACCEPTED
		]
		posts = {post.id: post for post in owned}
		for post in await self._repo.get_posts(joined_ids):
			posts.setdefault(post.id, post)
		ordered = sorted(posts.values(), key=lambda p: (p.created_at, p.id), reverse=True)
		return await self._team_views(ordered, user_id)

	async def get_team(self, auth_user: AuthenticatedUser, team_id: str) -> TeamOut:
		post, _ = await self.require_member(team_id, auth_user.id)
		(view,) = await self._team_views([post], auth_user.id)
		return view

	async def remove_member(self, auth_user: AuthenticatedUser, team_id: str, member_id: str) -> TeamOut:
		post, requests = await self.roster(team_id)
		policy.ensure_owner(post, auth_user)
		if str(member_id) == post.owner_id:
			raise TeamPolicyError("cannot_remove_owner", status_code=400)
		accepted = next(
			(
				r
				for r in requests
				if r.requester_id == str(member_id) and r.status is TeamRequestStatus.ACCEPTED
			),
			None,
		)
		if accepted is None:
			raise TeamPolicyError("not_member", status_code=404)

		def guard(current_post: Optional[TeamPost], _requests: List[TeamRequest], request: TeamRequest) -> None:
			policy.ensure_owner(policy.ensure_post(current_post), auth_user)
			if request.status is not TeamRequestStatus.ACCEPTED:
				raise TeamPolicyError("not_member", status_code=404)

		removed = await self._repo.delete_request(accepted.id, guard)
		if removed is None:
			raise TeamPolicyError("not_member", status_code=404)
		obs_metrics.inc_member_removed()
		payload = MemberRemovedPayload(team_id=post.id, user_id=str(member_id)).model_dump(mode="json")
		await _best_effort("team:member_removed", sockets.emit_member_removed(post.id, str(member_id), payload))
		logger.info("team_member_removed", extra={"team_id": post.id, "member_id": str(member_id)})
		(view,) = await self._team_views([post], auth_user.id)
		return view

	async def stats(self) -> dict:
		return {"posts": await self._repo.post_stats(), "requests": await self._repo.request_stats()}
