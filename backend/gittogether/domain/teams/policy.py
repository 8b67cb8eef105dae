"""Policy helpers for team posts, join requests and membership."""

from __future__ import annotations

from typing import Iterable

from gittogether.domain.teams import ledger
from gittogether.domain.teams.models import TeamPost, TeamRequest, TeamRequestStatus
from gittogether.infra.auth import AuthenticatedUser
from gittogether.obs import metrics as obs_metrics


class TeamPolicyError(RuntimeError):
	def __init__(self, code: str, *, status_code: int = 400, message: str | None = None) -> None:
		super().__init__(message or code)
		self.code = code
		self.status_code = status_code
		self.detail = message or code


def _refuse(code: str, status_code: int) -> TeamPolicyError:
	obs_metrics.inc_team_request_reject(code)
	return TeamPolicyError(code, status_code=status_code)


def ensure_post(post: TeamPost | None) -> TeamPost:
	if post is None:
		raise TeamPolicyError("post_not_found", status_code=404)
	return post


def ensure_owner(post: TeamPost, user: AuthenticatedUser) -> None:
	if post.owner_id != str(user.id):
		raise TeamPolicyError("not_owner", status_code=403)


def ensure_not_owner(post: TeamPost, user_id: str) -> None:
	if post.owner_id == str(user_id):
		raise _refuse("own_post", 400)


def ensure_post_open(post: TeamPost) -> None:
	if not post.is_open:
		raise _refuse("post_closed", 409)


def ensure_can_apply(
	post: TeamPost,
	requester_id: str,
	history: Iterable[TeamRequest],
	*,
	allow_reapply: bool,
) -> None:
	"""One active request per requester and post; rejected ones optionally block."""

	items = [r for r in history if r.post_id == post.id and r.requester_id == str(requester_id)]
	for request in items:
		if request.status is TeamRequestStatus.PENDING:
			raise _refuse("already_requested", 409)
		if request.status is TeamRequestStatus.ACCEPTED:
			raise _refuse("already_member", 409)
	if not allow_reapply and any(r.status is TeamRequestStatus.REJECTED for r in items):
		raise _refuse("reapply_not_allowed", 409)


def ensure_transition(request: TeamRequest, target: TeamRequestStatus) -> None:
	if not ledger.can_transition(request.status, target):
		raise _refuse("not_pending", 409)


def ensure_capacity_available(post: TeamPost, count: int) -> None:
	if not ledger.has_capacity(post, count):
		raise _refuse("capacity_reached", 409)


def ensure_max_members(post: TeamPost, max_members: int, count: int) -> None:
	if max_members < count:
		raise TeamPolicyError("below_current_members", status_code=409)


def ensure_member(post: TeamPost, requests: Iterable[TeamRequest], user_id: str) -> None:
	if not ledger.is_member(post, requests, user_id):
		raise TeamPolicyError("not_member", status_code=403)


def ensure_request_owner(request: TeamRequest, user: AuthenticatedUser) -> None:
	if request.requester_id != str(user.id):
		raise TeamPolicyError("not_requester", status_code=403)
