"""Membership ledger: the roster of a team derived from its request history.

A team is never stored. Its members are the post owner plus every requester
whose request on the post is accepted, and every count or role check goes
through these helpers.
"""

from __future__ import annotations

from typing import Dict, FrozenSet, Iterable, List, Optional

from gittogether.domain.teams.models import (
	MemberRole,
	PostStatus,
	TeamMember,
	TeamPost,
	TeamRequest,
	TeamRequestStatus,
)

_TRANSITIONS: Dict[TeamRequestStatus, FrozenSet[TeamRequestStatus]] = {
	TeamRequestStatus.PENDING: frozenset({TeamRequestStatus.ACCEPTED, TeamRequestStatus.REJECTED}),
	TeamRequestStatus.ACCEPTED: frozenset(),
	TeamRequestStatus.REJECTED: frozenset(),
}


def can_transition(current: TeamRequestStatus, target: TeamRequestStatus) -> bool:
	return target in _TRANSITIONS[current]


def _accepted(post: TeamPost, requests: Iterable[TeamRequest]) -> List[TeamRequest]:
	return [
		r
		for r in requests
		if r.post_id == post.id and r.status is TeamRequestStatus.ACCEPTED and r.requester_id != post.owner_id
	]


def members(post: TeamPost, requests: Iterable[TeamRequest]) -> List[TeamMember]:
	"""Owner first, then accepted requesters in order of acceptance."""

	roster = [TeamMember(user_id=post.owner_id, role=MemberRole.OWNER, joined_at=post.created_at)]
	seen = {post.owner_id}
	for request in sorted(_accepted(post, requests), key=lambda r: (r.updated_at, r.id)):
		if request.requester_id in seen:
			continue
		seen.add(request.requester_id)
		roster.append(TeamMember(user_id=request.requester_id, role=MemberRole.MEMBER, joined_at=request.updated_at))
	return roster


def member_ids(post: TeamPost, requests: Iterable[TeamRequest]) -> List[str]:
	return [member.user_id for member in members(post, requests)]


def current_members(post: TeamPost, requests: Iterable[TeamRequest]) -> int:
	return 1 + len({r.requester_id for r in _accepted(post, requests)})


def role_of(post: TeamPost, requests: Iterable[TeamRequest], user_id: str) -> Optional[MemberRole]:
	if str(user_id) == post.owner_id:
		return MemberRole.OWNER
	if any(r.requester_id == str(user_id) for r in _accepted(post, requests)):
		return MemberRole.MEMBER
	return None


def is_member(post: TeamPost, requests: Iterable[TeamRequest], user_id: str) -> bool:
	return role_of(post, requests, user_id) is not None


def has_capacity(post: TeamPost, count: int) -> bool:
	return count < post.max_members


def post_status(post: TeamPost, count: int) -> PostStatus:
	if not post.is_open:
		return PostStatus.CLOSED
	if not has_capacity(post, count):
		return PostStatus.FULL
	return PostStatus.OPEN


def active_request(requests: Iterable[TeamRequest], post_id: str, requester_id: str) -> Optional[TeamRequest]:
	for request in requests:
		if request.post_id == post_id and request.requester_id == str(requester_id) and request.is_active:
			return request
	return None
