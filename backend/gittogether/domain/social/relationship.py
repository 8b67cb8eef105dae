"""Relationship resolution over the friend request history.

The relationship between two users is never stored. It is recomputed from the
requests exchanged between them, so a viewer always sees exactly one of the
five states in :class:`RelationshipStatus`.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Set

from gittogether.domain.social.models import FriendRequest, FriendRequestStatus, RelationshipStatus


def resolve(viewer_id: str, target_id: str, requests: Iterable[FriendRequest]) -> RelationshipStatus:
	"""Return the state of ``target_id`` as seen by ``viewer_id``.

	Precedence is self, friend, pending_incoming, pending_outgoing, none.
	Requests that do not involve the pair are ignored.
	"""

	viewer_id = str(viewer_id)
	target_id = str(target_id)
	if viewer_id == target_id:
		return RelationshipStatus.SELF
	incoming = outgoing = False
	for request in requests:
		if not request.between(viewer_id, target_id):
			continue
		if request.status is FriendRequestStatus.ACCEPTED:
			return RelationshipStatus.FRIEND
		if request.status is FriendRequestStatus.PENDING:
			if request.requester_id == target_id:
				incoming = True
			else:
				outgoing = True
	if incoming:
		return RelationshipStatus.PENDING_INCOMING
	if outgoing:
		return RelationshipStatus.PENDING_OUTGOING
	return RelationshipStatus.NONE


def resolve_many(
	viewer_id: str,
	target_ids: Iterable[str],
	requests: Iterable[FriendRequest],
) -> Dict[str, RelationshipStatus]:
	"""Resolve a batch of targets against one viewer's request history."""

	by_peer: Dict[str, List[FriendRequest]] = {}
	for request in requests:
		if str(viewer_id) not in (request.requester_id, request.target_id):
			continue
		by_peer.setdefault(request.other_party(viewer_id), []).append(request)
	return {str(tid): resolve(viewer_id, tid, by_peer.get(str(tid), ())) for tid in target_ids}


def friend_ids(user_id: str, requests: Iterable[FriendRequest]) -> Set[str]:
	"""Users sharing an accepted request with ``user_id``."""

	return {
		request.other_party(user_id)
		for request in requests
		if request.status is FriendRequestStatus.ACCEPTED
		and str(user_id) in (request.requester_id, request.target_id)
	}


def can_send(status: RelationshipStatus) -> bool:
	return status is RelationshipStatus.NONE
