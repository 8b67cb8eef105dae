"""REST API surface for friend requests, friendships and friend chat."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query

from gittogether.api.errors import DOMAIN_ERRORS, as_http_error
from gittogether.domain.identity.service import ProfileService
from gittogether.domain.messaging.schemas import FriendMessageOut, MessageCreate
from gittogether.domain.messaging.service import FriendChatService
from gittogether.domain.social import schemas
from gittogether.domain.social.service import FriendService
from gittogether.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/friends", tags=["social"])

_profiles = ProfileService()
_friends = FriendService(profiles=_profiles)
_chat = FriendChatService(friends=_friends, profiles=_profiles)


@router.get("/", response_model=schemas.FriendListResponse)
async def list_friends(auth_user: AuthenticatedUser = Depends(get_current_user)) -> schemas.FriendListResponse:
	return await _friends.list_friends(auth_user)


@router.get("/requests", response_model=schemas.FriendRequestsPayload)
async def list_requests(auth_user: AuthenticatedUser = Depends(get_current_user)) -> schemas.FriendRequestsPayload:
	return await _friends.list_requests(auth_user)


@router.post("/requests", response_model=schemas.FriendRequestOut)
async def send_request(
	payload: schemas.FriendRequestCreate,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.FriendRequestOut:
	try:
		return await _friends.send_request(auth_user, payload.target_user_id, payload.message)
	except DOMAIN_ERRORS as exc:
		raise as_http_error(exc) from exc


@router.post("/requests/{request_id}/accept", response_model=schemas.FriendRequestOut)
async def accept_request(
	request_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.FriendRequestOut:
	try:
		return await _friends.accept_request(auth_user, request_id)
	except DOMAIN_ERRORS as exc:
		raise as_http_error(exc) from exc


@router.post("/requests/{request_id}/reject", response_model=schemas.FriendRequestOut)
async def reject_request(
	request_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.FriendRequestOut:
	try:
		return await _friends.reject_request(auth_user, request_id)
	except DOMAIN_ERRORS as exc:
		raise as_http_error(exc) from exc


@router.post("/requests/{request_id}/cancel", response_model=schemas.FriendRequestOut)
async def cancel_request(
	request_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.FriendRequestOut:
	try:
		return await _friends.cancel_request(auth_user, request_id)
	except DOMAIN_ERRORS as exc:
		raise as_http_error(exc) from exc


@router.get("/search", response_model=List[schemas.FriendSearchResult])
async def search_users(
	q: str = Query(..., min_length=1, max_length=100),
	limit: int = Query(default=20, ge=1, le=50),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> List[schemas.FriendSearchResult]:
	return await _friends.search(auth_user, q, limit=limit)


@router.get("/status/{user_id}", response_model=schemas.RelationshipOut)
async def relationship_status(
	user_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.RelationshipOut:
	try:
		state = await _friends.relationship_for(auth_user, user_id)
	except DOMAIN_ERRORS as exc:
		raise as_http_error(exc) from exc
	return schemas.RelationshipOut(user_id=user_id, relationship_status=state.value)


@router.get("/{friend_id}/messages", response_model=List[FriendMessageOut])
async def list_messages(
	friend_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> List[FriendMessageOut]:
	try:
		return await _chat.list_messages(auth_user, friend_id)
	except DOMAIN_ERRORS as exc:
		raise as_http_error(exc) from exc


@router.post("/{friend_id}/messages", response_model=FriendMessageOut)
async def send_message(
	friend_id: str,
	payload: MessageCreate,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> FriendMessageOut:
	try:
		return await _chat.send_message(auth_user, friend_id, payload.content)
	except DOMAIN_ERRORS as exc:
		raise as_http_error(exc) from exc
