"""Team join request endpoints."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Response, status

from gittogether.api.errors import DOMAIN_ERRORS, as_http_error
from gittogether.domain.teams import schemas
from gittogether.domain.teams.service import TeamRequestService
from gittogether.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/requests", tags=["requests"])

_requests = TeamRequestService()


@router.post("/", response_model=schemas.TeamRequestOut, status_code=status.HTTP_201_CREATED)
async def create_request(
	payload: schemas.TeamRequestCreate,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.TeamRequestOut:
	try:
		return await _requests.create_request(auth_user, payload.post_id, payload.message)
	except DOMAIN_ERRORS as exc:
		raise as_http_error(exc) from exc


@router.get("/sent", response_model=List[schemas.TeamRequestOut])
async def list_sent(auth_user: AuthenticatedUser = Depends(get_current_user)) -> List[schemas.TeamRequestOut]:
	return await _requests.list_sent(auth_user)


@router.get("/received", response_model=List[schemas.TeamRequestOut])
async def list_received(auth_user: AuthenticatedUser = Depends(get_current_user)) -> List[schemas.TeamRequestOut]:
	return await _requests.list_received(auth_user)


@router.put("/{request_id}", response_model=schemas.TeamRequestOut)
async def update_request_status(
	request_id: str,
	payload: schemas.TeamRequestStatusUpdate,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.TeamRequestOut:
	try:
		return await _requests.update_status(auth_user, request_id, payload.status, payload.response_message)
	except DOMAIN_ERRORS as exc:
		raise as_http_error(exc) from exc


@router.delete("/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
async def withdraw_request(
	request_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> Response:
	try:
		await _requests.withdraw(auth_user, request_id)
	except DOMAIN_ERRORS as exc:
		raise as_http_error(exc) from exc
	return Response(status_code=status.HTTP_204_NO_CONTENT)
