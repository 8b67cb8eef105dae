"""Events board endpoints."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Response, status

from gittogether.api.errors import DOMAIN_ERRORS, as_http_error
from gittogether.domain.events.schemas import EventCreate, EventOut
from gittogether.domain.events.service import EventService
from gittogether.domain.identity.service import ProfileService
from gittogether.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/events", tags=["events"])

_profiles = ProfileService()
_events = EventService(profiles=_profiles)


@router.get("/", response_model=List[EventOut])
async def list_events(auth_user: AuthenticatedUser = Depends(get_current_user)) -> List[EventOut]:
	viewer = await _profiles.with_profile_roles(auth_user)
	return await _events.list_events(viewer)


@router.post("/", response_model=EventOut, status_code=status.HTTP_201_CREATED)
async def create_event(
	payload: EventCreate,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> EventOut:
	return await _events.create_event(auth_user, payload)


@router.delete("/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_event(
	event_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> Response:
	viewer = await _profiles.with_profile_roles(auth_user)
	try:
		await _events.delete_event(viewer, event_id)
	except DOMAIN_ERRORS as exc:
		raise as_http_error(exc) from exc
	return Response(status_code=status.HTTP_204_NO_CONTENT)
