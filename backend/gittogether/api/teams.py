"""Team roster, member removal and team chat endpoints."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends

from gittogether.api.errors import DOMAIN_ERRORS, as_http_error
from gittogether.domain.identity.service import ProfileService
from gittogether.domain.messaging.schemas import MessageCreate, TeamMessageOut
from gittogether.domain.messaging.service import TeamChatService
from gittogether.domain.teams import schemas
from gittogether.domain.teams.service import TeamService
from gittogether.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/teams", tags=["teams"])

_profiles = ProfileService()
_teams = TeamService(profiles=_profiles)
_chat = TeamChatService(teams=_teams, profiles=_profiles)


@router.get("/mine", response_model=List[schemas.TeamOut])
async def list_my_teams(auth_user: AuthenticatedUser = Depends(get_current_user)) -> List[schemas.TeamOut]:
	teams = await _teams.list_my_teams(auth_user)
	latest = await _chat.latest_for(team.id for team in teams)
	for team in teams:
		team.latest_message = latest.get(team.id)
	return teams


@router.get("/{team_id}", response_model=schemas.TeamOut)
async def get_team(
	team_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.TeamOut:
	try:
		team = await _teams.get_team(auth_user, team_id)
	except DOMAIN_ERRORS as exc:
		raise as_http_error(exc) from exc
	team.latest_message = (await _chat.latest_for([team.id])).get(team.id)
	return team


@router.delete("/{team_id}/members/{member_id}", response_model=schemas.TeamOut)
async def remove_member(
	team_id: str,
	member_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.TeamOut:
	try:
		return await _teams.remove_member(auth_user, team_id, member_id)
	except DOMAIN_ERRORS as exc:
		raise as_http_error(exc) from exc


@router.get("/{team_id}/messages", response_model=List[TeamMessageOut])
async def list_messages(
	team_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> List[TeamMessageOut]:
	try:
		return await _chat.list_messages(auth_user, team_id)
	except DOMAIN_ERRORS as exc:
		raise as_http_error(exc) from exc


@router.post("/{team_id}/messages", response_model=TeamMessageOut)
async def send_message(
	team_id: str,
	payload: MessageCreate,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> TeamMessageOut:
	try:
		return await _chat.send_message(auth_user, team_id, payload.content)
	except DOMAIN_ERRORS as exc:
		raise as_http_error(exc) from exc
