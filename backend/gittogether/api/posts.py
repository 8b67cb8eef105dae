"""Team post endpoints and the skills catalogue."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from gittogether.api.errors import DOMAIN_ERRORS, as_http_error
from gittogether.domain.identity.schemas import SkillOut
from gittogether.domain.identity.service import ProfileService
from gittogether.domain.teams import schemas
from gittogether.domain.teams.service import PostService
from gittogether.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/posts", tags=["posts"])

_profiles = ProfileService()
_posts = PostService(profiles=_profiles)


@router.get("/skills/", response_model=List[SkillOut])
async def list_skills(auth_user: AuthenticatedUser = Depends(get_current_user)) -> List[SkillOut]:
	return await _profiles.list_skills()


@router.get("/skills/categories", response_model=List[str])
async def list_skill_categories(auth_user: AuthenticatedUser = Depends(get_current_user)) -> List[str]:
	return await _profiles.list_categories()


@router.get("/", response_model=List[schemas.TeamPostOut])
async def list_posts(
	search: Optional[str] = Query(default=None, max_length=100),
	skill_id: Optional[str] = Query(default=None),
	include_closed: bool = Query(default=False),
	limit: int = Query(default=50, ge=1, le=100),
	offset: int = Query(default=0, ge=0),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> List[schemas.TeamPostOut]:
	return await _posts.list_posts(
		auth_user,
		search=search,
		skill_id=skill_id,
		include_closed=include_closed,
		limit=limit,
		offset=offset,
	)


@router.post("/", response_model=schemas.TeamPostOut, status_code=status.HTTP_201_CREATED)
async def create_post(
	payload: schemas.TeamPostCreate,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.TeamPostOut:
	try:
		return await _posts.create_post(auth_user, payload)
	except DOMAIN_ERRORS as exc:
		raise as_http_error(exc) from exc


@router.get("/my", response_model=List[schemas.TeamPostOut])
async def list_my_posts(auth_user: AuthenticatedUser = Depends(get_current_user)) -> List[schemas.TeamPostOut]:
	return await _posts.list_my_posts(auth_user)


@router.get("/{post_id}", response_model=schemas.TeamPostOut)
async def get_post(
	post_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.TeamPostOut:
	try:
		return await _posts.get_post(auth_user, post_id)
	except DOMAIN_ERRORS as exc:
		raise as_http_error(exc) from exc


@router.put("/{post_id}", response_model=schemas.TeamPostOut)
async def update_post(
	post_id: str,
	payload: schemas.TeamPostUpdate,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.TeamPostOut:
	try:
		return await _posts.update_post(auth_user, post_id, payload)
	except DOMAIN_ERRORS as exc:
		raise as_http_error(exc) from exc


@router.delete("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_post(
	post_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> Response:
	try:
		await _posts.delete_post(auth_user, post_id)
	except DOMAIN_ERRORS as exc:
		raise as_http_error(exc) from exc
	return Response(status_code=status.HTTP_204_NO_CONTENT)
