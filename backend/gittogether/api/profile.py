"""Profile, public profile and user skill endpoints."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends

from gittogether.api.errors import DOMAIN_ERRORS, as_http_error
from gittogether.domain.identity import schemas
from gittogether.domain.identity.service import ProfileService
from gittogether.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter()

_profiles = ProfileService()


@router.get("/auth/me", response_model=schemas.ProfileOut)
async def get_me(auth_user: AuthenticatedUser = Depends(get_current_user)) -> schemas.ProfileOut:
	return await _profiles.get_me(auth_user)


@router.put("/auth/me", response_model=schemas.ProfileOut)
async def update_me(
	payload: schemas.ProfileUpdate,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.ProfileOut:
	try:
		return await _profiles.update_me(auth_user, payload)
	except DOMAIN_ERRORS as exc:
		raise as_http_error(exc) from exc


@router.get("/users/me/skills", response_model=List[schemas.SkillOut])
async def list_my_skills(auth_user: AuthenticatedUser = Depends(get_current_user)) -> List[schemas.SkillOut]:
	return await _profiles.list_my_skills(auth_user)


@router.post("/users/me/skills/{skill_id}", response_model=List[schemas.SkillOut])
async def add_my_skill(
	skill_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> List[schemas.SkillOut]:
	try:
		return await _profiles.add_my_skill(auth_user, skill_id)
	except DOMAIN_ERRORS as exc:
		raise as_http_error(exc) from exc


@router.delete("/users/me/skills/{skill_id}", response_model=List[schemas.SkillOut])
async def remove_my_skill(
	skill_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> List[schemas.SkillOut]:
	return await _profiles.remove_my_skill(auth_user, skill_id)


@router.get("/users/{user_id}", response_model=schemas.PublicProfileOut)
async def get_public_profile(
	user_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.PublicProfileOut:
	try:
		return await _profiles.get_public_profile(user_id)
	except DOMAIN_ERRORS as exc:
		raise as_http_error(exc) from exc
