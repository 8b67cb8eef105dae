"""Personal dashboard and admin overview endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from gittogether.domain.dashboard.schemas import AdminSummary, DashboardSummary
from gittogether.domain.dashboard.service import DashboardService
from gittogether.domain.identity.service import ProfileService
from gittogether.infra.auth import AuthenticatedUser, get_admin_user, get_current_user

router = APIRouter(tags=["dashboard"])

_profiles = ProfileService()
_dashboard = DashboardService()


async def require_admin_user(auth_user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
	"""Admin role from the token, or the admin flag on the stored profile."""
	return await get_admin_user(await _profiles.with_profile_roles(auth_user))


@router.get("/dashboard/summary", response_model=DashboardSummary)
async def dashboard_summary(auth_user: AuthenticatedUser = Depends(get_current_user)) -> DashboardSummary:
	return await _dashboard.summary(auth_user)


@router.get("/admin/summary", response_model=AdminSummary)
async def admin_summary(admin: AuthenticatedUser = Depends(require_admin_user)) -> AdminSummary:
	return await _dashboard.admin_summary(admin)
