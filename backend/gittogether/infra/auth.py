"""Authentication helpers for FastAPI endpoints.

- Access tokens are HS256 JWTs verified with settings.secret_key.
- Dev headers (X-User-*) are only respected in development.
- Role guards for admin-only routes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from gittogether.infra import jwt as jwt_helper
from gittogether.settings import settings


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	email: Optional[str] = None
	name: Optional[str] = None
	picture: Optional[str] = None
	roles: Tuple[str, ...] = ()

	def has_role(self, role: str) -> bool:
		return role in self.roles


_bearer_scheme = HTTPBearer(auto_error=False)


def _parse_roles(claim: object) -> Tuple[str, ...]:
	if isinstance(claim, (list, tuple)):
		return tuple(str(r).strip() for r in claim if str(r).strip())
	if isinstance(claim, str):
		return tuple(part.strip() for part in claim.split(",") if part.strip())
	return ()


def verify_access_jwt(token: str) -> AuthenticatedUser:
	"""Decode and validate an access JWT and return an AuthenticatedUser.

	Required claims: sub, exp, iat; email/name/picture are copied when present
	so the first authenticated call can materialise the user row.
	"""
	try:
		payload = jwt_helper.decode_access(token)
	except Exception:
		# Normalise all decode failures to invalid_token for the API surface
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")

	sub = str(payload.get("sub") or "").strip()
	if not sub:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")

	email = payload.get("email")
	name = payload.get("name")
	picture = payload.get("picture")
	return AuthenticatedUser(
		id=sub,
		email=str(email) if email is not None else None,
		name=str(name) if name is not None else None,
		picture=str(picture) if picture is not None else None,
		roles=_parse_roles(payload.get("roles") or payload.get("role")),
	)


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	x_user_roles: Optional[str] = Header(default=None, alias="X-User-Roles"),
	x_user_email: Optional[str] = Header(default=None, alias="X-User-Email"),
	x_user_name: Optional[str] = Header(default=None, alias="X-User-Name"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> AuthenticatedUser:
	"""Resolve the authenticated user.

	In development we allow simple headers. In all other environments, headers are
	ignored and a valid Bearer JWT is required.
	"""
	if credentials and credentials.scheme.lower() == "bearer":
		return verify_access_jwt(credentials.credentials)

	if settings.is_dev() and x_user_id:
		return AuthenticatedUser(
			id=x_user_id,
			email=x_user_email,
			name=x_user_name,
			roles=_parse_roles(x_user_roles),
		)

	raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")


async def get_admin_user(user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
	if user.has_role("admin"):
		return user
	raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="insufficient_role")



def _scope_header(scope: dict, name: str) -> Optional[str]:
	target = name.encode().lower()
	for key, value in scope.get("headers", []):
		if key.lower() == target:
			return value.decode()
	return None


def authenticate_socket(environ: dict, auth: Optional[dict] = None) -> AuthenticatedUser:
	"""Resolve the user for a Socket.IO handshake.

	Clients pass ``{"token": ...}`` as the auth payload; in development a bare
	``userId`` (or the X-User-Id header) is accepted as well.
	"""
	scope = environ.get("asgi.scope", environ)
	payload = auth or environ.get("auth") or scope.get("auth") or {}
	token = payload.get("token")
	if not token:
		header = _scope_header(scope, "authorization") or ""
		if header.lower().startswith("bearer "):
			token = header[7:].strip()
	if token:
		try:
			return verify_access_jwt(token)
		except HTTPException as exc:
			raise ConnectionRefusedError(exc.detail) from exc
	user_id = payload.get("userId") or _scope_header(scope, "x-user-id")
	if settings.is_dev() and user_id:
		return AuthenticatedUser(id=str(user_id))
	raise ConnectionRefusedError("unauthenticated")
