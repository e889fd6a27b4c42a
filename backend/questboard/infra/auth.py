"""Authentication helpers for FastAPI endpoints.

- Bearer JWTs are verified (HS256) using settings.secret_key.
- Dev headers (X-User-Id) are only respected in development.
- Read endpoints that also serve anonymous visitors use get_optional_user.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from questboard.infra import jwt as jwt_helper
from questboard.settings import settings


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	handle: Optional[str] = None
	display_name: Optional[str] = None
	session_id: Optional[str] = None

	@property
	def uuid(self) -> UUID:
		return UUID(self.id)


_bearer_scheme = HTTPBearer(auto_error=False)


def _invalid_token() -> HTTPException:
	return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")


def _checked_user_id(raw: str) -> str:
	try:
		return str(UUID(raw.strip()))
	except (ValueError, AttributeError):
		raise _invalid_token() from None


def verify_access_jwt(token: str) -> AuthenticatedUser:
	"""Decode and validate an access JWT and return an AuthenticatedUser.

	The ``sub`` claim must be the user's UUID.
	"""
	try:
		payload = jwt_helper.decode_access(token)
	except Exception:
		# Normalise all decode failures to invalid_token for the API surface
		raise _invalid_token()

	user_id = _checked_user_id(str(payload.get("sub") or ""))
	handle = payload.get("handle")
	display_name = payload.get("name") or payload.get("display_name")
	session_id = payload.get("sid")
	return AuthenticatedUser(
		id=user_id,
		handle=str(handle) if handle is not None else None,
		display_name=str(display_name) if display_name is not None else None,
		session_id=str(session_id).strip() if session_id is not None else None,
	)


async def get_optional_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> Optional[AuthenticatedUser]:
	"""Resolve the caller when one is presented, else None.

	A presented but invalid bearer token is still rejected.
	"""
	if credentials and credentials.scheme.lower() == "bearer":
		return verify_access_jwt(credentials.credentials)
	# In dev only, allow X-User-Id fallback for local tools
	if settings.is_dev() and x_user_id:
		return AuthenticatedUser(id=_checked_user_id(x_user_id))
	return None


async def get_current_user(
	user: Optional[AuthenticatedUser] = Depends(get_optional_user),
) -> AuthenticatedUser:
	"""Resolve the authenticated user or fail with 401."""
	if user is None:
		raise _invalid_token()
	return user
