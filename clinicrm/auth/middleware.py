"""
Auth dependencies for FastAPI.

Requests may carry a Supabase access token as a bearer credential; without
one, the server's own AuthManager session (including the admin bypass)
is used.
"""

import asyncio
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError

from clinicrm.auth.session import AuthManager, scope_filters_for
from clinicrm.db.client import get_config
from clinicrm.errors import CRMError
from clinicrm.logging import get_logger
from clinicrm.models import BYPASS_TOKEN, Profile, UserRole

logger = get_logger(__name__)

ALGORITHM = "HS256"
AUDIENCE = "authenticated"

# HTTP Bearer scheme for Authorization header
security = HTTPBearer(auto_error=False)

_provider: Optional[Callable[[], AuthManager]] = None


@dataclass
class Identity:
  """The caller of a request."""
  id: str
  email: Optional[str] = None
  role: Optional[UserRole] = None
  profile: Optional[Profile] = None
  bypass: bool = False

  @property
  def is_admin(self) -> bool:
    return self.role == UserRole.ADMIN

  def scope_filters(self) -> dict:
    return scope_filters_for(self.profile)

  @classmethod
  def from_profile(cls, profile: Profile, bypass: bool = False) -> "Identity":
    return cls(id=profile.id, email=profile.email, role=profile.role, profile=profile, bypass=bypass)


def set_auth_manager_provider(provider: Optional[Callable[[], AuthManager]]) -> None:
  """Resolve the manager lazily, e.g. from an application context."""
  global _provider
  _provider = provider


def get_auth_manager() -> AuthManager:
  if _provider is not None:
    return _provider()
  raise HTTPException(
    status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
    detail="Authentication is not configured"
  )


def decode_token(token: str, manager: AuthManager) -> dict:
  """
  Verify a Supabase access token and return its claims.

  With SUPABASE_JWT_SECRET set the signature is checked locally;
  otherwise Supabase Auth is asked who the token belongs to.
  """
  if token == BYPASS_TOKEN:
    raise HTTPException(
      status_code=status.HTTP_401_UNAUTHORIZED,
      detail="Bypass sessions do not carry a valid token"
    )

  secret = get_config().jwt_secret
  if secret:
    try:
      claims = jwt.decode(token, secret, algorithms=[ALGORITHM], audience=AUDIENCE)
    except JWTError as e:
      raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=f"Token validation failed: {e}"
      )
    return {"sub": claims.get("sub"), "email": claims.get("email")}

  try:
    user_response = manager.client.get_user(token)
  except Exception as e:
    raise HTTPException(
      status_code=status.HTTP_401_UNAUTHORIZED,
      detail=f"Token validation failed: {e}"
    )

  if not user_response or not user_response.user:
    raise HTTPException(
      status_code=status.HTTP_401_UNAUTHORIZED,
      detail="Invalid or expired token"
    )
  return {"sub": user_response.user.id, "email": user_response.user.email}


async def get_current_identity(
  credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
  manager: AuthManager = Depends(get_auth_manager),
) -> Identity:
  """
  Dependency to get the caller's identity.

  Raises 401 if there is neither a valid token nor an active session.
  """
  if credentials:
    claims = await asyncio.to_thread(decode_token, credentials.credentials, manager)
    try:
      profile = await manager.profiles.get_by_id(claims["sub"])
    except CRMError as e:
      logger.warning(f"Profile lookup for {claims['sub']} failed: {e}")
      profile = None
    if profile is not None:
      return Identity.from_profile(profile)
    return Identity(id=claims["sub"], email=claims["email"])

  if manager.is_authenticated and manager.profile is not None:
    return Identity.from_profile(manager.profile, bypass=manager.is_bypass)
  if manager.user is not None:
    return Identity(id=manager.user["id"], email=manager.user.get("email"))

  raise HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Authentication required",
    headers={"WWW-Authenticate": "Bearer"},
  )


async def get_admin_identity(
  identity: Identity = Depends(get_current_identity)
) -> Identity:
  """
  Dependency to require admin role.

  Raises 403 if the caller is not an admin.
  """
  if not identity.is_admin:
    raise HTTPException(
      status_code=status.HTTP_403_FORBIDDEN,
      detail="Admin access required"
    )
  return identity
