"""
Session management.

AuthManager tracks who is signed in: either a Supabase Auth user or the
admin bypass, a locally fabricated admin session used for demos. The
bypass record is persisted through an injected SessionStore so it
survives restarts, and always wins over a remote session on restore.
"""

import asyncio
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import ValidationError as ModelValidationError

from clinicrm.db.client import SupabaseClient
from clinicrm.db.repositories import ProfileRepository
from clinicrm.errors import AuthenticationError, AuthorizationError, CRMError
from clinicrm.events import BYPASS_CHANGED, EventBus
from clinicrm.logging import get_logger
from clinicrm.models import Profile, SessionInfo, UserRole
from clinicrm.notify import Notifier
from clinicrm.storage.session import SessionStore

logger = get_logger(__name__)

# Reserved demo credentials that route to the admin bypass
DEMO_ADMIN_EMAIL = "admin@example.com"
DEMO_ADMIN_PASSWORD = "demo"
DEMO_ADMIN_NAME = "Admin User"

# Id of the admin profile fabricated when the remote store is unusable
STATIC_ADMIN_ID = "admin-bypass"


class AuthState(str, Enum):
  UNAUTHENTICATED = "unauthenticated"
  AUTHENTICATING = "authenticating"
  AUTHENTICATED = "authenticated"
  BYPASS = "bypass"


def static_admin_profile() -> Profile:
  """The in-memory admin used when no demo admin profile can be stored."""
  return Profile(
    id=STATIC_ADMIN_ID,
    name=DEMO_ADMIN_NAME,
    email=DEMO_ADMIN_EMAIL,
    role=UserRole.ADMIN,
  )


def scope_filters_for(profile: Optional[Profile]) -> dict:
  """
  Row filters limiting patient visibility for a profile.

  Admins see everything; doctors see the patients assigned to them.

  Raises:
    AuthorizationError: If there is no profile or its role is unknown.
  """
  if profile is None:
    raise AuthorizationError("No profile is available for the current session")
  if profile.role == UserRole.ADMIN:
    return {}
  if profile.role == UserRole.DOCTOR:
    return {"doctor_id": profile.id}
  raise AuthorizationError(f"Unknown role: {profile.role}", role=str(profile.role))


def _session_from_auth(user, session) -> SessionInfo:
  expires_at = None
  if session is not None and getattr(session, "expires_at", None):
    expires_at = datetime.fromtimestamp(session.expires_at, tz=timezone.utc)
  return SessionInfo(
    user_id=user.id,
    email=user.email,
    access_token=session.access_token if session is not None else "",
    refresh_token=session.refresh_token if session is not None else "",
    expires_at=expires_at,
  )


class AuthManager:
  """
  Sign-in state machine.

  States: unauthenticated -> authenticating -> authenticated, or bypass
  via the reserved demo credentials / `bypass_auth()`.
  """

  def __init__(
    self,
    client: SupabaseClient,
    profiles: ProfileRepository,
    session_store: SessionStore,
    events: Optional[EventBus] = None,
    notifier: Optional[Notifier] = None,
  ):
    self.client = client
    self.profiles = profiles
    self.session_store = session_store
    self.events = events
    self.notifier = notifier

    self.state = AuthState.UNAUTHENTICATED
    self.user: Optional[dict] = None
    self.profile: Optional[Profile] = None
    self.session: Optional[SessionInfo] = None

  # ---------------------------------------------------------------------------
  # State
  # ---------------------------------------------------------------------------

  @property
  def is_authenticated(self) -> bool:
    """True with a signed-in user or a persisted bypass record."""
    return self.user is not None or self.session_store.get() is not None

  @property
  def is_bypass(self) -> bool:
    return self.state == AuthState.BYPASS

  def scope_filters(self) -> dict:
    return scope_filters_for(self.profile)

  def _reset(self) -> None:
    self.state = AuthState.UNAUTHENTICATED
    self.user = None
    self.profile = None
    self.session = None

  def _publish_bypass(self, active: bool) -> None:
    if self.events is not None:
      self.events.publish(BYPASS_CHANGED, {"active": active})

  def _notify(self, level: str, message: str) -> None:
    if self.notifier is not None:
      getattr(self.notifier, level)(message)

  # ---------------------------------------------------------------------------
  # Transitions
  # ---------------------------------------------------------------------------

  async def login(self, email: str, password: str) -> Optional[Profile]:
    """
    Sign in with email and password.

    Returns:
      The user's profile, or None if it could not be loaded.

    Raises:
      AuthenticationError: If the identity provider rejects the sign-in.
    """
    if email == DEMO_ADMIN_EMAIL and password == DEMO_ADMIN_PASSWORD:
      return await self.bypass_auth()

    self.state = AuthState.AUTHENTICATING
    try:
      response = await asyncio.to_thread(self.client.sign_in, email, password)
      user = getattr(response, "user", None)
      if user is None:
        raise AuthenticationError("Invalid credentials", email=email)
    except AuthenticationError as e:
      self._reset()
      self._notify("error", f"Sign-in failed: {e.message}")
      raise
    except Exception as e:
      self._reset()
      logger.error(f"Sign-in for {email} failed: {e}")
      self._notify("error", f"Sign-in failed: {e}")
      raise AuthenticationError(str(e), email=email) from e

    self.user = {"id": user.id, "email": user.email}
    self.session = _session_from_auth(user, getattr(response, "session", None))
    self.state = AuthState.AUTHENTICATED
    logger.info(f"Signed in as {email}")

    await self._load_profile(user.id)
    self._notify("success", f"Signed in as {email}")
    return self.profile

  async def bypass_auth(self) -> Profile:
    """
    Start an admin bypass session without contacting the identity provider.

    The demo admin profile is looked up (or created) remotely; any
    failure falls back to a static in-memory admin.
    """
    try:
      profile = await self.profiles.get_by_email(DEMO_ADMIN_EMAIL)
      if profile is None:
        profile = await self.profiles.create(Profile(
          id=str(uuid4()),
          name=DEMO_ADMIN_NAME,
          email=DEMO_ADMIN_EMAIL,
          role=UserRole.ADMIN,
        ))
    except Exception as e:
      logger.warning(f"Demo admin profile unavailable, using a static profile: {e}")
      profile = static_admin_profile()

    if profile.role != UserRole.ADMIN:
      profile = profile.model_copy(update={"role": UserRole.ADMIN})

    self.session_store.set(profile.model_dump(mode="json"))
    self.profile = profile
    self.user = None
    self.session = SessionInfo(user_id=profile.id, email=profile.email, bypass=True)
    self.state = AuthState.BYPASS
    logger.info("Admin bypass session started")

    self._publish_bypass(True)
    self._notify("success", "Signed in with admin bypass")
    return profile

  async def logout(self) -> None:
    """End the session. A bypass session never calls remote sign-out."""
    if self.session_store.get() is not None:
      self.session_store.clear()
      self._reset()
      logger.info("Admin bypass session ended")
      self._publish_bypass(False)
      return

    try:
      await asyncio.to_thread(self.client.sign_out)
    except Exception as e:
      logger.warning(f"Remote sign-out failed: {e}")
    self._reset()
    logger.info("Signed out")

  async def restore(self) -> Optional[Profile]:
    """
    Resume a session at startup.

    A persisted bypass record wins; otherwise the remote session is
    restored if the identity provider still has one.
    """
    record = self.session_store.get()
    if record is not None:
      try:
        profile = Profile.model_validate(record)
      except ModelValidationError as e:
        logger.warning(f"Discarding malformed bypass record: {e}")
        self.session_store.clear()
      else:
        self.profile = profile
        self.session = SessionInfo(user_id=profile.id, email=profile.email, bypass=True)
        self.state = AuthState.BYPASS
        logger.info("Restored admin bypass session")
        return profile

    try:
      session = await asyncio.to_thread(self.client.get_session)
    except Exception as e:
      logger.warning(f"Could not restore remote session: {e}")
      return None

    user = getattr(session, "user", None) if session is not None else None
    if user is None:
      return None

    self.user = {"id": user.id, "email": user.email}
    self.session = _session_from_auth(user, session)
    self.state = AuthState.AUTHENTICATED
    logger.info(f"Restored session for {user.email}")
    await self._load_profile(user.id)
    return self.profile

  async def _load_profile(self, user_id: str) -> None:
    try:
      self.profile = await self.profiles.get_by_id(user_id)
    except CRMError as e:
      self.profile = None
      logger.warning(f"Profile lookup for {user_id} failed: {e}")
      self._notify("warning", "Signed in, but your profile could not be loaded")
      return

    if self.profile is None:
      logger.warning(f"No profile found for user {user_id}")
      self._notify("warning", "Signed in, but no profile exists for this account")
