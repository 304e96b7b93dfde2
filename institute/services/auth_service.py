from typing import Any, Callable, Iterable, Optional, Tuple

from supabase import AsyncClient, AuthError

from institute.config.settings import Settings, settings as default_settings
from institute.schemas.auth_schemas import AuthUser
from institute.utils.errors import AuthenticationError
from institute.utils.logging import get_logger
from institute.utils.warning_registry import WarningRegistry

logger = get_logger()

OWNER_ROLE = "owner"
LIMITED_ROLE = "limited"
# dynamic role given to limited users that carry none
DEFAULT_LIMITED_APP_ROLE = "role-frontdesk"


def _normalize_emails(emails: Iterable[str]) -> set:
    return {e.strip().lower() for e in emails or [] if e and e.strip()}


def resolve_role(
    email: Optional[str],
    metadata: Optional[dict],
    owner_emails: Iterable[str] = (),
    limited_emails: Iterable[str] = (),
) -> Tuple[Optional[str], Optional[str]]:
    """
    Resolve `(role, app_role_id)` for a user.

    Metadata claims win; otherwise the configured owner / limited email lists
    decide the role, and limited users default to the front-desk role.
    """
    metadata = metadata or {}
    role = metadata.get("role") or None
    app_role_id = metadata.get("appRoleId") or metadata.get("app_role_id") or None
    address = (email or "").strip().lower()

    if not role and address:
        if address in _normalize_emails(owner_emails):
            role = OWNER_ROLE
        elif address in _normalize_emails(limited_emails):
            role = LIMITED_ROLE
    if not app_role_id and address and address in _normalize_emails(limited_emails):
        app_role_id = DEFAULT_LIMITED_APP_ROLE
    return role, app_role_id


def is_owner(user: Optional[AuthUser], owner_emails: Iterable[str] = ()) -> bool:
    if user is None:
        return False
    if user.role == OWNER_ROLE or user.user_metadata.get("role") == OWNER_ROLE:
        return True
    return bool(user.email) and user.email.strip().lower() in _normalize_emails(owner_emails)


def map_role_to_claim(role: str) -> str:
    """Collapse a requested role into the coarse claim stored on the user."""
    value = str(role).lower()
    if value in ("owner", "admin") or "role-owner" in value or "role-admin" in value:
        return OWNER_ROLE
    return LIMITED_ROLE


def auth_user_from_supabase(
    user: Any, access_token: Optional[str] = None, settings: Settings = default_settings
) -> Optional[AuthUser]:
    """Map a Supabase auth user object into `AuthUser`"""
    if user is None:
        return None
    email = getattr(user, "email", None)
    metadata = dict(getattr(user, "user_metadata", None) or {})
    role, app_role_id = resolve_role(
        email, metadata, settings.OWNER_EMAILS, settings.LIMITED_EMAILS
    )
    return AuthUser(
        id=str(user.id),
        email=email,
        role=role,
        app_role_id=app_role_id,
        access_token=access_token,
        user_metadata=metadata,
    )


class AuthService:
    """Session handling on top of the Supabase identity service"""

    def __init__(
        self,
        client: Optional[AsyncClient],
        settings: Settings = default_settings,
        warnings: Optional[WarningRegistry] = None,
    ):
        self.client = client
        self.settings = settings
        self.warnings = warnings or WarningRegistry()

    def configured(self) -> bool:
        if self.client is None:
            self.warnings.warn_once(
                "identity-service", "Supabase auth is not configured; sessions are unavailable"
            )
            return False
        return True

    def _from_session(self, session: Any) -> Optional[AuthUser]:
        if session is None:
            return None
        return auth_user_from_supabase(
            session.user, access_token=session.access_token, settings=self.settings
        )

    async def get_session(self) -> Optional[AuthUser]:
        """Current signed-in user, or None"""
        if not self.configured():
            return None
        try:
            session = await self.client.auth.get_session()
        except AuthError as e:
            logger.warning(f"Session lookup failed: {e}")
            return None
        return self._from_session(session)

    async def sign_in(self, email: str, password: str) -> Optional[AuthUser]:
        """
        Sign in with email and password, signing up when sign-in fails.

        Returns None when the account was created but still needs email
        confirmation. Raises AuthenticationError when both attempts fail.
        """
        if not self.configured():
            raise AuthenticationError("Authentication is not configured", "AUTH_NOT_CONFIGURED")

        credentials = {"email": email, "password": password}
        try:
            response = await self.client.auth.sign_in_with_password(credentials)
            return self._from_session(response.session)
        except AuthError as e:
            logger.info(f"Sign-in failed for {email}, trying sign-up: {e}")

        try:
            response = await self.client.auth.sign_up(credentials)
        except AuthError as e:
            raise AuthenticationError(
                getattr(e, "message", None) or "Check your email/password",
                "INVALID_CREDENTIALS",
            )
        if response.session is None:
            logger.info(f"Account {email} created; email confirmation pending")
            return None
        return self._from_session(response.session)

    async def sign_out(self) -> None:
        if not self.configured():
            return
        await self.client.auth.sign_out()

    def on_auth_state_change(
        self, callback: Callable[[str, Optional[AuthUser]], None]
    ) -> Callable[[], None]:
        """Subscribe to sign-in/sign-out/refresh events; returns the unsubscribe function."""
        if not self.configured():
            return lambda: None

        def handler(event, session) -> None:
            callback(str(event), self._from_session(session))

        subscription = self.client.auth.on_auth_state_change(handler)
        return subscription.unsubscribe

    async def get_user(self, token: str) -> Optional[AuthUser]:
        """User owning a bearer token, or None when the token is invalid"""
        if not token or not self.configured():
            return None
        try:
            response = await self.client.auth.get_user(token)
        except AuthError as e:
            logger.info(f"Rejected bearer token: {e}")
            return None
        if response is None:
            return None
        return auth_user_from_supabase(response.user, access_token=token, settings=self.settings)

    def is_owner(self, user: Optional[AuthUser]) -> bool:
        return is_owner(user, self.settings.OWNER_EMAILS)
