"""
Identity Gateway

Thin adapter over Supabase Auth. Turns auth users into ``Identity``
values with a validated role claim; the rest of the core never talks to
the auth API directly and never keeps identity state of its own.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from supabase import AuthApiError, AuthError

from tutor_marketplace.errors import (
    AuthenticationError,
    TransportError,
    ValidationError,
    translate_store_error,
)
from tutor_marketplace.models import Identity, Role

logger = logging.getLogger(__name__)

EMAIL_NOT_CONFIRMED_MESSAGE = (
    "Please verify your email before logging in. Check your inbox for a confirmation link."
)
VERIFY_EMAIL_MESSAGE = (
    "Account created! Please check your email to verify your account before logging in."
)


@dataclass
class SignInResult:
    identity: Identity
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None


@dataclass
class SignUpResult:
    identity: Identity
    email_verified: bool = False
    message: Optional[str] = None


def split_name(name: str):
    """Split a display name into (first_name, last_name) on the first space."""
    parts = (name or "").split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


class IdentityGateway:
    """Sign-in, sign-up and token resolution against Supabase Auth."""

    def __init__(self, supabase_client):
        self.supabase = supabase_client

    async def sign_in(self, email: str, password: str) -> SignInResult:
        """
        Sign in with email and password.

        Raises:
            AuthenticationError: bad credentials or unconfirmed email
            TransportError: auth service unreachable
        """
        try:
            response = self.supabase.auth.sign_in_with_password({"email": email, "password": password})
        except AuthApiError as e:
            if e.message == "Email not confirmed" or getattr(e, "code", None) == "email_not_confirmed":
                raise AuthenticationError(EMAIL_NOT_CONFIRMED_MESSAGE, code="email_not_confirmed") from e
            raise AuthenticationError(e.message or "Invalid login credentials", code=getattr(e, "code", None)) from e
        except AuthError as e:
            raise TransportError(f"Sign in failed: {e}") from e

        if not response or not response.user:
            raise AuthenticationError("Invalid login credentials")

        identity = await self._identity_for_user(response.user)
        session = response.session
        logger.info(f"✅ [IdentityGateway] Signed in {identity.id[:20]} as {identity.role.value}")
        return SignInResult(
            identity=identity,
            access_token=session.access_token if session else None,
            refresh_token=session.refresh_token if session else None,
        )

    async def sign_up(self, name: str, email: str, password: str, role: Union[Role, str]) -> SignUpResult:
        """
        Register a new student or tutor.

        The name is split into first and last name; both and the role go into
        the user metadata, from which the profiles row is created.
        """
        role = Role.parse(role)
        if not email or not password:
            raise ValidationError("Email and password are required", field="email" if not email else "password")

        first_name, last_name = split_name(name)
        try:
            response = self.supabase.auth.sign_up({
                "email": email,
                "password": password,
                "options": {
                    "data": {
                        "first_name": first_name,
                        "last_name": last_name,
                        "role": role.value,
                    }
                },
            })
        except AuthApiError as e:
            raise ValidationError(e.message or "Sign up failed", field="email") from e
        except AuthError as e:
            raise TransportError(f"Sign up failed: {e}") from e

        if not response or not response.user:
            raise TransportError("Sign up returned no user")

        user = response.user
        identity = Identity(
            id=user.id,
            role=role,
            email=user.email,
            first_name=first_name,
            last_name=last_name,
        )
        verified = getattr(user, "email_confirmed_at", None) is not None
        logger.info(f"✅ [IdentityGateway] Registered {identity.id[:20]} as {role.value} (verified: {verified})")
        return SignUpResult(
            identity=identity,
            email_verified=verified,
            message=None if verified else VERIFY_EMAIL_MESSAGE,
        )

    async def sign_out(self) -> None:
        try:
            self.supabase.auth.sign_out()
        except AuthError as e:
            raise TransportError(f"Sign out failed: {e}") from e

    async def current_session(self) -> Optional[Identity]:
        """Identity of the signed-in user, or None."""
        try:
            session = self.supabase.auth.get_session()
        except AuthError as e:
            raise TransportError(f"Could not read auth session: {e}") from e
        if not session or not session.user:
            return None
        return await self._identity_for_user(session.user)

    async def resend_confirmation_email(self, email: str) -> Dict[str, Any]:
        try:
            self.supabase.auth.resend({"type": "signup", "email": email})
        except AuthApiError as e:
            raise ValidationError(e.message or "Could not resend confirmation email", field="email") from e
        except AuthError as e:
            raise TransportError(f"Resend failed: {e}") from e
        return {"success": True}

    async def identity_from_token(self, token: str) -> Identity:
        """
        Resolve a bearer token to an Identity.

        Raises:
            AuthenticationError: token invalid or expired
            TransportError: auth service unreachable
        """
        try:
            response = self.supabase.auth.get_user(token)
        except AuthApiError as e:
            logger.warning(f"⚠️ [IdentityGateway] Token rejected: {e}")
            raise AuthenticationError("Invalid or expired token") from e
        except AuthError as e:
            logger.warning(f"⚠️ [IdentityGateway] Could not validate token: {e}")
            raise TransportError(f"Token validation failed: {e}") from e

        if not response or not response.user:
            raise AuthenticationError("Invalid or expired token")
        return await self._identity_for_user(response.user)

    async def _identity_for_user(self, user) -> Identity:
        """Read the role claim from the user's profile row (metadata as fallback)."""
        try:
            result = self.supabase.table('profiles') \
                .select('id, first_name, last_name, role') \
                .eq('id', user.id) \
                .limit(1) \
                .execute()
        except Exception as e:
            raise translate_store_error(e, "Load profile") from e

        profile = result.data[0] if result.data else {}
        metadata = getattr(user, "user_metadata", None) or {}
        raw_role = profile.get("role") or metadata.get("role")
        if not raw_role:
            raise ValidationError("User has no role claim", field="role")

        return Identity(
            id=user.id,
            role=Role.parse(raw_role),
            email=getattr(user, "email", None),
            first_name=profile.get("first_name") or metadata.get("first_name"),
            last_name=profile.get("last_name") or metadata.get("last_name"),
        )
