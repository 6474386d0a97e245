"""
Marketplace error taxonomy.

Every core operation either returns its result or raises exactly one of the
errors below. Each error carries the HTTP status the API layer answers with.
"""

from typing import Any, Dict, Optional

import httpx
from postgrest.exceptions import APIError


class MarketplaceError(Exception):
    """Base class for all marketplace errors."""

    status_code = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "code": self.code, "details": self.details}


class ValidationError(MarketplaceError):
    """Malformed or out-of-range input, raised before any store call."""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        if field:
            details["field"] = field
        super().__init__(message, details=details)
        self.field = field


class AuthenticationError(MarketplaceError):
    """Credentials or bearer token rejected by the identity provider."""

    status_code = 401


class AuthorizationError(MarketplaceError):
    """Acting identity has no rights over the target record."""

    status_code = 403


class NotFoundError(MarketplaceError):
    """Referenced record does not exist."""

    status_code = 404


class ConflictError(MarketplaceError):
    """Optimistic-concurrency or immutability violation."""

    status_code = 409


class InvalidTransitionError(MarketplaceError):
    """Requested status change is not in the transition table."""

    status_code = 409

    def __init__(self, current: str, requested: str, actor_role: Optional[str] = None):
        message = f"Cannot move session from '{current}' to '{requested}'"
        if actor_role:
            message += f" as {actor_role}"
        super().__init__(message, details={"current": current, "requested": requested})
        self.current = current
        self.requested = requested


class PreconditionError(MarketplaceError):
    """A time-based or data-dependent gate is not met."""

    status_code = 422


class TransportError(MarketplaceError):
    """Backing store or identity provider call failed. Never retried internally."""

    status_code = 503


# PostgreSQL / PostgREST error codes the store can hit.
UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"
NO_ROWS = "PGRST116"


def translate_store_error(exc: Exception, action: str) -> MarketplaceError:
    """Map a backing-store exception to the marketplace taxonomy."""
    if isinstance(exc, MarketplaceError):
        return exc
    if isinstance(exc, APIError):
        code = str(exc.code or "")
        details = {"action": action, "store_code": code}
        if code == UNIQUE_VIOLATION:
            return ConflictError(f"{action}: record already exists", details=details)
        if code == FOREIGN_KEY_VIOLATION:
            return NotFoundError(f"{action}: referenced record does not exist", details=details)
        if code == NO_ROWS:
            return NotFoundError(f"{action}: record not found", details=details)
        return TransportError(f"{action} failed: {exc.message}", details=details)
    if isinstance(exc, httpx.HTTPError):
        return TransportError(f"{action} failed: {exc}", details={"action": action})
    return TransportError(f"{action} failed: {type(exc).__name__}: {exc}", details={"action": action})
