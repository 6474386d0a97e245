"""
Authentication utilities: bearer token -> Identity
"""
from typing import Optional

from fastapi import Depends, Header, HTTPException

from tutor_marketplace.errors import AuthenticationError, MarketplaceError
from tutor_marketplace.identity_gateway import IdentityGateway
from tutor_marketplace.models import Identity, Role

from .logger import get_logger
from .supabase_client import get_supabase_client

logger = get_logger("backend.auth")


def get_identity_gateway() -> IdentityGateway:
    """Gateway for token validation (service-role client)"""
    return IdentityGateway(get_supabase_client())


async def get_current_user(
    authorization: Optional[str] = Header(None),
    gateway: IdentityGateway = Depends(get_identity_gateway),
) -> Identity:
    """
    Validate the bearer token and return the caller's identity

    Args:
        authorization: Bearer token from Authorization header

    Returns:
        Identity with a validated role claim

    Raises:
        HTTPException: If token is missing, invalid or the profile has no valid role
    """
    if not authorization:
        raise HTTPException(status_code=401, detail="Authorization header required")

    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Invalid authorization header format")

    token = authorization.replace("Bearer ", "", 1)

    try:
        return await gateway.identity_from_token(token)
    except AuthenticationError as e:
        raise HTTPException(status_code=401, detail=e.message) from e
    except MarketplaceError as e:
        logger.warning("Could not resolve identity", data={"error": e.message, "code": e.code})
        raise HTTPException(status_code=e.status_code, detail=e.message) from e


def require_role(user: Identity, role: Role) -> Identity:
    """
    Check the caller's role claim

    Raises:
        HTTPException: If the caller has a different role
    """
    if user.role is not role:
        raise HTTPException(status_code=403, detail=f"{role.value.capitalize()} access required")
    return user


async def require_student(user: Identity = Depends(get_current_user)) -> Identity:
    return require_role(user, Role.STUDENT)


async def require_tutor(user: Identity = Depends(get_current_user)) -> Identity:
    return require_role(user, Role.TUTOR)
