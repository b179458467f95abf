"""
Authentication dependencies for FastAPI routes.

Bearer tokens are verified by the auth provider; the role comes from the
caller's profile row.
"""

import logging
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from broad.database.db import get_db_session
from broad.database.models import ProfileRole
from broad.services import profile_service
from broad.services.auth_service import AuthProviderError, SupabaseAuthClient, get_auth_client
from broad.utils.errors import ApiError, ForbiddenError, NotFoundError, UnauthorizedError

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


async def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    auth_client: SupabaseAuthClient = Depends(get_auth_client),
) -> dict:
    """
    Dependency resolving the bearer token to the provider identity.

    Does not require a profile row; used by the routes that create one.

    Returns:
        Dict with id, email and phone

    Raises:
        UnauthorizedError: If the header is missing or malformed, or the
            provider rejects the token
    """
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("Missing or invalid authorization header")

    try:
        user = await auth_client.get_user(credentials.credentials)
    except AuthProviderError as e:
        logger.info(f"Token rejected by auth provider: {e.message}")
        raise UnauthorizedError("Invalid or expired token")

    if not user or not user.get("id"):
        raise UnauthorizedError("Invalid or expired token")

    return {"id": user["id"], "email": user.get("email"), "phone": user.get("phone")}


async def _with_role(session: AsyncSession, identity: dict) -> dict:
    role = await profile_service.get_profile_role(session, identity["id"])
    if role is None:
        raise NotFoundError("User profile not found", code="PROFILE_NOT_FOUND")
    return {**identity, "role": role}


async def get_current_user(
    identity: dict = Depends(get_current_identity),
    session: AsyncSession = Depends(get_db_session),
) -> dict:
    """
    Dependency for required authentication.

    Returns:
        Dict with id, email, phone and role

    Raises:
        UnauthorizedError: If the token is missing or invalid
        NotFoundError: ``PROFILE_NOT_FOUND`` if the identity has no profile
    """
    return await _with_role(session, identity)


async def get_current_user_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    session: AsyncSession = Depends(get_db_session),
    auth_client: SupabaseAuthClient = Depends(get_auth_client),
) -> Optional[dict]:
    """
    Optional dependency to get the current authenticated user.
    Returns None if no token is provided or anything about it fails.
    """
    if credentials is None:
        return None

    try:
        identity = await get_current_identity(credentials, auth_client)
        return await _with_role(session, identity)
    except ApiError:
        return None


def require_role(*roles: str):
    """
    Build a dependency that admits only users whose role is in ``roles``.

    401 without a valid token, 403 when the role is not allowed.
    """
    allowed = {r.value if isinstance(r, ProfileRole) else r for r in roles}

    async def dependency(user: dict = Depends(get_current_user)) -> dict:
        if user["role"] not in allowed:
            raise ForbiddenError("Insufficient permissions")
        return user

    return dependency


require_admin = require_role(ProfileRole.ADMIN)
