"""Profile route handlers."""

import logging
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from broad.api.auth_dependencies import (
    get_current_identity,
    get_current_user,
    get_current_user_optional,
    require_admin,
)
from broad.api.routes import pagination_params
from broad.database.db import get_db_session
from broad.database.models import ProfileRole
from broad.models.schemas import (
    AvailabilityUpdate,
    LocationUpdate,
    PaginationParams,
    ProfileCreate,
    ProfileUpdate,
    RoleUpdate,
)
from broad.services import profile_service
from broad.services.auth_service import AuthProviderError, SupabaseAuthClient, get_auth_client
from broad.utils.errors import ApiError, ForbiddenError, InternalError
from broad.utils.response import create_pagination_meta, success_response

logger = logging.getLogger(__name__)
router = APIRouter()


def _ensure_self(profile_id: UUID, user: dict) -> None:
    if str(profile_id) != str(user["id"]):
        raise ForbiddenError("You can only modify your own profile")


async def _sync_display_name(
    auth_client: SupabaseAuthClient, user_id: str, display_name: Optional[str]
) -> None:
    """Mirror the display name into the provider's user metadata. Failures are only logged."""
    if not display_name:
        return
    try:
        await auth_client.update_user_metadata(user_id, {"display_name": display_name})
    except AuthProviderError as e:
        logger.warning(f"Failed to sync display name for {user_id}: {e.message}")


@router.get("/api/profiles/me", response_model=Dict[str, Any])
async def get_my_profile(
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Get the caller's profile."""
    try:
        profile = await profile_service.get_profile_by_id(session, user["id"])
        return success_response(profile)
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error getting current profile: {str(e)}", exc_info=True)
        raise InternalError()


@router.get("/api/profiles/nearby", response_model=Dict[str, Any])
async def get_nearby_profiles(
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    radius: float = Query(10, ge=1, le=100, description="Search radius in km"),
    limit: int = Query(20, ge=1, le=100),
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Available riders near a point, nearest first."""
    try:
        profiles = await profile_service.find_nearby_profiles(
            session, latitude, longitude, radius_km=radius, limit=limit
        )
        return success_response(profiles)
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error finding nearby profiles: {str(e)}", exc_info=True)
        raise InternalError()


@router.get("/api/profiles", response_model=Dict[str, Any])
async def search_profiles(
    display_name: Optional[str] = Query(None, description="Matches handle or display name"),
    role: Optional[ProfileRole] = None,
    pagination: PaginationParams = Depends(pagination_params),
    user: Optional[dict] = Depends(get_current_user_optional),
    session: AsyncSession = Depends(get_db_session),
):
    """Search profiles by handle or display name."""
    try:
        profiles, total = await profile_service.search_profiles(
            session,
            query=display_name,
            role=role.value if role else None,
            page=pagination.page,
            limit=pagination.limit,
        )
        return success_response(
            profiles, meta=create_pagination_meta(pagination.page, pagination.limit, total)
        )
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error searching profiles: {str(e)}", exc_info=True)
        raise InternalError()


@router.get("/api/profiles/{profile_id}", response_model=Dict[str, Any])
async def get_profile(
    profile_id: UUID,
    user: Optional[dict] = Depends(get_current_user_optional),
    session: AsyncSession = Depends(get_db_session),
):
    """Get a profile by id."""
    try:
        return success_response(await profile_service.get_profile_by_id(session, profile_id))
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error getting profile {profile_id}: {str(e)}", exc_info=True)
        raise InternalError()


@router.post("/api/profiles", response_model=Dict[str, Any], status_code=201)
async def create_profile(
    payload: ProfileCreate,
    identity: dict = Depends(get_current_identity),
    session: AsyncSession = Depends(get_db_session),
    auth_client: SupabaseAuthClient = Depends(get_auth_client),
):
    """Create the caller's profile. 409 if it already exists."""
    try:
        data = payload.to_api_dict()
        if not data.get("phoneNumber") and identity.get("phone"):
            data["phoneNumber"] = identity["phone"]
        profile = await profile_service.create_profile(session, identity["id"], data)
        await _sync_display_name(auth_client, identity["id"], profile["displayName"])
        return success_response(profile)
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error creating profile: {str(e)}", exc_info=True)
        raise InternalError()


@router.patch("/api/profiles/{profile_id}", response_model=Dict[str, Any])
async def update_profile(
    profile_id: UUID,
    payload: ProfileUpdate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
    auth_client: SupabaseAuthClient = Depends(get_auth_client),
):
    """Update the caller's profile. Only sent fields change."""
    try:
        _ensure_self(profile_id, user)
        data = payload.to_api_dict()
        profile = await profile_service.update_profile(session, profile_id, data)
        if "displayName" in data:
            await _sync_display_name(auth_client, user["id"], profile["displayName"])
        return success_response(profile)
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error updating profile {profile_id}: {str(e)}", exc_info=True)
        raise InternalError()


@router.patch("/api/profiles/{profile_id}/location", response_model=Dict[str, Any])
async def update_location(
    profile_id: UUID,
    payload: LocationUpdate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Update the caller's last known coordinates."""
    try:
        _ensure_self(profile_id, user)
        profile = await profile_service.update_location(
            session, profile_id, payload.latitude, payload.longitude
        )
        return success_response(profile)
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error updating location for {profile_id}: {str(e)}", exc_info=True)
        raise InternalError()


@router.patch("/api/profiles/{profile_id}/availability", response_model=Dict[str, Any])
async def update_availability(
    profile_id: UUID,
    payload: AvailabilityUpdate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Toggle whether the caller shows up in nearby searches."""
    try:
        _ensure_self(profile_id, user)
        profile = await profile_service.update_availability(
            session, profile_id, payload.is_available
        )
        return success_response(profile)
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error updating availability for {profile_id}: {str(e)}", exc_info=True)
        raise InternalError()


@router.patch("/api/profiles/{profile_id}/role", response_model=Dict[str, Any])
async def update_role(
    profile_id: UUID,
    payload: RoleUpdate,
    admin: dict = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Change a profile's role (admin only)."""
    try:
        return success_response(await profile_service.update_role(session, profile_id, payload.role))
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error updating role for {profile_id}: {str(e)}", exc_info=True)
        raise InternalError()


@router.delete("/api/profiles/{profile_id}", status_code=204)
async def delete_profile(
    profile_id: UUID,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Delete the caller's profile."""
    try:
        await profile_service.get_profile_by_id(session, profile_id)
        _ensure_self(profile_id, user)
        await profile_service.delete_profile(session, profile_id)
        return Response(status_code=204)
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error deleting profile {profile_id}: {str(e)}", exc_info=True)
        raise InternalError()
