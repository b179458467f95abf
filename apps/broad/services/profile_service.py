"""
Profile service: lookup, search, nearby discovery and updates.

A profile's id is the auth provider's identity id, so creation takes the
caller's identity id rather than generating one.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from broad.database.models import Profile
from broad.utils.errors import (
    ConflictError,
    NotFoundError,
    commit_or_conflict,
    storage_errors,
)
from broad.utils.field_mapping import PROFILE_FIELDS, as_uuid
from broad.utils.geo_utils import calculate_distance_km
from broad.utils.response import page_offset

logger = logging.getLogger(__name__)

# Columns a profile owner can never write through update_profile
PROTECTED_COLUMNS = {"id", "role", "created_at", "updated_at"}

HANDLE_TAKEN = "Handle or phone number is already in use"


def _escape_like(value: str) -> str:
    """Escape LIKE-special characters (%, _) so they match literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


async def _load_profile(session: AsyncSession, profile_id: Any) -> Optional[Profile]:
    pid = as_uuid(profile_id, "Profile")
    with storage_errors("get profile"):
        result = await session.execute(select(Profile).where(Profile.id == pid))
        return result.scalar_one_or_none()


async def _require_profile(session: AsyncSession, profile_id: Any) -> Profile:
    profile = await _load_profile(session, profile_id)
    if profile is None:
        raise NotFoundError.for_resource("Profile")
    return profile


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


async def find_profile_by_id(session: AsyncSession, profile_id: Any) -> Optional[Dict]:
    """Return the profile, or None when it does not exist."""
    try:
        profile = await _load_profile(session, profile_id)
    except NotFoundError:
        return None
    return PROFILE_FIELDS.model_to_api(profile) if profile else None


async def get_profile_by_id(session: AsyncSession, profile_id: Any) -> Dict:
    """
    Get a profile by id.

    Args:
        session: Database session
        profile_id: Profile (identity) id

    Returns:
        Profile dict in API shape

    Raises:
        NotFoundError: If no profile has this id
    """
    return PROFILE_FIELDS.model_to_api(await _require_profile(session, profile_id))


async def get_profile_by_handle(session: AsyncSession, handle: str) -> Dict:
    """Get a profile by its unique handle. Raises NotFoundError when absent."""
    with storage_errors("get profile by handle"):
        result = await session.execute(select(Profile).where(Profile.handle == handle))
        profile = result.scalar_one_or_none()
    if profile is None:
        raise NotFoundError.for_resource("Profile")
    return PROFILE_FIELDS.model_to_api(profile)


async def find_profile_by_phone(session: AsyncSession, phone_number: str) -> Optional[Dict]:
    """Return the profile registered with this phone number, or None."""
    with storage_errors("find profile by phone"):
        result = await session.execute(
            select(Profile).where(Profile.phone_number == phone_number)
        )
        profile = result.scalar_one_or_none()
    return PROFILE_FIELDS.model_to_api(profile) if profile else None


async def get_profile_role(session: AsyncSession, profile_id: Any) -> Optional[str]:
    """Return the profile's role, or None when the profile does not exist."""
    try:
        pid = as_uuid(profile_id, "Profile")
    except NotFoundError:
        return None
    with storage_errors("get profile role"):
        result = await session.execute(select(Profile.role).where(Profile.id == pid))
        return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


async def search_profiles(
    session: AsyncSession,
    query: Optional[str] = None,
    role: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[Dict], int]:
    """
    Search profiles by handle or display name.

    Args:
        session: Database session
        query: Case-insensitive substring matched against handle and display name
        role: Only return profiles with this role
        page: Page number (1-indexed)
        limit: Page size

    Returns:
        Tuple of (profiles for the page, total matching count), newest first
    """
    base = select(Profile)
    if query:
        pattern = f"%{_escape_like(query)}%"
        base = base.where(
            or_(
                Profile.handle.ilike(pattern, escape="\\"),
                Profile.display_name.ilike(pattern, escape="\\"),
            )
        )
    if role:
        base = base.where(Profile.role == role)

    with storage_errors("search profiles"):
        total = (
            await session.execute(select(func.count()).select_from(base.subquery()))
        ).scalar() or 0
        result = await session.execute(
            base.order_by(Profile.created_at.desc())
            .offset(page_offset(page, limit))
            .limit(limit)
        )
        profiles = result.scalars().all()

    return [PROFILE_FIELDS.model_to_api(p) for p in profiles], total


async def find_nearby_profiles(
    session: AsyncSession,
    latitude: float,
    longitude: float,
    radius_km: float = 50.0,
    limit: int = 20,
) -> List[Dict]:
    """
    Return available profiles within ``radius_km`` of a point, nearest first.

    Uses in-Python haversine filtering over profiles that have coordinates.
    Each item carries ``distanceKm``.
    """
    q = select(Profile).where(
        Profile.is_available == True,  # noqa: E712
        Profile.latitude.isnot(None),
        Profile.longitude.isnot(None),
    )
    with storage_errors("find nearby profiles"):
        result = await session.execute(q)
        profiles = result.scalars().all()

    nearby = []
    for profile in profiles:
        distance = calculate_distance_km(latitude, longitude, profile.latitude, profile.longitude)
        if distance <= radius_km:
            item = PROFILE_FIELDS.model_to_api(profile)
            item["distanceKm"] = round(distance, 2)
            nearby.append(item)

    nearby.sort(key=lambda p: p["distanceKm"])
    return nearby[:limit]


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


async def create_profile(session: AsyncSession, user_id: Any, data: Dict) -> Dict:
    """
    Create the profile for an identity.

    Args:
        session: Database session
        user_id: Identity id; becomes the profile id
        data: API-shape profile fields (``displayName`` required)

    Returns:
        Created profile dict

    Raises:
        ConflictError: If the identity already has a profile, or the handle or
            phone number is taken
    """
    pid = as_uuid(user_id, "Profile")
    if await _load_profile(session, pid) is not None:
        raise ConflictError("Profile already exists")

    row = PROFILE_FIELDS.to_row(data)
    for column in ("id", "created_at", "updated_at"):
        row.pop(column, None)

    profile = Profile(id=pid, **row)
    session.add(profile)
    await commit_or_conflict(session, "create profile", HANDLE_TAKEN)
    logger.info(f"Created profile {pid}")
    return PROFILE_FIELDS.model_to_api(profile)


async def _apply(session: AsyncSession, profile_id: Any, row: Dict, operation: str) -> Dict:
    profile = await _require_profile(session, profile_id)
    for column, value in row.items():
        setattr(profile, column, value)
    if row:
        await commit_or_conflict(session, operation, HANDLE_TAKEN)
    return PROFILE_FIELDS.model_to_api(profile)


async def update_profile(session: AsyncSession, profile_id: Any, data: Dict) -> Dict:
    """
    Apply a partial update. Only fields present in ``data`` are written.

    ``currentLocation`` is flattened into latitude/longitude. The role cannot
    be changed here (see ``update_role``).
    """
    row = {
        column: value
        for column, value in PROFILE_FIELDS.to_row(data).items()
        if column not in PROTECTED_COLUMNS
    }
    return await _apply(session, profile_id, row, "update profile")


async def update_location(
    session: AsyncSession, profile_id: Any, latitude: float, longitude: float
) -> Dict:
    """Set the profile's last known coordinates."""
    return await _apply(
        session,
        profile_id,
        {"latitude": latitude, "longitude": longitude},
        "update location",
    )


async def update_availability(session: AsyncSession, profile_id: Any, is_available: bool) -> Dict:
    """Set whether the rider shows up in nearby searches."""
    return await _apply(session, profile_id, {"is_available": is_available}, "update availability")


async def update_role(session: AsyncSession, profile_id: Any, role: str) -> Dict:
    """Change a profile's role (admin operation)."""
    profile = await _apply(session, profile_id, {"role": role}, "update role")
    logger.info(f"Profile {profile['id']} role set to {role}")
    return profile


async def delete_profile(session: AsyncSession, profile_id: Any) -> None:
    """Hard-delete a profile. Dependent rows are removed by the database cascade."""
    profile = await _require_profile(session, profile_id)
    with storage_errors("delete profile"):
        await session.delete(profile)
    await commit_or_conflict(session, "delete profile")
