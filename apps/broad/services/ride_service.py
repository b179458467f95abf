"""
Ride service for group rides: listing, search, creation and status changes.

Rides have no status transition table; the creator may set any status at any
time. Cancel and complete are the only guarded shortcuts.
"""

import logging
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from broad.database.models import Booking, Ride, RideStatus
from broad.utils.datetime_utils import to_utc, utcnow
from broad.utils.errors import (
    BadRequestError,
    ForbiddenError,
    NotFoundError,
    commit_or_conflict,
    storage_errors,
)
from broad.utils.field_mapping import RIDE_FIELDS, as_uuid
from broad.utils.response import page_offset

logger = logging.getLogger(__name__)

# Statuses after which a ride can no longer be cancelled, completed or booked
CLOSED_STATUSES = {RideStatus.COMPLETED.value, RideStatus.CANCELLED.value}

READ_ONLY_COLUMNS = {"id", "creator_id", "created_at", "updated_at"}


async def load_ride(session: AsyncSession, ride_id: Any) -> Ride:
    """Return the Ride row or raise NotFoundError."""
    rid = as_uuid(ride_id, "Ride")
    with storage_errors("get ride"):
        result = await session.execute(select(Ride).where(Ride.id == rid))
        ride = result.scalar_one_or_none()
    if ride is None:
        raise NotFoundError.for_resource("Ride")
    return ride


async def _page(session: AsyncSession, base, order_by, page: int, limit: int, operation: str):
    with storage_errors(operation):
        total = (
            await session.execute(select(func.count()).select_from(base.subquery()))
        ).scalar() or 0
        result = await session.execute(
            base.order_by(order_by).offset(page_offset(page, limit)).limit(limit)
        )
        rides = result.scalars().all()
    return [RIDE_FIELDS.model_to_api(r) for r in rides], total


def _day_start(value) -> datetime:
    if isinstance(value, datetime):
        return to_utc(value)
    return to_utc(datetime.combine(value, time.min))


def _day_end(value) -> datetime:
    if isinstance(value, datetime):
        return to_utc(value)
    return to_utc(datetime.combine(value, time.max))


def ensure_ride_owner(ride: Dict, user_id: Any) -> None:
    """Raise ForbiddenError unless ``user_id`` created the ride."""
    if ride["creatorId"] != str(user_id):
        raise ForbiddenError("Only the ride creator can modify this ride")


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def get_ride_by_id(session: AsyncSession, ride_id: Any) -> Dict:
    """
    Get a ride by id.

    Raises:
        NotFoundError: If the ride does not exist
    """
    return RIDE_FIELDS.model_to_api(await load_ride(session, ride_id))


async def list_rides(
    session: AsyncSession,
    page: int = 1,
    limit: int = 20,
    status: Optional[str] = None,
    creator_id: Optional[Any] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    pace: Optional[str] = None,
    experience_level: Optional[str] = None,
) -> Tuple[List[Dict], int]:
    """
    Search rides, soonest first.

    Args:
        session: Database session
        page: Page number (1-indexed)
        limit: Page size
        status: Exact status filter
        creator_id: Only rides created by this profile
        start_date: Rides starting on or after this date
        end_date: Rides starting on or before this date (whole day included)
        pace: Exact pace filter
        experience_level: Exact experience level filter

    Returns:
        Tuple of (rides for the page, total matching count)
    """
    base = select(Ride)
    if status:
        base = base.where(Ride.status == status)
    if creator_id:
        base = base.where(Ride.creator_id == as_uuid(creator_id, "Profile"))
    if start_date:
        base = base.where(Ride.starts_at >= _day_start(start_date))
    if end_date:
        base = base.where(Ride.starts_at <= _day_end(end_date))
    if pace:
        base = base.where(Ride.pace == pace)
    if experience_level:
        base = base.where(Ride.experience_level == experience_level)

    return await _page(session, base, Ride.starts_at.asc(), page, limit, "search rides")


async def list_rides_by_creator(
    session: AsyncSession,
    creator_id: Any,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[Dict], int]:
    """Rides created by a profile, newest first."""
    base = select(Ride).where(Ride.creator_id == as_uuid(creator_id, "Profile"))
    if status:
        base = base.where(Ride.status == status)
    return await _page(session, base, Ride.created_at.desc(), page, limit, "get rides by creator")


async def list_upcoming_rides(
    session: AsyncSession, page: int = 1, limit: int = 20
) -> Tuple[List[Dict], int]:
    """Scheduled rides that have not started yet, soonest first."""
    base = select(Ride).where(
        Ride.status == RideStatus.SCHEDULED.value,
        Ride.starts_at >= utcnow(),
    )
    return await _page(session, base, Ride.starts_at.asc(), page, limit, "get upcoming rides")


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


async def create_ride(session: AsyncSession, creator_id: Any, data: Dict) -> Dict:
    """
    Create a ride owned by ``creator_id``.

    Args:
        session: Database session
        creator_id: Profile id of the creator
        data: API-shape ride fields (title and startsAt required)

    Returns:
        Created ride dict (status ``scheduled``)
    """
    row = {
        column: value
        for column, value in RIDE_FIELDS.to_row(data).items()
        if column not in READ_ONLY_COLUMNS and column != "status"
    }
    ride = Ride(
        creator_id=as_uuid(creator_id, "Profile"),
        status=RideStatus.SCHEDULED.value,
        **row,
    )
    session.add(ride)
    await commit_or_conflict(session, "create ride")
    logger.info(f"Created ride {ride.id} by {ride.creator_id}")
    return RIDE_FIELDS.model_to_api(ride)


async def update_ride(session: AsyncSession, ride_id: Any, data: Dict) -> Dict:
    """Apply a partial update; only fields present in ``data`` are written."""
    ride = await load_ride(session, ride_id)
    row = {
        column: value
        for column, value in RIDE_FIELDS.to_row(data).items()
        if column not in READ_ONLY_COLUMNS
    }
    for column, value in row.items():
        setattr(ride, column, value)
    if row:
        await commit_or_conflict(session, "update ride")
    return RIDE_FIELDS.model_to_api(ride)


async def update_ride_status(session: AsyncSession, ride_id: Any, status: str) -> Dict:
    """Set any status; no transition rules apply."""
    return await update_ride(session, ride_id, {"status": status})


async def _close_ride(session: AsyncSession, ride_id: Any, status: str, verb: str) -> Dict:
    ride = await load_ride(session, ride_id)
    if ride.status in CLOSED_STATUSES:
        raise BadRequestError(f"Cannot {verb} a ride that is already {ride.status}")
    ride.status = status
    await commit_or_conflict(session, f"{verb} ride")
    logger.info(f"Ride {ride.id} {status}")
    return RIDE_FIELDS.model_to_api(ride)


async def cancel_ride(session: AsyncSession, ride_id: Any) -> Dict:
    """
    Cancel a ride.

    Raises:
        BadRequestError: If the ride is already completed or cancelled
    """
    return await _close_ride(session, ride_id, RideStatus.CANCELLED.value, "cancel")


async def complete_ride(session: AsyncSession, ride_id: Any) -> Dict:
    """
    Mark a ride completed.

    Raises:
        BadRequestError: If the ride is already completed or cancelled
    """
    return await _close_ride(session, ride_id, RideStatus.COMPLETED.value, "complete")


async def delete_ride(session: AsyncSession, ride_id: Any) -> None:
    """Hard-delete a ride together with its bookings."""
    ride = await load_ride(session, ride_id)
    with storage_errors("delete ride"):
        await session.execute(delete(Booking).where(Booking.ride_id == ride.id))
        await session.delete(ride)
    await commit_or_conflict(session, "delete ride")
    logger.info(f"Deleted ride {ride.id}")
