"""
Booking service: seats on rides.

One booking per (ride, rider). Confirmed bookings are capped by the ride's
``max_riders``; once the cap is reached new bookings are waitlisted, and a
cancelled confirmed seat promotes the oldest waitlisted booking.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from broad.database.models import Booking, BookingStatus, Ride
from broad.services import ride_service
from broad.utils.errors import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    commit_or_conflict,
    storage_errors,
)
from broad.utils.field_mapping import BOOKING_FIELDS, RIDE_FIELDS, as_uuid
from broad.utils.response import page_offset

logger = logging.getLogger(__name__)

ALREADY_BOOKED = "You have already booked this ride"


async def _find_booking(session: AsyncSession, ride_id, rider_id) -> Optional[Booking]:
    with storage_errors("get booking"):
        result = await session.execute(
            select(Booking).where(Booking.ride_id == ride_id, Booking.rider_id == rider_id)
        )
        return result.scalar_one_or_none()


async def _count_with_status(session: AsyncSession, ride_id, status: str) -> int:
    with storage_errors("count bookings"):
        result = await session.execute(
            select(func.count(Booking.id)).where(
                Booking.ride_id == ride_id, Booking.status == status
            )
        )
        return result.scalar() or 0


async def get_booking(session: AsyncSession, ride_id: Any, rider_id: Any) -> Optional[Dict]:
    """Return the rider's booking on a ride (any status), or None."""
    booking = await _find_booking(
        session, as_uuid(ride_id, "Ride"), as_uuid(rider_id, "Profile")
    )
    return BOOKING_FIELDS.model_to_api(booking) if booking else None


async def count_bookings(session: AsyncSession, ride_id: Any) -> int:
    """Number of bookings on a ride that are not cancelled."""
    rid = as_uuid(ride_id, "Ride")
    with storage_errors("count bookings"):
        result = await session.execute(
            select(func.count(Booking.id)).where(
                Booking.ride_id == rid,
                Booking.status != BookingStatus.CANCELLED.value,
            )
        )
        return result.scalar() or 0


async def list_bookings_for_ride(session: AsyncSession, ride_id: Any) -> List[Dict]:
    """All bookings on a ride, oldest first."""
    rid = as_uuid(ride_id, "Ride")
    with storage_errors("get ride bookings"):
        result = await session.execute(
            select(Booking).where(Booking.ride_id == rid).order_by(Booking.created_at.asc())
        )
        return [BOOKING_FIELDS.model_to_api(b) for b in result.scalars().all()]


async def list_bookings_for_rider(
    session: AsyncSession,
    rider_id: Any,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[Dict], int]:
    """
    A rider's bookings, newest first, each with its ride embedded under ``ride``.

    Returns:
        Tuple of (bookings for the page, total matching count)
    """
    base = select(Booking).where(Booking.rider_id == as_uuid(rider_id, "Profile"))
    if status:
        base = base.where(Booking.status == status)

    with storage_errors("get rider bookings"):
        total = (
            await session.execute(select(func.count()).select_from(base.subquery()))
        ).scalar() or 0
        result = await session.execute(
            base.join(Ride, Ride.id == Booking.ride_id)
            .add_columns(Ride)
            .order_by(Booking.created_at.desc())
            .offset(page_offset(page, limit))
            .limit(limit)
        )
        rows = result.all()

    items = []
    for booking, ride in rows:
        item = BOOKING_FIELDS.model_to_api(booking)
        item["ride"] = RIDE_FIELDS.model_to_api(ride)
        items.append(item)
    return items, total


async def create_booking(
    session: AsyncSession,
    ride_id: Any,
    rider_id: Any,
    status: str = BookingStatus.CONFIRMED.value,
) -> Dict:
    """
    Book a seat on a ride.

    A previously cancelled booking is re-activated rather than duplicated.

    Args:
        session: Database session
        ride_id: Ride to book
        rider_id: Profile id of the rider
        status: Requested status; ``confirmed`` becomes ``waitlisted`` when
            the ride is full

    Returns:
        Booking dict

    Raises:
        NotFoundError: If the ride does not exist
        BadRequestError: If the ride is closed or the rider created it
        ConflictError: If the rider already holds an active booking
    """
    ride = await ride_service.load_ride(session, ride_id)
    rider = as_uuid(rider_id, "Profile")

    if ride.status in ride_service.CLOSED_STATUSES:
        raise BadRequestError(f"Cannot book a ride that is {ride.status}")
    if ride.creator_id == rider:
        raise BadRequestError("You cannot book your own ride")

    existing = await _find_booking(session, ride.id, rider)
    if existing is not None and existing.status != BookingStatus.CANCELLED.value:
        raise ConflictError(ALREADY_BOOKED)

    if status == BookingStatus.CONFIRMED.value:
        confirmed = await _count_with_status(session, ride.id, BookingStatus.CONFIRMED.value)
        if confirmed >= ride.max_riders:
            status = BookingStatus.WAITLISTED.value

    if existing is not None:
        existing.status = status
        booking = existing
    else:
        booking = Booking(ride_id=ride.id, rider_id=rider, status=status)
        session.add(booking)

    await commit_or_conflict(session, "create booking", ALREADY_BOOKED)
    logger.info(f"Rider {rider} booked ride {ride.id} ({status})")
    return BOOKING_FIELDS.model_to_api(booking)


async def cancel_booking(session: AsyncSession, ride_id: Any, rider_id: Any) -> Dict:
    """
    Cancel the rider's active booking on a ride.

    Raises:
        NotFoundError: If the rider has no active booking on the ride
    """
    rid = as_uuid(ride_id, "Ride")
    booking = await _find_booking(session, rid, as_uuid(rider_id, "Profile"))
    if booking is None or booking.status == BookingStatus.CANCELLED.value:
        raise NotFoundError.for_resource("Booking")

    freed_seat = booking.status == BookingStatus.CONFIRMED.value
    booking.status = BookingStatus.CANCELLED.value

    if freed_seat:
        with storage_errors("promote waitlisted booking"):
            result = await session.execute(
                select(Booking)
                .where(
                    Booking.ride_id == rid,
                    Booking.status == BookingStatus.WAITLISTED.value,
                )
                .order_by(Booking.created_at.asc())
                .limit(1)
            )
            promoted = result.scalar_one_or_none()
        if promoted is not None:
            promoted.status = BookingStatus.CONFIRMED.value
            logger.info(f"Promoted waitlisted booking {promoted.id} on ride {rid}")

    await commit_or_conflict(session, "cancel booking")
    return BOOKING_FIELDS.model_to_api(booking)
