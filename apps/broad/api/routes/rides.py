"""Ride and booking route handlers."""

import logging
from datetime import date
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from broad.api.auth_dependencies import get_current_user, get_current_user_optional
from broad.api.routes import pagination_params
from broad.database.db import get_db_session
from broad.database.models import BookingStatus, ExperienceLevel, RidePace, RideStatus
from broad.models.schemas import (
    BookingCreate,
    PaginationParams,
    RideCreate,
    RideStatusUpdate,
    RideUpdate,
)
from broad.services import booking_service, profile_service, ride_service
from broad.utils.errors import ApiError, InternalError
from broad.utils.response import create_pagination_meta, success_response

logger = logging.getLogger(__name__)
router = APIRouter()


async def _owned_ride(session: AsyncSession, ride_id: UUID, user: dict) -> Dict:
    """Load a ride (404) and check the caller created it (403)."""
    ride = await ride_service.get_ride_by_id(session, ride_id)
    ride_service.ensure_ride_owner(ride, user["id"])
    return ride


def _value(enum_value):
    return enum_value.value if enum_value is not None else None


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------


@router.get("/api/rides", response_model=Dict[str, Any])
async def search_rides(
    status: Optional[RideStatus] = None,
    pace: Optional[RidePace] = None,
    experience_level: Optional[ExperienceLevel] = None,
    creator_id: Optional[UUID] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    pagination: PaginationParams = Depends(pagination_params),
    user: Optional[dict] = Depends(get_current_user_optional),
    session: AsyncSession = Depends(get_db_session),
):
    """Search rides, soonest first."""
    try:
        rides, total = await ride_service.list_rides(
            session,
            page=pagination.page,
            limit=pagination.limit,
            status=_value(status),
            creator_id=creator_id,
            start_date=start_date,
            end_date=end_date,
            pace=_value(pace),
            experience_level=_value(experience_level),
        )
        return success_response(
            rides, meta=create_pagination_meta(pagination.page, pagination.limit, total)
        )
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error searching rides: {str(e)}", exc_info=True)
        raise InternalError()


@router.get("/api/rides/my-rides", response_model=Dict[str, Any])
async def get_my_rides(
    status: Optional[RideStatus] = None,
    pagination: PaginationParams = Depends(pagination_params),
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Rides the caller created, newest first."""
    try:
        rides, total = await ride_service.list_rides_by_creator(
            session, user["id"], status=_value(status), page=pagination.page, limit=pagination.limit
        )
        return success_response(
            rides, meta=create_pagination_meta(pagination.page, pagination.limit, total)
        )
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error getting rides for {user['id']}: {str(e)}", exc_info=True)
        raise InternalError()


@router.get("/api/rides/upcoming", response_model=Dict[str, Any])
async def get_upcoming_rides(
    pagination: PaginationParams = Depends(pagination_params),
    user: Optional[dict] = Depends(get_current_user_optional),
    session: AsyncSession = Depends(get_db_session),
):
    """Scheduled rides that have not started yet."""
    try:
        rides, total = await ride_service.list_upcoming_rides(
            session, page=pagination.page, limit=pagination.limit
        )
        return success_response(
            rides, meta=create_pagination_meta(pagination.page, pagination.limit, total)
        )
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error getting upcoming rides: {str(e)}", exc_info=True)
        raise InternalError()


@router.get("/api/rides/my-bookings", response_model=Dict[str, Any])
async def get_my_bookings(
    status: Optional[BookingStatus] = None,
    pagination: PaginationParams = Depends(pagination_params),
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """The caller's bookings with their rides, newest first."""
    try:
        bookings, total = await booking_service.list_bookings_for_rider(
            session, user["id"], status=_value(status), page=pagination.page, limit=pagination.limit
        )
        return success_response(
            bookings, meta=create_pagination_meta(pagination.page, pagination.limit, total)
        )
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error getting bookings for {user['id']}: {str(e)}", exc_info=True)
        raise InternalError()


@router.get("/api/rides/{ride_id}", response_model=Dict[str, Any])
async def get_ride(
    ride_id: UUID,
    user: Optional[dict] = Depends(get_current_user_optional),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Get a ride with its creator and booking count.

    ``isBooked`` is included for authenticated callers.
    """
    try:
        ride = await ride_service.get_ride_by_id(session, ride_id)
        ride["creator"] = await profile_service.find_profile_by_id(session, ride["creatorId"])
        ride["bookingsCount"] = await booking_service.count_bookings(session, ride_id)
        if user:
            booking = await booking_service.get_booking(session, ride_id, user["id"])
            ride["isBooked"] = (
                booking is not None and booking["status"] != BookingStatus.CANCELLED.value
            )
        return success_response(ride)
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error getting ride {ride_id}: {str(e)}", exc_info=True)
        raise InternalError()


# ---------------------------------------------------------------------------
# Ride writes (creator only)
# ---------------------------------------------------------------------------


@router.post("/api/rides", response_model=Dict[str, Any], status_code=201)
async def create_ride(
    payload: RideCreate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Create a ride owned by the caller."""
    try:
        ride = await ride_service.create_ride(session, user["id"], payload.to_api_dict())
        return success_response(ride)
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error creating ride: {str(e)}", exc_info=True)
        raise InternalError()


@router.patch("/api/rides/{ride_id}", response_model=Dict[str, Any])
async def update_ride(
    ride_id: UUID,
    payload: RideUpdate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Update a ride. Any status may be set."""
    try:
        await _owned_ride(session, ride_id, user)
        ride = await ride_service.update_ride(session, ride_id, payload.to_api_dict())
        return success_response(ride)
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error updating ride {ride_id}: {str(e)}", exc_info=True)
        raise InternalError()


@router.patch("/api/rides/{ride_id}/status", response_model=Dict[str, Any])
async def update_ride_status(
    ride_id: UUID,
    payload: RideStatusUpdate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Set a ride's status."""
    try:
        await _owned_ride(session, ride_id, user)
        ride = await ride_service.update_ride_status(session, ride_id, payload.status)
        return success_response(ride)
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error updating status of ride {ride_id}: {str(e)}", exc_info=True)
        raise InternalError()


@router.patch("/api/rides/{ride_id}/cancel", response_model=Dict[str, Any])
async def cancel_ride(
    ride_id: UUID,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Cancel a ride. 400 if it is already completed or cancelled."""
    try:
        await _owned_ride(session, ride_id, user)
        return success_response(await ride_service.cancel_ride(session, ride_id))
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error cancelling ride {ride_id}: {str(e)}", exc_info=True)
        raise InternalError()


@router.patch("/api/rides/{ride_id}/complete", response_model=Dict[str, Any])
async def complete_ride(
    ride_id: UUID,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Mark a ride completed. 400 if it is already completed or cancelled."""
    try:
        await _owned_ride(session, ride_id, user)
        return success_response(await ride_service.complete_ride(session, ride_id))
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error completing ride {ride_id}: {str(e)}", exc_info=True)
        raise InternalError()


@router.delete("/api/rides/{ride_id}", status_code=204)
async def delete_ride(
    ride_id: UUID,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Delete a ride and its bookings."""
    try:
        await _owned_ride(session, ride_id, user)
        await ride_service.delete_ride(session, ride_id)
        return Response(status_code=204)
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error deleting ride {ride_id}: {str(e)}", exc_info=True)
        raise InternalError()


# ---------------------------------------------------------------------------
# Bookings
# ---------------------------------------------------------------------------


@router.get("/api/rides/{ride_id}/bookings", response_model=Dict[str, Any])
async def get_ride_bookings(
    ride_id: UUID,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """The ride with all of its bookings (creator only)."""
    try:
        ride = await _owned_ride(session, ride_id, user)
        ride["bookings"] = await booking_service.list_bookings_for_ride(session, ride_id)
        return success_response(ride)
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error getting bookings of ride {ride_id}: {str(e)}", exc_info=True)
        raise InternalError()


@router.post("/api/rides/bookings", response_model=Dict[str, Any], status_code=201)
async def create_booking(
    payload: BookingCreate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Book a seat on the ride named in the body."""
    try:
        booking = await booking_service.create_booking(session, payload.ride_id, user["id"])
        return success_response(booking)
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error booking ride {payload.ride_id}: {str(e)}", exc_info=True)
        raise InternalError()


@router.post("/api/rides/{ride_id}/book", response_model=Dict[str, Any], status_code=201)
async def book_ride(
    ride_id: UUID,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Book a seat on a ride.

    The booking is waitlisted when the ride is full. 409 if the caller already
    holds a booking; 400 for closed rides or the creator's own ride.
    """
    try:
        booking = await booking_service.create_booking(session, ride_id, user["id"])
        return success_response(booking)
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error booking ride {ride_id}: {str(e)}", exc_info=True)
        raise InternalError()


@router.delete("/api/rides/{ride_id}/book", response_model=Dict[str, Any])
async def cancel_booking(
    ride_id: UUID,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Cancel the caller's booking on a ride."""
    try:
        booking = await booking_service.cancel_booking(session, ride_id, user["id"])
        return success_response(booking)
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error cancelling booking on ride {ride_id}: {str(e)}", exc_info=True)
        raise InternalError()
