"""
Motorcycle service: bikes in a garage and their maintenance logs.

Motorcycles are soft-deleted (``deleted_at`` is stamped). Every read except
``find_motorcycle_including_deleted`` filters deleted rows out.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from broad.database.models import Garage, MaintenanceLog, Motorcycle
from broad.utils.datetime_utils import utcnow
from broad.utils.errors import NotFoundError, commit_or_conflict, storage_errors
from broad.utils.field_mapping import MAINTENANCE_LOG_FIELDS, MOTORCYCLE_FIELDS, as_uuid

logger = logging.getLogger(__name__)

VIN_TAKEN = "A motorcycle with this VIN already exists"

READ_ONLY_COLUMNS = {"id", "garage_id", "deleted_at", "created_at"}


def _active():
    return Motorcycle.deleted_at.is_(None)


async def load_motorcycle(session: AsyncSession, motorcycle_id: Any) -> Motorcycle:
    """Return the active Motorcycle row or raise NotFoundError."""
    mid = as_uuid(motorcycle_id, "Motorcycle")
    with storage_errors("get motorcycle"):
        result = await session.execute(
            select(Motorcycle).where(Motorcycle.id == mid, _active())
        )
        motorcycle = result.scalar_one_or_none()
    if motorcycle is None:
        raise NotFoundError.for_resource("Motorcycle")
    return motorcycle


async def get_motorcycle_owner_id(session: AsyncSession, motorcycle_id: Any) -> Any:
    """Owner profile id of an active motorcycle's garage. Raises NotFoundError."""
    mid = as_uuid(motorcycle_id, "Motorcycle")
    with storage_errors("get motorcycle owner"):
        result = await session.execute(
            select(Garage.owner_id)
            .join(Motorcycle, Motorcycle.garage_id == Garage.id)
            .where(Motorcycle.id == mid, _active())
        )
        owner_id = result.scalar_one_or_none()
    if owner_id is None:
        raise NotFoundError.for_resource("Motorcycle")
    return owner_id


# ---------------------------------------------------------------------------
# Motorcycles
# ---------------------------------------------------------------------------


async def get_motorcycle_by_id(session: AsyncSession, motorcycle_id: Any) -> Dict:
    """
    Get an active motorcycle.

    Raises:
        NotFoundError: If the motorcycle does not exist or was deleted
    """
    return MOTORCYCLE_FIELDS.model_to_api(await load_motorcycle(session, motorcycle_id))


async def find_motorcycle_including_deleted(
    session: AsyncSession, motorcycle_id: Any
) -> Optional[Dict]:
    """Return the motorcycle even when soft-deleted, or None."""
    try:
        mid = as_uuid(motorcycle_id, "Motorcycle")
    except NotFoundError:
        return None
    with storage_errors("get motorcycle"):
        result = await session.execute(select(Motorcycle).where(Motorcycle.id == mid))
        motorcycle = result.scalar_one_or_none()
    return MOTORCYCLE_FIELDS.model_to_api(motorcycle) if motorcycle else None


async def list_motorcycles_by_garage(session: AsyncSession, garage_id: Any) -> List[Dict]:
    """Active motorcycles in a garage, newest first."""
    gid = as_uuid(garage_id, "Garage")
    with storage_errors("get motorcycles"):
        result = await session.execute(
            select(Motorcycle)
            .where(Motorcycle.garage_id == gid, _active())
            .order_by(Motorcycle.created_at.desc())
        )
        return [MOTORCYCLE_FIELDS.model_to_api(m) for m in result.scalars().all()]


async def create_motorcycle(session: AsyncSession, garage_id: Any, data: Dict) -> Dict:
    """
    Add a motorcycle to a garage.

    Args:
        session: Database session
        garage_id: Garage the bike belongs to
        data: API-shape motorcycle fields (make, model, year required)

    Returns:
        Created motorcycle dict

    Raises:
        ConflictError: If the VIN is already registered
    """
    row = {
        column: value
        for column, value in MOTORCYCLE_FIELDS.to_row(data).items()
        if column not in READ_ONLY_COLUMNS
    }
    motorcycle = Motorcycle(garage_id=as_uuid(garage_id, "Garage"), **row)
    session.add(motorcycle)
    await commit_or_conflict(session, "create motorcycle", VIN_TAKEN)
    logger.info(f"Added motorcycle {motorcycle.id} to garage {motorcycle.garage_id}")
    return MOTORCYCLE_FIELDS.model_to_api(motorcycle)


async def update_motorcycle(session: AsyncSession, motorcycle_id: Any, data: Dict) -> Dict:
    """Apply a partial update to an active motorcycle."""
    motorcycle = await load_motorcycle(session, motorcycle_id)
    row = {
        column: value
        for column, value in MOTORCYCLE_FIELDS.to_row(data).items()
        if column not in READ_ONLY_COLUMNS
    }
    for column, value in row.items():
        setattr(motorcycle, column, value)
    if row:
        await commit_or_conflict(session, "update motorcycle", VIN_TAKEN)
    return MOTORCYCLE_FIELDS.model_to_api(motorcycle)


async def update_odometer(session: AsyncSession, motorcycle_id: Any, odometer_km: float) -> Dict:
    """Set the odometer reading."""
    return await update_motorcycle(session, motorcycle_id, {"odometerKm": odometer_km})


async def soft_delete_motorcycle(session: AsyncSession, motorcycle_id: Any) -> None:
    """Stamp ``deleted_at``; the row stays for history."""
    motorcycle = await load_motorcycle(session, motorcycle_id)
    motorcycle.deleted_at = utcnow()
    await commit_or_conflict(session, "delete motorcycle")
    logger.info(f"Soft-deleted motorcycle {motorcycle.id}")


# ---------------------------------------------------------------------------
# Maintenance logs
# ---------------------------------------------------------------------------


async def load_maintenance_log(session: AsyncSession, log_id: Any) -> MaintenanceLog:
    """Return the MaintenanceLog row or raise NotFoundError."""
    lid = as_uuid(log_id, "Maintenance log")
    with storage_errors("get maintenance log"):
        result = await session.execute(select(MaintenanceLog).where(MaintenanceLog.id == lid))
        log = result.scalar_one_or_none()
    if log is None:
        raise NotFoundError.for_resource("Maintenance log")
    return log


async def list_maintenance_logs(
    session: AsyncSession, motorcycle_id: Any, limit: Optional[int] = None
) -> List[Dict]:
    """Maintenance logs of a motorcycle, most recently performed first."""
    mid = as_uuid(motorcycle_id, "Motorcycle")
    q = (
        select(MaintenanceLog)
        .where(MaintenanceLog.motorcycle_id == mid)
        .order_by(MaintenanceLog.performed_at.desc(), MaintenanceLog.created_at.desc())
    )
    if limit:
        q = q.limit(limit)
    with storage_errors("get maintenance logs"):
        result = await session.execute(q)
        return [MAINTENANCE_LOG_FIELDS.model_to_api(log) for log in result.scalars().all()]


async def get_maintenance_log(session: AsyncSession, log_id: Any) -> Dict:
    """Get a maintenance log. Raises NotFoundError."""
    return MAINTENANCE_LOG_FIELDS.model_to_api(await load_maintenance_log(session, log_id))


async def create_maintenance_log(session: AsyncSession, motorcycle_id: Any, data: Dict) -> Dict:
    """Record maintenance on an active motorcycle."""
    motorcycle = await load_motorcycle(session, motorcycle_id)
    row = MAINTENANCE_LOG_FIELDS.to_row(data)
    for column in ("id", "motorcycle_id", "created_at"):
        row.pop(column, None)
    log = MaintenanceLog(motorcycle_id=motorcycle.id, **row)
    session.add(log)
    await commit_or_conflict(session, "create maintenance log")
    return MAINTENANCE_LOG_FIELDS.model_to_api(log)


async def update_maintenance_log(session: AsyncSession, log_id: Any, data: Dict) -> Dict:
    """Apply a partial update to a maintenance log."""
    log = await load_maintenance_log(session, log_id)
    row = MAINTENANCE_LOG_FIELDS.to_row(data)
    for column in ("id", "motorcycle_id", "created_at"):
        row.pop(column, None)
    for column, value in row.items():
        setattr(log, column, value)
    if row:
        await commit_or_conflict(session, "update maintenance log")
    return MAINTENANCE_LOG_FIELDS.model_to_api(log)


async def delete_maintenance_log(session: AsyncSession, log_id: Any) -> None:
    """Hard-delete a maintenance log."""
    log = await load_maintenance_log(session, log_id)
    with storage_errors("delete maintenance log"):
        await session.delete(log)
    await commit_or_conflict(session, "delete maintenance log")
