"""
Garage service: garages, workspace notes, bike assignment, tasks, documents
and the garage dashboard.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from broad.database.models import Garage, GarageDocument, GarageTask
from broad.services import motorcycle_service
from broad.utils.datetime_utils import utcnow
from broad.utils.errors import (
    BadRequestError,
    ForbiddenError,
    NotFoundError,
    commit_or_conflict,
    storage_errors,
)
from broad.utils.field_mapping import DOCUMENT_FIELDS, GARAGE_FIELDS, TASK_FIELDS, as_uuid

logger = logging.getLogger(__name__)

LABEL_TAKEN = "A garage with this label already exists"

# Maintenance logs shown in the dashboard service history
SERVICE_HISTORY_LIMIT = 20


def ensure_garage_owner(garage: Dict, user_id: Any) -> None:
    """Raise ForbiddenError unless ``user_id`` owns the garage."""
    if garage["ownerId"] != str(user_id):
        raise ForbiddenError("You do not own this garage")


async def _load(session: AsyncSession, model, row_id: Any, resource: str):
    rid = as_uuid(row_id, resource)
    with storage_errors(f"get {resource.lower()}"):
        result = await session.execute(select(model).where(model.id == rid))
        obj = result.scalar_one_or_none()
    if obj is None:
        raise NotFoundError.for_resource(resource)
    return obj


async def load_garage(session: AsyncSession, garage_id: Any) -> Garage:
    """Return the Garage row or raise NotFoundError."""
    return await _load(session, Garage, garage_id, "Garage")


# ---------------------------------------------------------------------------
# Garages
# ---------------------------------------------------------------------------


async def get_garage_by_id(session: AsyncSession, garage_id: Any) -> Dict:
    """
    Get a garage by id.

    Raises:
        NotFoundError: If the garage does not exist
    """
    return GARAGE_FIELDS.model_to_api(await load_garage(session, garage_id))


async def list_garages_by_owner(session: AsyncSession, owner_id: Any) -> List[Dict]:
    """Garages owned by a profile, newest first."""
    oid = as_uuid(owner_id, "Profile")
    with storage_errors("get garages"):
        result = await session.execute(
            select(Garage).where(Garage.owner_id == oid).order_by(Garage.created_at.desc())
        )
        return [GARAGE_FIELDS.model_to_api(g) for g in result.scalars().all()]


async def create_garage(session: AsyncSession, owner_id: Any, label: str) -> Dict:
    """
    Create a garage.

    Raises:
        ConflictError: If the owner already has a garage with this label
    """
    garage = Garage(owner_id=as_uuid(owner_id, "Profile"), label=label)
    session.add(garage)
    await commit_or_conflict(session, "create garage", LABEL_TAKEN)
    logger.info(f"Created garage {garage.id} for {garage.owner_id}")
    return GARAGE_FIELDS.model_to_api(garage)


async def update_garage(session: AsyncSession, garage_id: Any, data: Dict) -> Dict:
    """Update the garage label (the only directly editable field)."""
    garage = await load_garage(session, garage_id)
    if data.get("label") is not None:
        garage.label = data["label"]
        await commit_or_conflict(session, "update garage", LABEL_TAKEN)
    return GARAGE_FIELDS.model_to_api(garage)


async def delete_garage(session: AsyncSession, garage_id: Any) -> None:
    """Hard-delete a garage. Bikes, tasks and documents go with it (database cascade)."""
    garage = await load_garage(session, garage_id)
    with storage_errors("delete garage"):
        await session.delete(garage)
    await commit_or_conflict(session, "delete garage")
    logger.info(f"Deleted garage {garage.id}")


async def get_workspace_notes(session: AsyncSession, garage_id: Any) -> str:
    """Workspace notes of a garage ("" when never set)."""
    garage = await load_garage(session, garage_id)
    return garage.workspace_notes or ""


async def update_workspace_notes(session: AsyncSession, garage_id: Any, notes: Optional[str]) -> Dict:
    """Replace the workspace notes."""
    garage = await load_garage(session, garage_id)
    garage.workspace_notes = notes or ""
    await commit_or_conflict(session, "update workspace notes")
    return GARAGE_FIELDS.model_to_api(garage)


async def _assign_bike(
    session: AsyncSession, garage_id: Any, motorcycle_id: Optional[Any], column: str
) -> Dict:
    garage = await load_garage(session, garage_id)
    bike_id = None
    if motorcycle_id is not None:
        motorcycle = await motorcycle_service.load_motorcycle(session, motorcycle_id)
        if motorcycle.garage_id != garage.id:
            raise BadRequestError("Motorcycle does not belong to this garage")
        bike_id = motorcycle.id
    setattr(garage, column, bike_id)
    await commit_or_conflict(session, f"set {column.replace('_', ' ')}")
    return GARAGE_FIELDS.model_to_api(garage)


async def set_primary_bike(session: AsyncSession, garage_id: Any, motorcycle_id: Optional[Any]) -> Dict:
    """
    Set (or clear with None) the garage's primary bike.

    Raises:
        NotFoundError: If the motorcycle does not exist or was deleted
        BadRequestError: If the motorcycle belongs to another garage
    """
    return await _assign_bike(session, garage_id, motorcycle_id, "primary_bike_id")


async def set_backup_bike(session: AsyncSession, garage_id: Any, motorcycle_id: Optional[Any]) -> Dict:
    """Set (or clear with None) the garage's backup bike. Same rules as the primary bike."""
    return await _assign_bike(session, garage_id, motorcycle_id, "backup_bike_id")


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


async def list_tasks(session: AsyncSession, garage_id: Any) -> List[Dict]:
    """Tasks of a garage, newest first."""
    gid = as_uuid(garage_id, "Garage")
    with storage_errors("get garage tasks"):
        result = await session.execute(
            select(GarageTask)
            .where(GarageTask.garage_id == gid)
            .order_by(GarageTask.created_at.desc())
        )
        return [TASK_FIELDS.model_to_api(t) for t in result.scalars().all()]


async def get_task(session: AsyncSession, task_id: Any) -> Dict:
    return TASK_FIELDS.model_to_api(await _load(session, GarageTask, task_id, "Task"))


async def create_task(session: AsyncSession, garage_id: Any, label: str) -> Dict:
    task = GarageTask(garage_id=as_uuid(garage_id, "Garage"), label=label)
    session.add(task)
    await commit_or_conflict(session, "create garage task")
    return TASK_FIELDS.model_to_api(task)


async def update_task(session: AsyncSession, task_id: Any, label: str) -> Dict:
    task = await _load(session, GarageTask, task_id, "Task")
    task.label = label
    await commit_or_conflict(session, "update garage task")
    return TASK_FIELDS.model_to_api(task)


async def delete_task(session: AsyncSession, task_id: Any) -> None:
    task = await _load(session, GarageTask, task_id, "Task")
    with storage_errors("delete garage task"):
        await session.delete(task)
    await commit_or_conflict(session, "delete garage task")


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


async def list_documents(session: AsyncSession, garage_id: Any) -> List[Dict]:
    """Documents of a garage, most recently updated first."""
    gid = as_uuid(garage_id, "Garage")
    with storage_errors("get garage documents"):
        result = await session.execute(
            select(GarageDocument)
            .where(GarageDocument.garage_id == gid)
            .order_by(GarageDocument.updated_on.desc(), GarageDocument.created_at.desc())
        )
        return [DOCUMENT_FIELDS.model_to_api(d) for d in result.scalars().all()]


async def get_document(session: AsyncSession, document_id: Any) -> Dict:
    return DOCUMENT_FIELDS.model_to_api(
        await _load(session, GarageDocument, document_id, "Document")
    )


async def create_document(session: AsyncSession, garage_id: Any, data: Dict) -> Dict:
    """
    Track a document for a garage.

    ``status`` defaults to "unknown", ``storage`` to "local" and ``updatedOn``
    to today (UTC).
    """
    row = DOCUMENT_FIELDS.to_row(data)
    for column in ("id", "garage_id", "created_at"):
        row.pop(column, None)
    row.setdefault("status", "unknown")
    row.setdefault("storage", "local")
    if row.get("updated_on") is None:
        row["updated_on"] = utcnow().date()

    document = GarageDocument(garage_id=as_uuid(garage_id, "Garage"), **row)
    session.add(document)
    await commit_or_conflict(session, "create garage document")
    return DOCUMENT_FIELDS.model_to_api(document)


async def update_document(session: AsyncSession, document_id: Any, data: Dict) -> Dict:
    """Apply a partial update to a document."""
    document = await _load(session, GarageDocument, document_id, "Document")
    row = DOCUMENT_FIELDS.to_row(data)
    for column in ("id", "garage_id", "created_at"):
        row.pop(column, None)
    # updated_on and status are NOT NULL
    for column in ("updated_on", "status", "storage", "title"):
        if column in row and row[column] is None:
            row.pop(column)
    for column, value in row.items():
        setattr(document, column, value)
    if row:
        await commit_or_conflict(session, "update garage document")
    return DOCUMENT_FIELDS.model_to_api(document)


async def delete_document(session: AsyncSession, document_id: Any) -> None:
    document = await _load(session, GarageDocument, document_id, "Document")
    with storage_errors("delete garage document"):
        await session.delete(document)
    await commit_or_conflict(session, "delete garage document")


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


async def get_dashboard(session_factory: async_sessionmaker, garage_id: Any) -> Dict:
    """
    Aggregate everything the garage screen needs.

    Reads run concurrently, each on its own session: the garage and its
    motorcycles first, then the primary bike's latest maintenance logs, then
    tasks and documents. The reads are not one snapshot; a write landing
    between them can show up in some parts only.

    Args:
        session_factory: Factory producing independent AsyncSessions
        garage_id: Garage to aggregate

    Returns:
        Dict with garageId, label, primaryBikeId, backupBikeId, workspaceNotes,
        motorcycles, serviceHistory, upcomingTasks and documents

    Raises:
        NotFoundError: If the garage does not exist
    """
    gid = as_uuid(garage_id, "Garage")

    async def read(fn: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        async with session_factory() as session:
            return await fn(session, *args)

    garage, motorcycles = await asyncio.gather(
        read(get_garage_by_id, gid),
        read(motorcycle_service.list_motorcycles_by_garage, gid),
    )

    active_ids = {m["id"] for m in motorcycles}
    primary_bike_id = garage["primaryBikeId"] if garage["primaryBikeId"] in active_ids else None
    backup_bike_id = garage["backupBikeId"] if garage["backupBikeId"] in active_ids else None

    service_history = []
    if primary_bike_id:
        logs = await read(
            motorcycle_service.list_maintenance_logs, primary_bike_id, SERVICE_HISTORY_LIMIT
        )
        service_history = [
            {
                "id": log["id"],
                "title": log["description"],
                "date": log["performedAt"],
                "summary": log["notes"],
            }
            for log in logs
        ]

    tasks, documents = await asyncio.gather(
        read(list_tasks, gid),
        read(list_documents, gid),
    )

    return {
        "garageId": garage["id"],
        "label": garage["label"],
        "primaryBikeId": primary_bike_id,
        "backupBikeId": backup_bike_id,
        "workspaceNotes": garage["workspaceNotes"] or "",
        "motorcycles": motorcycles,
        "serviceHistory": service_history,
        "upcomingTasks": [{"id": t["id"], "label": t["label"]} for t in tasks],
        "documents": [
            {
                "id": d["id"],
                "title": d["title"],
                "status": d["status"],
                "updatedOn": d["updatedOn"],
                "expiryDate": d["expiryDate"],
                "storage": d["storage"],
            }
            for d in documents
        ],
    }
