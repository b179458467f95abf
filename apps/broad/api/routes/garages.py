"""
Garage route handlers: garages, motorcycles, maintenance logs, tasks and
documents. Every route requires authentication and garage ownership.
"""

import logging
from typing import Any, Dict
from uuid import UUID

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from broad.api.auth_dependencies import get_current_user
from broad.database.db import get_db_session, get_session_factory
from broad.models.schemas import (
    BikeAssignment,
    DocumentCreate,
    DocumentUpdate,
    GarageCreate,
    GarageUpdate,
    MaintenanceLogCreate,
    MaintenanceLogUpdate,
    MotorcycleCreate,
    MotorcycleUpdate,
    OdometerUpdate,
    TaskCreate,
    TaskUpdate,
    WorkspaceNotesUpdate,
)
from broad.services import garage_service, motorcycle_service
from broad.utils.errors import ApiError, ForbiddenError, InternalError
from broad.utils.response import success_response

logger = logging.getLogger(__name__)
router = APIRouter()


# ---------------------------------------------------------------------------
# Ownership checks
# ---------------------------------------------------------------------------


async def _owned_garage(session: AsyncSession, garage_id: Any, user: dict) -> Dict:
    garage = await garage_service.get_garage_by_id(session, garage_id)
    garage_service.ensure_garage_owner(garage, user["id"])
    return garage


async def _check_motorcycle_owner(session: AsyncSession, motorcycle_id: Any, user: dict) -> None:
    owner_id = await motorcycle_service.get_motorcycle_owner_id(session, motorcycle_id)
    if str(owner_id) != str(user["id"]):
        raise ForbiddenError("You do not own this motorcycle")


async def _owned_log(session: AsyncSession, log_id: UUID, user: dict) -> Dict:
    log = await motorcycle_service.get_maintenance_log(session, log_id)
    await _check_motorcycle_owner(session, log["motorcycleId"], user)
    return log


async def _owned_task(session: AsyncSession, task_id: UUID, user: dict) -> Dict:
    task = await garage_service.get_task(session, task_id)
    await _owned_garage(session, task["garageId"], user)
    return task


async def _owned_document(session: AsyncSession, document_id: UUID, user: dict) -> Dict:
    document = await garage_service.get_document(session, document_id)
    await _owned_garage(session, document["garageId"], user)
    return document


def _internal(action: str, e: Exception) -> InternalError:
    logger.error(f"Error {action}: {str(e)}", exc_info=True)
    return InternalError()


# ---------------------------------------------------------------------------
# Garages
# ---------------------------------------------------------------------------


@router.get("/api/garages", response_model=Dict[str, Any])
async def list_my_garages(
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Garages owned by the caller."""
    try:
        return success_response(await garage_service.list_garages_by_owner(session, user["id"]))
    except ApiError:
        raise
    except Exception as e:
        raise _internal("listing garages", e)


@router.post("/api/garages", response_model=Dict[str, Any], status_code=201)
async def create_garage(
    payload: GarageCreate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Create a garage. 409 if the caller already has one with this label."""
    try:
        return success_response(await garage_service.create_garage(session, user["id"], payload.label))
    except ApiError:
        raise
    except Exception as e:
        raise _internal("creating garage", e)


@router.get("/api/garages/{garage_id}", response_model=Dict[str, Any])
async def get_garage(
    garage_id: UUID,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return success_response(await _owned_garage(session, garage_id, user))
    except ApiError:
        raise
    except Exception as e:
        raise _internal(f"getting garage {garage_id}", e)


@router.put("/api/garages/{garage_id}", response_model=Dict[str, Any])
async def update_garage(
    garage_id: UUID,
    payload: GarageUpdate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await _owned_garage(session, garage_id, user)
        garage = await garage_service.update_garage(session, garage_id, payload.to_api_dict())
        return success_response(garage)
    except ApiError:
        raise
    except Exception as e:
        raise _internal(f"updating garage {garage_id}", e)


@router.delete("/api/garages/{garage_id}", status_code=204)
async def delete_garage(
    garage_id: UUID,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await _owned_garage(session, garage_id, user)
        await garage_service.delete_garage(session, garage_id)
        return Response(status_code=204)
    except ApiError:
        raise
    except Exception as e:
        raise _internal(f"deleting garage {garage_id}", e)


@router.get("/api/garages/{garage_id}/dashboard", response_model=Dict[str, Any])
async def get_garage_dashboard(
    garage_id: UUID,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """Everything the garage screen shows, gathered with concurrent reads."""
    try:
        await _owned_garage(session, garage_id, user)
        return success_response(await garage_service.get_dashboard(session_factory, garage_id))
    except ApiError:
        raise
    except Exception as e:
        raise _internal(f"building dashboard for garage {garage_id}", e)


@router.get("/api/garages/{garage_id}/notes", response_model=Dict[str, Any])
async def get_workspace_notes(
    garage_id: UUID,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await _owned_garage(session, garage_id, user)
        notes = await garage_service.get_workspace_notes(session, garage_id)
        return success_response({"workspaceNotes": notes})
    except ApiError:
        raise
    except Exception as e:
        raise _internal(f"getting notes for garage {garage_id}", e)


@router.put("/api/garages/{garage_id}/notes", response_model=Dict[str, Any])
async def update_workspace_notes(
    garage_id: UUID,
    payload: WorkspaceNotesUpdate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await _owned_garage(session, garage_id, user)
        garage = await garage_service.update_workspace_notes(
            session, garage_id, payload.workspace_notes
        )
        return success_response({"workspaceNotes": garage["workspaceNotes"]})
    except ApiError:
        raise
    except Exception as e:
        raise _internal(f"updating notes for garage {garage_id}", e)


@router.patch("/api/garages/{garage_id}/primary-bike", response_model=Dict[str, Any])
async def set_primary_bike(
    garage_id: UUID,
    payload: BikeAssignment,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Set or clear (``motorcycleId: null``) the primary bike."""
    try:
        await _owned_garage(session, garage_id, user)
        garage = await garage_service.set_primary_bike(session, garage_id, payload.motorcycle_id)
        return success_response(garage)
    except ApiError:
        raise
    except Exception as e:
        raise _internal(f"setting primary bike for garage {garage_id}", e)


@router.patch("/api/garages/{garage_id}/backup-bike", response_model=Dict[str, Any])
async def set_backup_bike(
    garage_id: UUID,
    payload: BikeAssignment,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Set or clear (``motorcycleId: null``) the backup bike."""
    try:
        await _owned_garage(session, garage_id, user)
        garage = await garage_service.set_backup_bike(session, garage_id, payload.motorcycle_id)
        return success_response(garage)
    except ApiError:
        raise
    except Exception as e:
        raise _internal(f"setting backup bike for garage {garage_id}", e)


# ---------------------------------------------------------------------------
# Motorcycles
# ---------------------------------------------------------------------------


@router.get("/api/garages/{garage_id}/motorcycles", response_model=Dict[str, Any])
async def list_motorcycles(
    garage_id: UUID,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await _owned_garage(session, garage_id, user)
        return success_response(
            await motorcycle_service.list_motorcycles_by_garage(session, garage_id)
        )
    except ApiError:
        raise
    except Exception as e:
        raise _internal(f"listing motorcycles of garage {garage_id}", e)


@router.post("/api/garages/{garage_id}/motorcycles", response_model=Dict[str, Any], status_code=201)
async def create_motorcycle(
    garage_id: UUID,
    payload: MotorcycleCreate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Add a motorcycle. 409 if the VIN is already registered."""
    try:
        await _owned_garage(session, garage_id, user)
        motorcycle = await motorcycle_service.create_motorcycle(
            session, garage_id, payload.to_api_dict()
        )
        return success_response(motorcycle)
    except ApiError:
        raise
    except Exception as e:
        raise _internal(f"adding motorcycle to garage {garage_id}", e)


@router.get("/api/garages/motorcycles/{motorcycle_id}", response_model=Dict[str, Any])
async def get_motorcycle(
    motorcycle_id: UUID,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await _check_motorcycle_owner(session, motorcycle_id, user)
        return success_response(await motorcycle_service.get_motorcycle_by_id(session, motorcycle_id))
    except ApiError:
        raise
    except Exception as e:
        raise _internal(f"getting motorcycle {motorcycle_id}", e)


@router.put("/api/garages/motorcycles/{motorcycle_id}", response_model=Dict[str, Any])
async def update_motorcycle(
    motorcycle_id: UUID,
    payload: MotorcycleUpdate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await _check_motorcycle_owner(session, motorcycle_id, user)
        motorcycle = await motorcycle_service.update_motorcycle(
            session, motorcycle_id, payload.to_api_dict()
        )
        return success_response(motorcycle)
    except ApiError:
        raise
    except Exception as e:
        raise _internal(f"updating motorcycle {motorcycle_id}", e)


@router.delete("/api/garages/motorcycles/{motorcycle_id}", status_code=204)
async def delete_motorcycle(
    motorcycle_id: UUID,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Soft-delete a motorcycle."""
    try:
        await _check_motorcycle_owner(session, motorcycle_id, user)
        await motorcycle_service.soft_delete_motorcycle(session, motorcycle_id)
        return Response(status_code=204)
    except ApiError:
        raise
    except Exception as e:
        raise _internal(f"deleting motorcycle {motorcycle_id}", e)


@router.patch("/api/garages/motorcycles/{motorcycle_id}/odometer", response_model=Dict[str, Any])
async def update_odometer(
    motorcycle_id: UUID,
    payload: OdometerUpdate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await _check_motorcycle_owner(session, motorcycle_id, user)
        motorcycle = await motorcycle_service.update_odometer(
            session, motorcycle_id, payload.odometer_km
        )
        return success_response(motorcycle)
    except ApiError:
        raise
    except Exception as e:
        raise _internal(f"updating odometer of motorcycle {motorcycle_id}", e)


# ---------------------------------------------------------------------------
# Maintenance logs
# ---------------------------------------------------------------------------


@router.get("/api/garages/motorcycles/{motorcycle_id}/maintenance", response_model=Dict[str, Any])
async def list_maintenance_logs(
    motorcycle_id: UUID,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await _check_motorcycle_owner(session, motorcycle_id, user)
        return success_response(
            await motorcycle_service.list_maintenance_logs(session, motorcycle_id)
        )
    except ApiError:
        raise
    except Exception as e:
        raise _internal(f"listing maintenance of motorcycle {motorcycle_id}", e)


@router.post(
    "/api/garages/motorcycles/{motorcycle_id}/maintenance",
    response_model=Dict[str, Any],
    status_code=201,
)
async def create_maintenance_log(
    motorcycle_id: UUID,
    payload: MaintenanceLogCreate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await _check_motorcycle_owner(session, motorcycle_id, user)
        log = await motorcycle_service.create_maintenance_log(
            session, motorcycle_id, payload.to_api_dict()
        )
        return success_response(log)
    except ApiError:
        raise
    except Exception as e:
        raise _internal(f"recording maintenance for motorcycle {motorcycle_id}", e)


@router.put("/api/garages/maintenance/{log_id}", response_model=Dict[str, Any])
async def update_maintenance_log(
    log_id: UUID,
    payload: MaintenanceLogUpdate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await _owned_log(session, log_id, user)
        log = await motorcycle_service.update_maintenance_log(
            session, log_id, payload.to_api_dict()
        )
        return success_response(log)
    except ApiError:
        raise
    except Exception as e:
        raise _internal(f"updating maintenance log {log_id}", e)


@router.delete("/api/garages/maintenance/{log_id}", status_code=204)
async def delete_maintenance_log(
    log_id: UUID,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await _owned_log(session, log_id, user)
        await motorcycle_service.delete_maintenance_log(session, log_id)
        return Response(status_code=204)
    except ApiError:
        raise
    except Exception as e:
        raise _internal(f"deleting maintenance log {log_id}", e)


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


@router.get("/api/garages/{garage_id}/tasks", response_model=Dict[str, Any])
async def list_tasks(
    garage_id: UUID,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await _owned_garage(session, garage_id, user)
        return success_response(await garage_service.list_tasks(session, garage_id))
    except ApiError:
        raise
    except Exception as e:
        raise _internal(f"listing tasks of garage {garage_id}", e)


@router.post("/api/garages/{garage_id}/tasks", response_model=Dict[str, Any], status_code=201)
async def create_task(
    garage_id: UUID,
    payload: TaskCreate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await _owned_garage(session, garage_id, user)
        return success_response(await garage_service.create_task(session, garage_id, payload.label))
    except ApiError:
        raise
    except Exception as e:
        raise _internal(f"creating task in garage {garage_id}", e)


@router.put("/api/garages/tasks/{task_id}", response_model=Dict[str, Any])
async def update_task(
    task_id: UUID,
    payload: TaskUpdate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await _owned_task(session, task_id, user)
        return success_response(await garage_service.update_task(session, task_id, payload.label))
    except ApiError:
        raise
    except Exception as e:
        raise _internal(f"updating task {task_id}", e)


@router.delete("/api/garages/tasks/{task_id}", status_code=204)
async def delete_task(
    task_id: UUID,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await _owned_task(session, task_id, user)
        await garage_service.delete_task(session, task_id)
        return Response(status_code=204)
    except ApiError:
        raise
    except Exception as e:
        raise _internal(f"deleting task {task_id}", e)


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


@router.get("/api/garages/{garage_id}/documents", response_model=Dict[str, Any])
async def list_documents(
    garage_id: UUID,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await _owned_garage(session, garage_id, user)
        return success_response(await garage_service.list_documents(session, garage_id))
    except ApiError:
        raise
    except Exception as e:
        raise _internal(f"listing documents of garage {garage_id}", e)


@router.post("/api/garages/{garage_id}/documents", response_model=Dict[str, Any], status_code=201)
async def create_document(
    garage_id: UUID,
    payload: DocumentCreate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await _owned_garage(session, garage_id, user)
        document = await garage_service.create_document(session, garage_id, payload.to_api_dict())
        return success_response(document)
    except ApiError:
        raise
    except Exception as e:
        raise _internal(f"creating document in garage {garage_id}", e)


@router.put("/api/garages/documents/{document_id}", response_model=Dict[str, Any])
async def update_document(
    document_id: UUID,
    payload: DocumentUpdate,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await _owned_document(session, document_id, user)
        document = await garage_service.update_document(
            session, document_id, payload.to_api_dict()
        )
        return success_response(document)
    except ApiError:
        raise
    except Exception as e:
        raise _internal(f"updating document {document_id}", e)


@router.delete("/api/garages/documents/{document_id}", status_code=204)
async def delete_document(
    document_id: UUID,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await _owned_document(session, document_id, user)
        await garage_service.delete_document(session, document_id)
        return Response(status_code=204)
    except ApiError:
        raise
    except Exception as e:
        raise _internal(f"deleting document {document_id}", e)
