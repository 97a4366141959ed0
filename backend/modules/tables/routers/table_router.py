# backend/modules/tables/routers/table_router.py

from typing import Any, Dict, List, Optional
from datetime import datetime
from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session
import logging

from core.cache import get_cache
from core.database_utils import get_db_context
from core.deps import get_actor_id, get_actor_role, get_db
from ..models.table_models import TableStatus
from ..schemas.table_schemas import (
    AttachOrderRequest,
    EnumOption,
    MergedTableResponse,
    MergeRequest,
    SessionEndResponse,
    SessionStartResponse,
    SessionTransferRequest,
    TableCreate,
    TableFilters,
    TableHistoryResponse,
    TableResponse,
    TableSessionCreate,
    TableSessionResponse,
    TableStatusUpdate,
    TableUpdate,
    UnmergeResponse,
)
from ..services.collaborators import RoleSetPermissionChecker
from ..services.table_queries import history_to_dict
from ..services.table_registry_service import TableRegistryService
from ..services.table_service import TableService
from ..websocket.table_websocket import get_broadcaster, manager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/tables", tags=["Tables"])


def get_table_service(
    db: Session = Depends(get_db),
    actor_id: Optional[int] = Depends(get_actor_id),
    actor_role: Optional[str] = Depends(get_actor_role),
) -> TableService:
    # Only the calling actor's role is known to this service
    permissions = RoleSetPermissionChecker(
        lambda candidate: actor_role if candidate == actor_id else None
    )
    return TableService(
        db,
        broadcaster=get_broadcaster(),
        cache=get_cache(),
        permissions=permissions,
    )


# Reference data
@router.get("/statuses", response_model=List[EnumOption])
async def get_statuses():
    return TableRegistryService.get_statuses()


@router.get("/shapes", response_model=List[EnumOption])
async def get_shapes():
    return TableRegistryService.get_shapes()


# Registry
@router.post("", response_model=TableResponse, status_code=201)
async def create_table(
    data: TableCreate,
    actor_id: Optional[int] = Depends(get_actor_id),
    service: TableService = Depends(get_table_service),
):
    """Create a table on a floor"""
    return await service.registry.create_table(data, actor_id)


@router.get("/outlet/{outlet_id}", response_model=List[TableResponse])
async def list_tables(
    outlet_id: int,
    floor_id: Optional[int] = Query(None),
    floor_ids: Optional[List[int]] = Query(None),
    section_id: Optional[int] = Query(None),
    status: Optional[TableStatus] = Query(None),
    is_active: Optional[bool] = Query(None),
    service: TableService = Depends(get_table_service),
):
    """Tables of an outlet with optional filters"""
    filters = TableFilters(
        floor_id=floor_id,
        floor_ids=floor_ids,
        section_id=section_id,
        status=status,
        is_active=is_active,
    )
    return await service.registry.list_tables(outlet_id, filters)


@router.get("/floor/{floor_id}")
async def get_tables_by_floor(
    floor_id: int,
    service: TableService = Depends(get_table_service),
) -> Dict[str, Any]:
    """Live floor view with shift status, sessions and merges"""
    return await service.registry.get_tables_by_floor(floor_id)


@router.get("/floor/{floor_id}/report")
async def get_floor_report(
    floor_id: int,
    date_from: Optional[datetime] = Query(None, alias="from"),
    date_to: Optional[datetime] = Query(None, alias="to"),
    service: TableService = Depends(get_table_service),
) -> Dict[str, Any]:
    return await service.reports.get_floor_report(floor_id, date_from, date_to)


@router.get("/realtime/{outlet_id}")
async def get_realtime_status(
    outlet_id: int,
    floor_id: Optional[int] = Query(None),
    service: TableService = Depends(get_table_service),
) -> List[Dict[str, Any]]:
    """Live status of every active table in an outlet"""
    return await service.registry.get_realtime_status(outlet_id, floor_id)


@router.get("/{table_id}", response_model=TableResponse)
async def get_table(
    table_id: int,
    service: TableService = Depends(get_table_service),
):
    return service.registry.get_table(table_id)


@router.get("/{table_id}/details")
async def get_full_details(
    table_id: int,
    service: TableService = Depends(get_table_service),
) -> Dict[str, Any]:
    """Everything known about a table, with a status summary"""
    return await service.projection.get_full_details(table_id)


@router.get("/{table_id}/kots")
async def get_running_kots(
    table_id: int,
    service: TableService = Depends(get_table_service),
) -> List[Dict[str, Any]]:
    return await service.projection.get_running_kots(table_id)


@router.put("/{table_id}", response_model=TableResponse)
async def update_table(
    table_id: int,
    data: TableUpdate,
    actor_id: Optional[int] = Depends(get_actor_id),
    service: TableService = Depends(get_table_service),
):
    return await service.registry.update_table(table_id, data, actor_id)


@router.delete("/{table_id}")
async def delete_table(
    table_id: int,
    actor_id: Optional[int] = Depends(get_actor_id),
    service: TableService = Depends(get_table_service),
):
    await service.registry.delete_table(table_id, actor_id)
    return {"success": True, "table_id": table_id}


# State machine
@router.patch("/{table_id}/status", response_model=TableResponse)
async def update_status(
    table_id: int,
    data: TableStatusUpdate,
    actor_id: Optional[int] = Depends(get_actor_id),
    service: TableService = Depends(get_table_service),
):
    return await service.state.update_status(table_id, data.status, actor_id, data.extra)


# Sessions
@router.post("/{table_id}/session", response_model=SessionStartResponse, status_code=201)
async def start_session(
    table_id: int,
    data: TableSessionCreate,
    actor_id: Optional[int] = Depends(get_actor_id),
    service: TableService = Depends(get_table_service),
):
    """Seat guests; the floor's shift must be open"""
    return await service.state.start_session(table_id, data, actor_id)


@router.post("/{table_id}/session/end", response_model=SessionEndResponse)
async def end_session(
    table_id: int,
    actor_id: Optional[int] = Depends(get_actor_id),
    service: TableService = Depends(get_table_service),
):
    """End the session, releasing any merged tables"""
    return await service.state.end_session(table_id, actor_id)


@router.get("/{table_id}/session")
async def get_current_session(
    table_id: int,
    service: TableService = Depends(get_table_service),
) -> Optional[Dict[str, Any]]:
    return await service.state.get_current_session(table_id)


@router.get("/{table_id}/session/active", response_model=Optional[TableSessionResponse])
async def get_active_session(
    table_id: int,
    service: TableService = Depends(get_table_service),
):
    return service.state.get_active_session(table_id)


@router.post("/{table_id}/session/transfer", response_model=TableSessionResponse)
async def transfer_session(
    table_id: int,
    data: SessionTransferRequest,
    actor_id: Optional[int] = Depends(get_actor_id),
    service: TableService = Depends(get_table_service),
):
    """
    Hand the session to another staff member

    Requires an elevated role (X-Actor-Role)
    """
    return await service.state.transfer_session(table_id, data.new_actor_id, actor_id)


@router.post("/{table_id}/session/order", response_model=TableSessionResponse)
async def attach_order(
    table_id: int,
    data: AttachOrderRequest,
    actor_id: Optional[int] = Depends(get_actor_id),
    service: TableService = Depends(get_table_service),
):
    return await service.state.attach_order(table_id, data.order_id, actor_id)


@router.get("/{table_id}/sessions")
async def get_session_history(
    table_id: int,
    date_from: Optional[datetime] = Query(None, alias="from"),
    date_to: Optional[datetime] = Query(None, alias="to"),
    limit: Optional[int] = Query(None, ge=1, le=500),
    service: TableService = Depends(get_table_service),
) -> List[Dict[str, Any]]:
    return await service.reports.get_session_history(table_id, date_from, date_to, limit)


# Merges
@router.post("/{table_id}/merge", response_model=List[MergedTableResponse])
async def merge_tables(
    table_id: int,
    data: MergeRequest,
    actor_id: Optional[int] = Depends(get_actor_id),
    service: TableService = Depends(get_table_service),
):
    """Merge the listed tables into this one"""
    return await service.merges.merge_tables(table_id, data.table_ids, actor_id)


@router.post("/{table_id}/unmerge", response_model=UnmergeResponse)
async def unmerge_tables(
    table_id: int,
    actor_id: Optional[int] = Depends(get_actor_id),
    service: TableService = Depends(get_table_service),
):
    """Split the merge group the table belongs to (primary or secondary)"""
    return await service.merges.unmerge_tables(table_id, actor_id)


@router.get("/{table_id}/merged", response_model=List[MergedTableResponse])
async def get_merged_tables(
    table_id: int,
    service: TableService = Depends(get_table_service),
):
    return service.merges.get_merged_tables(table_id)


@router.get("/{table_id}/capacity-check")
async def check_capacity_consistency(
    table_id: int,
    service: TableService = Depends(get_table_service),
) -> Dict[str, Any]:
    return service.merges.check_capacity_consistency(table_id)


# History and reports
@router.get("/{table_id}/history", response_model=List[TableHistoryResponse])
async def get_history(
    table_id: int,
    limit: Optional[int] = Query(None, ge=1, le=500),
    service: TableService = Depends(get_table_service),
):
    return [history_to_dict(h) for h in service.history.get_history(table_id, limit)]


@router.get("/{table_id}/report")
async def get_table_report(
    table_id: int,
    date_from: Optional[datetime] = Query(None, alias="from"),
    date_to: Optional[datetime] = Query(None, alias="to"),
    service: TableService = Depends(get_table_service),
) -> Dict[str, Any]:
    return await service.reports.get_table_report(table_id, date_from, date_to)


# Real-time
@router.websocket("/ws/{outlet_id}/{floor_id}")
async def floor_websocket(websocket: WebSocket, outlet_id: int, floor_id: int):
    """
    Floor-scoped stream of ``table:update`` events.

    The current floor view is sent once on connect; clients may send
    ``{"type": "ping"}`` to keep the connection alive.
    """
    await manager.connect(websocket, outlet_id, floor_id)

    try:
        await send_initial_state(websocket, floor_id)
        while True:
            data = await websocket.receive_json()
            await manager.handle_client_message(websocket, data)
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"WebSocket error: {e}")
    finally:
        manager.disconnect(websocket)


async def send_initial_state(websocket: WebSocket, floor_id: int):
    async with get_db_context() as db:
        service = TableService(db, broadcaster=get_broadcaster(), cache=get_cache())
        floor_view = await service.registry.get_tables_by_floor(floor_id)
    await websocket.send_json(
        {"event": "initial_state", "data": jsonable_encoder(floor_view)}
    )
