# backend/modules/tables/__init__.py

from .models.table_models import (
    Table, TableLayout, TableSession, TableMerge, TableHistory,
    TableStatus, TableShape, SessionStatus, TableEvent
)

from .services.table_service import TableService

from .routers.table_router import router as tables_router

from .websocket.table_websocket import (
    manager as websocket_manager,
    FloorConnectionManager,
    RedisFloorBroadcaster,
)

__all__ = [
    # Models
    "Table", "TableLayout", "TableSession", "TableMerge", "TableHistory",
    "TableStatus", "TableShape", "SessionStatus", "TableEvent",

    # Services
    "TableService",

    # Routers
    "tables_router",

    # WebSocket
    "websocket_manager", "FloorConnectionManager", "RedisFloorBroadcaster",
]
