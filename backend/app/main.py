from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from core.cache import RedisCacheService, use_cache
from core.config import settings
from core.exceptions import register_exception_handlers
from core.redis_config import (
    close_redis_connection,
    get_redis_client,
    redis_health_check,
)
from app.startup import configure_startup_logging, init_db, run_startup_checks

# ========== Table Management ==========
from modules.tables.routers.table_router import router as tables_router
from modules.tables.websocket.table_websocket import (
    RedisFloorBroadcaster,
    manager as floor_manager,
    use_broadcaster,
)

configure_startup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="FloorState - Restaurant Table & Session API",
    description="""
    Table and dining-session state engine for restaurant floors.

    ## Features

    * **Table Registry** - Tables, layout positions and floor views
    * **Sessions** - Seating gated by the floor's open shift
    * **Merging** - Combine adjacent tables into one billable unit
    * **Real-time** - Floor-scoped WebSocket updates
    * **Reports** - Session history, table and floor usage

    ## Actor headers

    Authentication happens upstream. Send the acting staff id in
    `X-Actor-Id` and their role in `X-Actor-Role`.
    """,
    version="1.0.0",
)

# Register exception handlers for consistent error responses
register_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(tables_router)

_redis_broadcaster = None


@app.on_event("startup")
async def startup_event():
    """Initialize services on application startup"""
    global _redis_broadcaster

    run_startup_checks()
    init_db()

    client = await get_redis_client() if settings.redis_enabled else None
    if client is not None:
        use_cache(RedisCacheService(client))
        logger.info("Using Redis cache for table lists")

    if settings.broadcast_backend == "redis" and client is None:
        message = "Redis broadcast selected but Redis is unreachable"
        if settings.is_production:
            raise RuntimeError(message)
        logger.warning(f"{message} - using local broadcast")
    elif settings.broadcast_backend == "redis":
        _redis_broadcaster = RedisFloorBroadcaster(client, floor_manager)
        await _redis_broadcaster.start()
        use_broadcaster(_redis_broadcaster)


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on application shutdown"""
    if _redis_broadcaster is not None:
        await _redis_broadcaster.close()
    await close_redis_connection()


@app.get("/")
def read_root():
    return {"message": "FloorState backend is running"}


@app.get("/health")
async def health():
    return {"status": "ok", "redis": await redis_health_check()}
