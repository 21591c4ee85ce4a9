import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from xo_arena.config import get_settings
from xo_arena.routers import rooms, ws
from xo_arena.services.game import get_room_registry
from xo_arena.services.websocket.manager import get_connection_manager

logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting XO Arena API")
    logger.debug("Debug mode: %s", settings.DEBUG)

    # Initialize WebSocket connection manager and start cleanup task
    connection_manager = get_connection_manager()
    await connection_manager.start_cleanup_task()
    logger.info("WebSocket connection manager initialized")

    # Initialize room registry and start idle room eviction
    room_registry = get_room_registry()
    await room_registry.start_eviction_task()
    logger.info("Room registry initialized")

    yield

    # Shutdown: stop background tasks, close all connections
    logger.info("Shutting down XO Arena API")
    await room_registry.stop_eviction_task()
    await connection_manager.stop_cleanup_task()
    await connection_manager.close_all_connections()
    logger.info("WebSocket and room cleanup complete")


app = FastAPI(
    title="XO Arena API",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
logger.debug("CORS configured with origins: %s", settings.CORS_ORIGINS)

app.include_router(rooms.router, prefix="/api/v1")
app.include_router(ws.router, prefix="/api/v1")
logger.debug("Routers registered: /api/v1/rooms, /api/v1/ws")


@app.get("/")
def root():
    return {"message": "XO Arena API"}


@app.get("/health")
def health():
    return {"status": "healthy"}
