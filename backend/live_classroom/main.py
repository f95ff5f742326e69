"""
Live Classroom Coordinator
FastAPI Application Entry Point

On startup one coordinator (session registry, popup scheduler, question engine,
signaling relay) is built for this server instance. On shutdown every room is
closed, cancelling its timers, and pending store writes are flushed.
"""

import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from live_classroom.config import settings
from live_classroom.database import engine, AsyncSessionLocal
from live_classroom.api.classroom_ws import router as classroom_ws_router
from live_classroom.services.coordinator import ClassroomCoordinator
from live_classroom.services.store import SqlClassroomStore

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("live-classroom")


def _default_coordinator() -> ClassroomCoordinator:
    return ClassroomCoordinator.build(SqlClassroomStore(AsyncSessionLocal), settings)


def create_app(coordinator_factory: Optional[Callable[[], ClassroomCoordinator]] = None) -> FastAPI:
    factory = coordinator_factory or _default_coordinator

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifecycle: build the coordinator, tear rooms down on exit."""
        logger.info("🚀 Starting %s...", settings.APP_NAME)
        logger.info("Skipping create_all; ensure Alembic migrations are applied (alembic upgrade head)")
        app.state.coordinator = factory()
        logger.info("%s is ready!", settings.APP_NAME)

        yield

        # Shutdown
        logger.info("Shutting down...")
        await app.state.coordinator.shutdown()
        await engine.dispose()

    app = FastAPI(
        title=settings.APP_NAME,
        description="Real-time coordinator for live virtual classrooms",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(classroom_ws_router)

    @app.get("/", tags=["Health"])
    async def root():
        """Health check endpoint."""
        return {
            "status": "online",
            "app": settings.APP_NAME,
            "version": "1.0.0",
        }

    @app.get("/api/v1/health", tags=["Health"])
    async def health_check():
        """Detailed health check."""
        coordinator: ClassroomCoordinator = app.state.coordinator
        return {
            "status": "healthy",
            "app": settings.APP_NAME,
            "version": "1.0.0",
            "active_rooms": len(coordinator.registry.room_ids()),
            "pending_writes": coordinator.writer.pending,
        }

    return app


app = create_app()
