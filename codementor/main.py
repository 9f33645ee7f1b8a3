"""Main FastAPI application."""

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest
from starlette.middleware.gzip import GZipMiddleware

from codementor.collaboration.channel import BroadcastChannel
from codementor.collaboration.lifecycle import MembershipLifecycle
from codementor.collaboration.registry import RoomRegistry
from codementor.config import settings
from codementor.database import db_manager
from codementor.metrics import REQUEST_COUNT, REQUEST_DURATION

logger = structlog.get_logger()


def build_collaboration_core(app: FastAPI) -> MembershipLifecycle:
    """Create the registry, channel and lifecycle for one application instance."""
    registry = RoomRegistry()
    channel = BroadcastChannel(registry)
    lifecycle = MembershipLifecycle(registry, channel)

    app.state.room_registry = registry
    app.state.broadcast_channel = channel
    app.state.collaboration_lifecycle = lifecycle
    return lifecycle


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    logger.info("Starting CodeMentor application", version=settings.app_version)

    try:
        if db_manager.engine is None:
            await db_manager.initialize()
        logger.info("Application startup completed")
        yield
    finally:
        logger.info("Shutting down CodeMentor application")
        await app.state.collaboration_lifecycle.wait_for_pending_writes()
        await db_manager.close()


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description="Gamified coding-education backend with realtime collaboration",
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
    )

    build_collaboration_core(app)

    # Configure CORS
    if settings.cors_enabled:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=settings.cors_credentials,
            allow_methods=settings.cors_methods,
            allow_headers=settings.cors_headers,
        )

    # Compression middleware
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    # Request logging and metrics middleware
    @app.middleware("http")
    async def logging_middleware(request: Request, call_next) -> Response:
        start_time = time.time()

        response = await call_next(request)

        duration = time.time() - start_time

        REQUEST_COUNT.labels(
            method=request.method,
            endpoint=request.url.path,
            status=response.status_code,
        ).inc()

        REQUEST_DURATION.labels(
            method=request.method,
            endpoint=request.url.path,
        ).observe(duration)

        logger.info(
            "Request completed",
            method=request.method,
            url=str(request.url),
            status_code=response.status_code,
            duration=duration,
        )

        return response

    # Health check endpoint
    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        db_health = await db_manager.health_check()
        registry: RoomRegistry = request.app.state.room_registry
        channel: BroadcastChannel = request.app.state.broadcast_channel

        return {
            "status": "healthy" if db_health["status"] in ("healthy", "disabled") else "degraded",
            "service": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
            "timestamp": time.time(),
            "database": db_health,
            "collaboration": {
                "live_rooms": len(registry.room_codes()),
                "connections": channel.connection_count,
            },
        }

    # Metrics endpoint
    if settings.metrics_enabled:
        @app.get("/metrics")
        async def metrics():
            """Prometheus metrics endpoint."""
            return Response(
                generate_latest(),
                media_type="text/plain",
            )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler."""
        logger.error(
            "Unhandled exception",
            error=str(exc),
            error_type=type(exc).__name__,
            url=str(request.url),
            method=request.method,
            exc_info=True,
        )

        if settings.is_development:
            # In development, include full error details
            return JSONResponse(
                status_code=500,
                content={
                    "error": "Internal Server Error",
                    "detail": str(exc),
                    "type": type(exc).__name__,
                },
            )
        return JSONResponse(
            status_code=500,
            content={"error": "Internal Server Error"},
        )

    # Include routers
    from codementor.ai.routes import router as ai_router
    from codementor.auth.routes import router as auth_router
    from codementor.collaboration.hub import router as hub_router
    from codementor.collaboration.routes import router as collaboration_router
    from codementor.gamification.routes import dashboard_router
    from codementor.gamification.routes import router as game_router
    from codementor.roadmaps.routes import router as roadmap_router

    app.include_router(auth_router, prefix="/api/v1")
    app.include_router(collaboration_router, prefix="/api/v1")
    app.include_router(game_router, prefix="/api/v1")
    app.include_router(dashboard_router, prefix="/api/v1")
    app.include_router(roadmap_router, prefix="/api/v1")
    app.include_router(ai_router, prefix="/api/v1")
    app.include_router(hub_router)

    return app


# Create the app instance
app = create_app()
