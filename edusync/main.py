"""
EduSync Assessment Service Application

This module is the entry point of the assessment service. It wires the
repositories, course membership, event sinks, sequencer and orchestrator
together at startup and exposes them to the routers through
``app.state.components``.
"""

import datetime
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from redis.asyncio import Redis

from edusync import __version__
from edusync.api import edusync_exception_handler, validation_exception_handler
from edusync.assessments.assessment_service import AssessmentService
from edusync.assessments.controller import router as assessments_router
from edusync.assessments.membership import MemoryCourseMembership
from edusync.assessments.repositories import MemoryAssessmentRepository, MemoryResultRepository
from edusync.assessments.scoring import ScoringEngine, ScoringPolicy
from edusync.assessments.sequencer import EventSequencer
from edusync.assessments.sql_repository import SQLAssessmentRepository, SQLResultRepository
from edusync.assessments.submission_service import SubmissionOrchestrator
from edusync.common.error_handling import EduSyncError
from edusync.common.logger import APP_LOGGER_NAME, configure_logger
from edusync.config import Settings, settings as default_settings
from edusync.database.init_db import close_database, get_session_factory, initialize_database
from edusync.realtime.controllers import ws_router
from edusync.realtime.manager import WebSocketManager
from edusync.telemetry.sinks import build_event_sink

logger = configure_logger(
    name=APP_LOGGER_NAME,
    level=default_settings.LOG_LEVEL,
    use_json=default_settings.LOG_JSON,
    log_file=default_settings.LOG_FILE or None
)


async def build_components(settings: Settings) -> Dict[str, Any]:
    """
    Build the service components described by the settings.

    Args:
        settings: Application settings

    Returns:
        Dictionary of named components
    """
    redis_client = Redis.from_url(settings.REDIS_URL) if settings.REDIS_URL else None
    websocket_manager = WebSocketManager(redis_client)

    if settings.STORAGE_BACKEND == "sql":
        await initialize_database(
            settings.DATABASE_URL,
            echo=settings.SQL_ECHO,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT
        )
        assessments = SQLAssessmentRepository(get_session_factory())
        results = SQLResultRepository(get_session_factory())
    else:
        logger.warning("Using in-memory storage; assessments and results are lost on restart")
        assessments = MemoryAssessmentRepository()
        results = MemoryResultRepository(assessments)

    if settings.COURSE_ROSTER_PATH:
        membership = MemoryCourseMembership.from_file(settings.COURSE_ROSTER_PATH)
    else:
        membership = MemoryCourseMembership()

    sink = build_event_sink(
        settings.event_sink_names,
        events_path=settings.EVENTS_PATH,
        redis_client=redis_client,
        websocket_manager=websocket_manager,
        memory_limit=settings.EVENT_MEMORY_LIMIT
    )
    sequencer = EventSequencer(sink, delivery_timeout=settings.EVENT_SINK_TIMEOUT_SECONDS)

    orchestrator = SubmissionOrchestrator(
        assessments,
        results,
        membership,
        sequencer,
        scoring_engine=ScoringEngine(ScoringPolicy(settings.MULTI_CHOICE_PARTIAL_CREDIT)),
        grace=datetime.timedelta(seconds=settings.SUBMISSION_GRACE_SECONDS)
    )

    return {
        "settings": settings,
        "redis": redis_client,
        "websocket_manager": websocket_manager,
        "membership": membership,
        "sink": sink,
        "sequencer": sequencer,
        "orchestrator": orchestrator,
        "assessment_service": AssessmentService(assessments, results, membership)
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    FastAPI application lifespan context manager.

    Builds the components on startup unless they were supplied to
    create_app, and releases what it built on shutdown.
    """
    logger.info("Application startup sequence initiated.")
    owned = app.state.components is None
    if owned:
        app.state.components = await build_components(app.state.settings)

    components = app.state.components
    app_settings = components.get("settings", app.state.settings)
    manager = components["websocket_manager"]
    if manager.redis is not None and "websocket" not in app_settings.event_sink_names:
        await manager.start_redis_relay()

    logger.info("Application startup sequence complete.")
    yield

    logger.info("Application shutdown sequence initiated.")
    await components["sequencer"].flush()
    await manager.stop_redis_relay()
    if owned:
        await components["sink"].close()
        if app_settings.STORAGE_BACKEND == "sql":
            await close_database()
        if components["redis"] is not None:
            await components["redis"].aclose()
    logger.info("Application shutdown sequence complete.")


def create_app(
    settings: Optional[Settings] = None,
    components: Optional[Dict[str, Any]] = None
) -> FastAPI:
    """
    Create and configure a FastAPI application instance.

    Args:
        settings: Application settings; the environment's when omitted
        components: Prebuilt components, mostly for tests

    Returns:
        Configured FastAPI application
    """
    settings = settings or default_settings

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Assessment submission, scoring and live quiz monitoring",
        version=__version__,
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.components = components

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(assessments_router, prefix=f"{settings.API_PREFIX}/assessments", tags=["assessments"])
    app.include_router(ws_router)

    app.add_exception_handler(EduSyncError, edusync_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    logger.info(f"Application created with {len(app.routes)} routes")
    return app


app = create_app()
