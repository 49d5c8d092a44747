"""FastAPI application for the symptom triage service"""

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from symptom_triage.analysis_client import AnalysisClient
from symptom_triage.chat_graph import Analyzer, ConversationService
from symptom_triage.config import Settings, settings as default_settings
from symptom_triage.db import create_db_engine, init_db
from symptom_triage.errors import (
    BackendError,
    ConfigurationError,
    ConversationBusyError,
    PersistenceError,
    SessionNotFoundError,
    TriageError,
    ValidationError,
)
from symptom_triage.history import HistoryService, SubmissionStore
from symptom_triage.models import ErrorResponse
from symptom_triage.routes import router
from symptom_triage.session_store import SessionStore
from symptom_triage.submission import SubmissionService
from symptom_triage.uploads import MediaStore

logger = logging.getLogger(__name__)

_ERROR_STATUS: dict[type, int] = {
    ConfigurationError: 500,
    BackendError: 500,
    ValidationError: 422,
    SessionNotFoundError: 404,
    ConversationBusyError: 409,
    PersistenceError: 503,
}


def create_app(
    settings: Optional[Settings] = None,
    analysis_client: Optional[Analyzer] = None,
) -> FastAPI:
    """
    Build the application.

    ``analysis_client`` replaces the OpenAI-backed client (tests pass a fake).
    When no client is given and no credential is configured, the app still
    starts but every analysis-bound request is rejected with the same
    configuration error.

    Run with: uvicorn symptom_triage.main:create_app --factory
    """
    settings = settings or default_settings
    logging.basicConfig(level=settings.log_level)

    configuration_error: Optional[ConfigurationError] = None
    if analysis_client is None:
        try:
            analysis_client = AnalysisClient.from_settings(settings)
        except ConfigurationError as exc:
            logger.error("OpenAI API key not found. Please set OPENAI_API_KEY in your .env file.")
            configuration_error = exc

    engine = create_db_engine(settings.database_url)
    session_factory = init_db(engine)
    media = MediaStore(settings.upload_dir, settings.media_base_url)
    submission_store = SubmissionStore(session_factory)
    session_store = SessionStore(
        ttl_hours=settings.session_ttl_hours,
        max_context_turns=settings.context_max_turns,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cleanup_task = asyncio.create_task(
            session_store.run_periodic_cleanup(settings.session_cleanup_interval_minutes * 60)
        )
        try:
            yield
        finally:
            cleanup_task.cancel()
            with suppress(asyncio.CancelledError):
                await cleanup_task
            engine.dispose()

    app = FastAPI(
        title="Symptom Triage",
        description="Conversational symptom analysis with stored triage history",
        version="0.1.0",
        debug=settings.debug,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.configuration_error = configuration_error
    app.state.analysis_client = analysis_client
    app.state.conversations = ConversationService(analysis_client, session_store)
    app.state.submissions = SubmissionService(analysis_client, submission_store, media)
    app.state.history = HistoryService(submission_store)

    @app.exception_handler(TriageError)
    async def triage_error_handler(request: Request, exc: TriageError):
        status_code = next(
            (code for error_type, code in _ERROR_STATUS.items() if isinstance(exc, error_type)),
            500,
        )
        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(error=exc.user_message).model_dump(),
        )

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {
            "status": "healthy" if configuration_error is None else "misconfigured",
            "active_sessions": await session_store.get_active_session_count(),
        }

    app.include_router(router)
    if settings.media_base_url.startswith("/"):
        Path(settings.upload_dir).mkdir(parents=True, exist_ok=True)
        app.mount(settings.media_base_url, StaticFiles(directory=settings.upload_dir), name="media")

    return app
