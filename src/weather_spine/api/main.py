"""FastAPI application for Weather Spine."""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from weather_spine import __version__
from weather_spine.api.auth import AuthMiddleware
from weather_spine.config import Settings, get_settings
from weather_spine.errors import (
    AlreadyExists,
    DispatchError,
    NotFound,
    UpstreamUnavailable,
    WeatherSpineError,
)
from weather_spine.intake import JobIntake
from weather_spine.models import JobAccepted, JobRecord
from weather_spine.observability import configure_logging
from weather_spine.orchestration import DeadLetter, get_backend, get_dead_letter_store
from weather_spine.smoke import SmokeResult, SmokeTest
from weather_spine.status import get_status_store, sort_history
from weather_spine.storage import get_storage

logger = structlog.get_logger()

_ERROR_STATUS = {
    NotFound: 404,
    AlreadyExists: 409,
    UpstreamUnavailable: 502,
    DispatchError: 503,
}


# =============================================================================
# Lifespan
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: init/close resources."""
    configure_logging()
    settings = get_settings()
    if settings.status_store_type == "postgres":
        from weather_spine.db import get_pool

        get_pool()  # Initialize connection pool

    backend = get_backend()
    backend.start()
    logger.info("application_started", backend=backend.name, intake_mode=settings.intake_mode)
    yield
    backend.stop()
    if settings.status_store_type == "postgres":
        from weather_spine.db import close_pool

        close_pool()
    logger.info("application_stopped")


# =============================================================================
# Models
# =============================================================================


class StartJobRequest(BaseModel):
    max_items: int | None = Field(default=None, ge=0)


class HealthResponse(BaseModel):
    status: str
    version: str
    backend: str
    status_store: str
    backend_health: dict


# =============================================================================
# App Setup
# =============================================================================


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title="Weather Spine",
        description="Fan-out/fan-in job pipeline producing annotated weather station images",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_middleware(AuthMiddleware, api_key=settings.api_key)

    @app.exception_handler(WeatherSpineError)
    async def weather_spine_error_handler(request: Request, exc: WeatherSpineError):
        status_code = next(
            (code for error_type, code in _ERROR_STATUS.items() if isinstance(exc, error_type)),
            500,
        )
        logger.warning(
            "request_failed",
            path=request.url.path,
            status_code=status_code,
            error_type=type(exc).__name__,
            error=exc.message,
        )
        return JSONResponse(status_code=status_code, content={"detail": exc.message, **exc.to_dict()})

    # =========================================================================
    # Health
    # =========================================================================

    @app.get("/health", response_model=HealthResponse)
    def health():
        """Health check endpoint."""
        backend = get_backend()
        return HealthResponse(
            status="healthy",
            version=__version__,
            backend=backend.name,
            status_store=get_status_store().name,
            backend_health=backend.health(),
        )

    # =========================================================================
    # Jobs
    # =========================================================================

    @app.post("/jobs", response_model=JobAccepted, status_code=202)
    def start_job(request: StartJobRequest | None = None):
        """Start a job. Returns immediately; poll GET /jobs/{job_id} for progress."""
        max_items = request.max_items if request else None
        return JobIntake().start_job(max_items=max_items)

    @app.get("/jobs", response_model=list[JobRecord])
    def list_jobs(limit: int | None = Query(None, ge=1, le=1000)):
        """All jobs, most recently started first."""
        records = sort_history(get_status_store().list())
        return records[:limit] if limit else records

    @app.get("/jobs/{job_id}", response_model=JobRecord)
    def get_job(job_id: str):
        """Current state of one job."""
        return get_status_store().get(job_id)

    @app.get("/jobs/{job_id}/artifacts/{ordinal}")
    def get_artifact(job_id: str, ordinal: int):
        """Bytes of one unit's artifact, once it has been folded in."""
        record = get_status_store().get(job_id)
        entry = next((r for r in record.results if r.ordinal == ordinal), None)
        if entry is None:
            raise HTTPException(status_code=404, detail=f"No result for ordinal {ordinal}")
        content = get_storage().get(entry.artifact_path)
        return Response(content=content, media_type="image/jpeg")

    @app.post("/test/image", response_model=SmokeResult)
    def smoke_test():
        """Run one station through transform and storage, bypassing the queues."""
        return SmokeTest().run()

    # =========================================================================
    # DLQ
    # =========================================================================

    @app.get("/dlq", response_model=list[DeadLetter])
    def list_dlq(limit: int = Query(100, ge=1, le=1000)):
        """Messages that were given up on, most recent first."""
        return get_dead_letter_store().list(limit=limit)

    return app


app = create_app()
