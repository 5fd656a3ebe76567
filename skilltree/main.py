"""
Skill Progression Engine

FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from skilltree.api.deps import get_text_generator
from skilltree.api.middleware.request_id import REQUEST_ID_HEADER, RequestIdMiddleware
from skilltree.api.v1 import router as api_v1_router
from skilltree.config import get_settings
from skilltree.database import close_db, init_db
from skilltree.engines.progression.errors import (
    AttemptLimitError,
    ContentGenerationError,
    DataIntegrityError,
    NotFoundError,
    ProgressionError,
    SkillLockedError,
)
from skilltree.logging_config import configure_logging, get_logger
from skilltree.schemas.common import ErrorResponse, HealthResponse

settings = get_settings()
logger = get_logger(__name__)

_STATUS_BY_ERROR = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (SkillLockedError, status.HTTP_409_CONFLICT),
    (AttemptLimitError, status.HTTP_409_CONFLICT),
    (ContentGenerationError, status.HTTP_502_BAD_GATEWAY),
    (DataIntegrityError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Configure logging, create tables on startup; dispose the engine on shutdown."""
    configure_logging(
        log_level=settings.log_level,
        environment=settings.environment,
        debug=settings.debug,
    )

    logger.info("Starting %s v%s", settings.project_name, settings.version)
    await init_db()
    logger.info("Database initialized")

    yield

    logger.info("Shutting down...")
    await close_db()
    logger.info("Database connections closed")


app = FastAPI(
    title=settings.project_name,
    description="""
    Skill Progression Engine

    Dependency-gated skill graph with derived mastery, spaced review and
    validated AI-generated lesson content.

    ## Features

    - **Skill graph**: unlock checks and topological tiers
    - **Mastery**: idempotent lesson completions, graded exercise attempts
    - **Content**: lesson sections generated once, validated, then stored
    - **Review**: SM-2 style schedule of mastered material
    - **XP**: 500 XP per level
    """,
    version=settings.version,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# Last added = outermost
app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:5173",  # Vite default
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _request_id_headers(request: Request) -> dict:
    req_id = getattr(request.state, "request_id", None)
    return {REQUEST_ID_HEADER: req_id} if req_id else {}


@app.exception_handler(ProgressionError)
async def progression_exception_handler(request: Request, exc: ProgressionError):
    """Map engine errors onto HTTP status codes."""
    status_code = next(
        (code for error_type, code in _STATUS_BY_ERROR if isinstance(exc, error_type)),
        status.HTTP_400_BAD_REQUEST,
    )
    body = ErrorResponse(
        detail=str(exc),
        code=type(exc).__name__,
        skill_ids=exc.skill_ids if isinstance(exc, DataIntegrityError) else None,
    )
    if status_code >= 500:
        logger.error("%s: %s", type(exc).__name__, exc)
        body.request_id = getattr(request.state, "request_id", None)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(exclude_none=True),
        headers=_request_id_headers(request),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=_request_id_headers(request),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors."""
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": "Validation error", "errors": errors},
        headers=_request_id_headers(request),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception: %s", exc)
    req_id = getattr(request.state, "request_id", None)
    if settings.debug:
        content = {"detail": str(exc), "type": type(exc).__name__, "request_id": req_id}
    else:
        content = {"detail": "Internal server error", "request_id": req_id}
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=content,
        headers=_request_id_headers(request),
    )


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Check application health."""
    generator = get_text_generator()
    return HealthResponse(
        status="ok",
        version=settings.version,
        database="connected",
        ai_configured=bool(getattr(generator, "is_configured", False)),
    )


app.include_router(api_v1_router, prefix=settings.api_v1_prefix)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "skilltree.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
