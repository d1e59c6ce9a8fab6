"""Nimmit Backend API - FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from nimmit import __version__

from .config import get_settings
from .logging_config import get_logger, setup_logging
from .rate_limit import limiter
from .responses import register_error_handlers
from .routes import (
    applications_router,
    audit_router,
    briefing_router,
    jobs_router,
    notifications_router,
    payouts_router,
    scheduled_router,
)

API_PREFIX = "/api/v1"

logger = get_logger("nimmit.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_file)
    logger.info(
        f"Starting Nimmit Backend API | debug={settings.debug} | storage={settings.storage_backend}"
    )
    yield
    logger.info("Shutting down Nimmit Backend API")


app = FastAPI(
    title="Nimmit Backend API",
    description="Job lifecycle, credit ledger and worker payouts",
    version=__version__,
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

register_error_handlers(app)

# CORS middleware
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(briefing_router, prefix=API_PREFIX)
app.include_router(jobs_router, prefix=API_PREFIX)
app.include_router(payouts_router, prefix=API_PREFIX)
app.include_router(applications_router, prefix=API_PREFIX)
app.include_router(scheduled_router, prefix=API_PREFIX)
app.include_router(notifications_router, prefix=API_PREFIX)
app.include_router(audit_router, prefix=API_PREFIX)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "service": "nimmit-backend",
        "version": __version__,
        "status": "ok",
    }


@app.get("/health")
async def health():
    """Detailed health check with actual storage verification."""
    from .database import get_supabase_client

    current = get_settings()
    if current.storage_backend == "memory":
        return {"status": "healthy", "database": "memory"}

    try:
        db = get_supabase_client(current)
        db.table("users").select("id").limit(1).execute()
        db_status = "connected"
    except Exception as e:
        db_status = f"error: {str(e)[:50]}"

    overall_status = "healthy" if db_status == "connected" else "degraded"
    return {
        "status": overall_status,
        "database": db_status,
    }
