"""Main FastAPI application."""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from flaglab.config import get_settings
from flaglab.middleware.logging import LoggingMiddleware, get_logger
from flaglab.api import flags, health
from flaglab.database import engine, Base
from flaglab.services.errors import FeatureFlagError
import flaglab.models  # noqa: F401  (registers tables on Base.metadata)

settings = get_settings()
logger = get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan - startup and shutdown."""
    Base.metadata.create_all(bind=engine)
    logger.info("database_tables_ready")

    yield  # App runs here

    logger.info("shutting_down", service=settings.app_name)


# Create FastAPI app
app = FastAPI(
    title="FlagLab",
    description="Feature flag evaluation with sticky rollouts, segments and A/B experiments",
    version="0.1.0",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan
)

# CORS middleware - Allow frontend origins
allowed_origins = [
    "http://localhost:5173",  # Local development
    "http://localhost:3000",  # Alternative local port
    settings.frontend_url,     # Production frontend
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Trace-ID", "X-Error-Code"]
)

# Logging middleware
app.add_middleware(LoggingMiddleware)


@app.exception_handler(FeatureFlagError)
async def handle_feature_flag_error(request: Request, exc: FeatureFlagError):
    logger.warning(
        "request_rejected",
        path=request.url.path,
        code=exc.code,
        message=exc.message
    )
    response = JSONResponse(status_code=exc.status_code, content=exc.to_payload())
    response.headers["X-Error-Code"] = exc.code
    return response


# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(flags.router, tags=["flags"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": settings.app_name,
        "version": "0.1.0",
        "docs": "/docs" if settings.debug else "disabled",
        "endpoints": {
            "health": "/health",
            "evaluate": "GET /flags/{key}/evaluate",
            "usage": "POST /flags/usage",
            "flag_analytics": "GET /flags/{key}/analytics",
            "experiment_analytics": "GET /experiments/{experiment_id}/analytics"
        }
    }


# uvicorn flaglab.main:app --reload
