"""Release Tracker FastAPI application."""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.middleware.sessions import SessionMiddleware

from .. import __version__
from ..config import get_settings
from ..errors import ServiceError
from .routers import (
    action_history,
    auth,
    built_versions,
    jira,
    patches,
    release_components,
    release_versions,
    users,
)

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("release-core")

logger.info(f"Starting Release Tracker API ({settings.environment})")

app = FastAPI(
    title="Release Tracker API",
    description="Release versions, built versions, patches and Jira sync",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.session_secret,
    session_cookie="release_tracker_session",
    max_age=settings.session_max_age,
    same_site="lax",
    https_only=settings.environment == "production",
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning(f"{request.method} {request.url.path} violated a constraint: {exc.orig}")
    return JSONResponse(
        status_code=409,
        content={
            "code": "CONFLICT",
            "message": "Resource already exists or conflicts with existing data",
            "details": {},
        },
    )


# Include all business logic routers with /api/v1 prefix
app.include_router(release_versions.router, prefix="/api/v1")
app.include_router(patches.router, prefix="/api/v1")
app.include_router(built_versions.router, prefix="/api/v1")
app.include_router(release_components.router, prefix="/api/v1")
app.include_router(jira.router, prefix="/api/v1")
app.include_router(action_history.router, prefix="/api/v1")
app.include_router(users.router, prefix="/api/v1")
app.include_router(auth.router, prefix="/api/v1")


@app.get("/")
def root():
    """Root endpoint with server info."""
    return {
        "name": "Release Tracker API",
        "version": __version__,
        "environment": settings.environment,
        "docs": "/docs",
    }


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
