"""FastAPI application entry point."""

import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from schoolmeal import __version__
from schoolmeal.config import get_settings
from schoolmeal.database import Base, get_engine
from schoolmeal.logging_config import LoggingContext, configure_logging, get_logger
from schoolmeal.routers import ingestion_router, meals_router

# Configure logging on module load
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler for startup and shutdown events."""
    logger.info("Starting School Meal API")

    # Create database tables if they don't exist
    engine = get_engine()
    Base.metadata.create_all(engine)
    logger.info("Database tables initialized")

    yield

    logger.info("Shutting down School Meal API")
    engine.dispose()


app = FastAPI(
    title="School Meal API",
    description="Normalized school meal menus from the NEIS open data feed",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Tag every log line of a request with its request id."""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    with LoggingContext(request_id=request_id):
        response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# Include routers
app.include_router(meals_router)
app.include_router(ingestion_router)


@app.get("/health")
async def health_check() -> dict:
    """Basic health check endpoint."""
    return {"status": "ok", "service": "schoolmeal-api"}


@app.get("/")
async def root() -> dict:
    """Root endpoint with API information."""
    return {
        "name": "School Meal API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }
