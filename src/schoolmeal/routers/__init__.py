"""API routers for the schoolmeal application."""

from schoolmeal.routers.ingestion import router as ingestion_router
from schoolmeal.routers.meals import router as meals_router

__all__ = [
    "ingestion_router",
    "meals_router",
]
