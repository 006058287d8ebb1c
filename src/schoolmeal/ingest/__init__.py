"""Meal feed ingestion: fetch, normalize, persist."""

from schoolmeal.ingest.batch_ingest import IngestionResult, run_daily_ingestion
from schoolmeal.ingest.coordinator import IngestionCoordinator
from schoolmeal.ingest.repository import MealRepository, PersistenceError

__all__ = [
    "IngestionCoordinator",
    "IngestionResult",
    "MealRepository",
    "PersistenceError",
    "run_daily_ingestion",
]
