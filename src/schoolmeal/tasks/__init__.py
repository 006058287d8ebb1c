"""Celery tasks for background job processing."""

from schoolmeal.tasks.ingestion import ingest_school_task, run_daily_ingestion_task

__all__ = [
    "ingest_school_task",
    "run_daily_ingestion_task",
]
