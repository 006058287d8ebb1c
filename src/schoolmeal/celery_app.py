"""Celery application configuration for background task processing."""

import os

from celery import Celery
from celery.schedules import crontab

from schoolmeal.config import get_settings

settings = get_settings()

celery_app = Celery(
    "schoolmeal",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["schoolmeal.tasks.ingestion"],
)

celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.timezone,
    enable_utc=True,
    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,  # One school batch at a time per worker
    # Result settings
    result_expires=86400 * 7,
    # Retry settings (default for all tasks)
    task_default_retry_delay=60,
    task_max_retries=3,
    # Beat scheduler settings
    beat_schedule={
        "daily-meal-ingestion": {
            "task": "schoolmeal.tasks.ingestion.run_daily_ingestion_task",
            "schedule": crontab(hour=5, minute=30),  # Before the school day, local time
            "options": {"queue": "ingestion"},
        },
    },
    task_routes={
        "schoolmeal.tasks.ingestion.*": {"queue": "ingestion"},
    },
    worker_hijack_root_logger=False,
)

if os.name == "nt":
    celery_app.conf.update(
        worker_pool="solo",
    )
