"""Celery tasks for the meal ingestion pipeline."""

import asyncio
from datetime import date
from typing import Any

from schoolmeal.celery_app import celery_app
from schoolmeal.logging_config import LoggingContext, configure_logging, get_logger

# Configure logging for Celery workers
configure_logging()
logger = get_logger(__name__)


def run_async(coro: Any) -> Any:
    """Run an async coroutine in a synchronous context."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    # Called from inside a running loop: run on a separate thread
    import concurrent.futures

    with concurrent.futures.ThreadPoolExecutor(max_workers=1) as executor:
        return executor.submit(asyncio.run, coro).result()


def _parse_date(value: str | None) -> date | None:
    return date.fromisoformat(value) if value else None


@celery_app.task(
    bind=True,
    name="schoolmeal.tasks.ingestion.run_daily_ingestion_task",
    max_retries=3,
    default_retry_delay=300,  # 5 minutes
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=3600,
    retry_jitter=True,
    acks_late=True,
    reject_on_worker_lost=True,
)
def run_daily_ingestion_task(
    self,
    meal_date: str | None = None,
    school_codes: list[str] | None = None,
    force: bool = False,
) -> dict[str, Any]:
    """
    Celery task to run the daily ingestion over all registered schools.

    Scheduled by Celery Beat every morning; can also be triggered from the API.

    Args:
        meal_date: ISO date to ingest; today (local time) when omitted.
        school_codes: Optional subset of registered schools.
        force: Re-query upstream even for stored records.

    Returns:
        dict with ingestion results summary.
    """
    from schoolmeal.ingest.batch_ingest import run_daily_ingestion

    task_id = self.request.id
    trigger_type = "scheduled" if not self.request.called_directly else "manual"

    with LoggingContext(task_id=task_id):
        logger.info(
            f"Starting daily ingestion task {task_id} "
            f"(date={meal_date}, schools={school_codes}, force={force}, trigger={trigger_type})"
        )

        try:
            result = run_async(
                run_daily_ingestion(
                    meal_date=_parse_date(meal_date),
                    school_codes=school_codes,
                    force=force,
                    task_id=task_id,
                    trigger_type=trigger_type,
                )
            )
        except Exception as e:
            logger.exception(f"Ingestion task {task_id} failed with error: {e}")
            # Re-raise to trigger Celery retry mechanism
            raise

        status = result.get("status", "unknown")
        if status in ("completed", "skipped", "no_schools"):
            logger.info(f"Ingestion task {task_id} finished with status: {status}")
        else:
            logger.warning(f"Ingestion task {task_id} finished with status: {status}")

        return result


@celery_app.task(
    bind=True,
    name="schoolmeal.tasks.ingestion.ingest_school_task",
    max_retries=3,
    default_retry_delay=60,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=600,
    acks_late=True,
)
def ingest_school_task(
    self,
    school_code: str,
    office_code: str,
    meal_date: str | None = None,
    meal_slot: str | None = None,
    force: bool = False,
) -> dict[str, Any]:
    """
    Celery task to ingest one school's meal for one day.

    Returns:
        The stored meal record as a JSON-friendly dict.
    """
    from schoolmeal.database import get_session_factory
    from schoolmeal.ingest.batch_ingest import local_today
    from schoolmeal.ingest.connectors.neis import NeisConnector
    from schoolmeal.ingest.coordinator import IngestionCoordinator

    task_id = self.request.id
    day = _parse_date(meal_date) or local_today()

    async def _ingest() -> dict[str, Any]:
        async with NeisConnector() as connector:
            coordinator = IngestionCoordinator(connector, get_session_factory())
            record = await coordinator.ingest(
                school_code, office_code, day, meal_slot=meal_slot, force_refresh=force
            )
        return record.model_dump(mode="json")

    with LoggingContext(task_id=task_id, school_code=school_code):
        logger.info(f"Starting single school ingestion for {school_code} on {day}")
        try:
            return run_async(_ingest())
        except Exception as e:
            logger.exception(f"School {school_code} ingestion failed: {e}")
            raise
