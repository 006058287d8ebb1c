"""Daily batch ingestion over all registered schools."""

import asyncio
from datetime import date, datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from schoolmeal.config import Settings, get_settings
from schoolmeal.ingest.connectors.neis import NeisConnector
from schoolmeal.ingest.coordinator import IngestionCoordinator
from schoolmeal.ingest.repository import PersistenceError
from schoolmeal.logging_config import LoggingContext, get_logger
from schoolmeal.models import IngestionRun, SchoolInfo

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def local_today(settings: Settings | None = None) -> date:
    """Today's date in the feed's timezone."""
    settings = settings or get_settings()
    return datetime.now(ZoneInfo(settings.timezone)).date()


class IngestionResult:
    """Result of a batch ingestion."""

    def __init__(self) -> None:
        self.schools_total: int = 0
        self.schools_completed: int = 0
        self.schools_empty: int = 0
        self.schools_failed: int = 0
        self.errors: list[str] = []

    @property
    def status(self) -> str:
        if self.schools_failed == 0:
            return "completed"
        if self.schools_completed + self.schools_empty == 0:
            return "failed"
        return "partial"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "schools_total": self.schools_total,
            "schools_completed": self.schools_completed,
            "schools_empty": self.schools_empty,
            "schools_failed": self.schools_failed,
            "errors": self.errors,
        }


def get_registered_schools(
    session: Session, school_codes: list[str] | None = None
) -> list[SchoolInfo]:
    """Registered schools, optionally restricted to the given codes."""
    query = select(SchoolInfo).order_by(SchoolInfo.school_code)
    if school_codes:
        query = query.where(SchoolInfo.school_code.in_(school_codes))
    return list(session.execute(query).scalars().all())


async def ingest_school(
    coordinator: IngestionCoordinator,
    school: SchoolInfo,
    meal_date: date,
    result: IngestionResult,
    force: bool = False,
) -> None:
    """Ingest one school and fold the outcome into ``result``."""
    with LoggingContext(school_code=school.school_code):
        if not school.office_code:
            message = "missing office code"
            logger.warning(f"Skipping school {school.school_code}: {message}")
            result.schools_failed += 1
            result.errors.append(f"{school.school_code}: {message}")
            return

        record = await coordinator.ingest(
            school_code=school.school_code,
            office_code=school.office_code,
            meal_date=meal_date,
            force_refresh=force,
        )

        if record.fetch_status == "error":
            logger.warning(f"School {school.school_code}: feed unavailable, sentinel stored")
            result.schools_failed += 1
            result.errors.append(f"{school.school_code}: feed unavailable")
        elif record.is_sentinel:
            result.schools_empty += 1
        else:
            result.schools_completed += 1


async def run_daily_ingestion(
    meal_date: date | None = None,
    school_codes: list[str] | None = None,
    force: bool = False,
    task_id: str | None = None,
    trigger_type: str = "scheduled",
    coordinator: IngestionCoordinator | None = None,
    session_factory: sessionmaker[Session] | None = None,
    settings: Settings | None = None,
) -> dict[str, Any]:
    """
    Ingest one day's meals for every registered school.

    Schools are processed one at a time with a fixed pause between upstream
    calls. A failing feed call is logged and counted; the run continues.

    Args:
        meal_date: Day to ingest. Defaults to today in the configured timezone.
        school_codes: Optional subset of registered schools.
        force: Re-query upstream even for stored records, and rerun a
               completed day.
        task_id: Celery task ID for tracking.
        trigger_type: How the ingestion was triggered (scheduled, manual, retry).
        coordinator: Coordinator to use; one backed by NeisConnector is built
                     when omitted.
        session_factory: Session factory; the default engine's when omitted.

    Returns:
        Dictionary with ingestion results summary.

    Raises:
        PersistenceError: The store failed; the run is marked failed first.
    """
    settings = settings or get_settings()
    meal_date = meal_date or local_today(settings)
    result = IngestionResult()

    if session_factory is None:
        from schoolmeal.database import get_session_factory

        session_factory = get_session_factory()

    with LoggingContext(task_id=task_id):
        logger.info(f"Starting daily ingestion for {meal_date}")

        try:
            with session_factory() as session, session.begin():
                if not force:
                    existing_run = session.execute(
                        select(IngestionRun)
                        .where(
                            IngestionRun.meal_date == meal_date,
                            IngestionRun.status == "completed",
                        )
                        .limit(1)
                    ).scalar_one_or_none()
                    if existing_run:
                        logger.info(f"Ingestion already completed for {meal_date}")
                        return {
                            "status": "skipped",
                            "message": f"Ingestion already completed for {meal_date}",
                            "run_id": existing_run.id,
                        }

                schools = get_registered_schools(session, school_codes)
                if not schools:
                    logger.warning("No schools registered for ingestion")
                    return {
                        "status": "no_schools",
                        "message": "No schools registered for ingestion",
                    }

                run = IngestionRun(
                    run_date=local_today(settings),
                    meal_date=meal_date,
                    status="running",
                    task_id=task_id,
                    trigger_type=trigger_type,
                    schools_total=len(schools),
                    started_at=_utcnow(),
                )
                session.add(run)
                session.flush()
                run_id = run.id
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to start ingestion run: {e}") from e

        result.schools_total = len(schools)
        logger.info(f"Created ingestion run {run_id} for {len(schools)} schools")

        connector: NeisConnector | None = None
        if coordinator is None:
            connector = NeisConnector(settings=settings)
            coordinator = IngestionCoordinator(connector, session_factory, settings=settings)

        status = "failed"
        try:
            with LoggingContext(run_id=run_id):
                for index, school in enumerate(schools):
                    if index > 0:
                        await asyncio.sleep(settings.ingest_request_delay)
                    await ingest_school(coordinator, school, meal_date, result, force=force)
            status = result.status
        except asyncio.CancelledError:
            logger.warning(f"Run {run_id} cancelled after {_processed(result)} schools")
            status = "cancelled"
            raise
        except PersistenceError as e:
            logger.error(f"Aborting run {run_id}: {e}")
            result.errors.append(str(e))
            raise
        finally:
            if connector is not None:
                await connector.close()
            _finish_run(session_factory, run_id, status, result)

        logger.info(
            f"Ingestion completed: {result.schools_completed}/{result.schools_total} schools, "
            f"{result.schools_empty} empty, {result.schools_failed} failed"
        )

        return {
            "status": status,
            "run_id": run_id,
            "meal_date": meal_date.isoformat(),
            **result.to_dict(),
        }


def _processed(result: IngestionResult) -> int:
    return result.schools_completed + result.schools_empty + result.schools_failed


def _finish_run(
    session_factory: sessionmaker[Session],
    run_id: int,
    status: str,
    result: IngestionResult,
) -> None:
    """Record the final run status. Failures here are logged, not raised."""
    try:
        with session_factory() as session, session.begin():
            run = session.get(IngestionRun, run_id)
            if run is None:
                return
            run.status = status
            run.schools_completed = result.schools_completed
            run.schools_empty = result.schools_empty
            run.schools_failed = result.schools_failed
            run.completed_at = _utcnow()
            if result.errors:
                run.error_message = "; ".join(result.errors[:5])
    except SQLAlchemyError:
        logger.exception(f"Failed to record final status of run {run_id}")


if __name__ == "__main__":
    from schoolmeal.logging_config import configure_logging

    configure_logging()
    asyncio.run(run_daily_ingestion(trigger_type="manual"))
