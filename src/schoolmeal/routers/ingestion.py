"""API routes for ingestion pipeline management."""

from datetime import date, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from schoolmeal.database import get_db
from schoolmeal.logging_config import get_logger
from schoolmeal.models import IngestionRun

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/ingestion", tags=["ingestion"])


# Response schemas
class IngestionTriggerRequest(BaseModel):
    """Request to trigger ingestion."""

    meal_date: date | None = Field(
        default=None, description="Day to ingest. If None, today in the configured timezone."
    )
    school_codes: list[str] | None = Field(
        default=None,
        description="Specific school codes to ingest. If None, ingest all registered schools.",
    )
    force: bool = Field(default=False, description="Force re-ingestion even if already run")


class IngestionTriggerResponse(BaseModel):
    """Response from ingestion trigger."""

    task_id: str
    status: str
    message: str


class IngestionRunResponse(BaseModel):
    """Summary of an ingestion run."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    run_date: date
    meal_date: date
    status: str
    task_id: str | None
    trigger_type: str
    schools_total: int
    schools_completed: int
    schools_empty: int
    schools_failed: int
    error_message: str | None
    started_at: datetime
    completed_at: datetime | None
    duration_seconds: float | None = None


class IngestionRunsListResponse(BaseModel):
    """Paginated list of ingestion runs."""

    runs: list[IngestionRunResponse]
    total: int
    page: int
    page_size: int


def _run_to_response(run: IngestionRun) -> IngestionRunResponse:
    response = IngestionRunResponse.model_validate(run)
    if run.completed_at and run.started_at:
        response.duration_seconds = (run.completed_at - run.started_at).total_seconds()
    return response


@router.post("/trigger", response_model=IngestionTriggerResponse)
def trigger_ingestion(request: IngestionTriggerRequest) -> IngestionTriggerResponse:
    """
    Manually trigger a daily ingestion run.

    This queues a Celery task. Use the returned task_id to find the run
    via the /runs endpoint.
    """
    from schoolmeal.tasks.ingestion import run_daily_ingestion_task

    logger.info(
        f"Manual ingestion trigger: date={request.meal_date}, "
        f"schools={request.school_codes}, force={request.force}"
    )

    try:
        task = run_daily_ingestion_task.delay(
            meal_date=request.meal_date.isoformat() if request.meal_date else None,
            school_codes=request.school_codes,
            force=request.force,
        )
    except Exception as e:
        logger.error(f"Failed to queue ingestion task: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to queue ingestion task: {e}",
        )

    return IngestionTriggerResponse(
        task_id=task.id,
        status="queued",
        message="Ingestion task queued successfully. Check /runs for progress.",
    )


@router.get("/runs", response_model=IngestionRunsListResponse)
def list_ingestion_runs(
    page: Annotated[int, Query(ge=1, description="Page number")] = 1,
    page_size: Annotated[int, Query(ge=1, le=100, description="Items per page")] = 20,
    status_filter: Annotated[str | None, Query(description="Filter by status")] = None,
    db: Session = Depends(get_db),
) -> IngestionRunsListResponse:
    """List recent ingestion runs, most recent first."""
    query = select(IngestionRun)
    if status_filter:
        query = query.where(IngestionRun.status == status_filter)

    total = db.execute(select(func.count()).select_from(query.subquery())).scalar() or 0

    query = query.order_by(IngestionRun.run_date.desc(), IngestionRun.id.desc())
    query = query.offset((page - 1) * page_size).limit(page_size)
    runs = db.execute(query).scalars().all()

    return IngestionRunsListResponse(
        runs=[_run_to_response(r) for r in runs],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/runs/{run_id}", response_model=IngestionRunResponse)
def get_ingestion_run(run_id: int, db: Session = Depends(get_db)) -> IngestionRunResponse:
    """Get a single ingestion run."""
    run = db.get(IngestionRun, run_id)
    if not run:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Ingestion run {run_id} not found",
        )
    return _run_to_response(run)
