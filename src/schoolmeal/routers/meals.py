"""API routes for on-demand meal lookup."""

from collections.abc import AsyncIterator
from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from schoolmeal.config import get_settings
from schoolmeal.database import get_session_factory
from schoolmeal.ingest.batch_ingest import local_today
from schoolmeal.ingest.connectors.neis import NeisConnector
from schoolmeal.ingest.coordinator import IngestionCoordinator
from schoolmeal.ingest.repository import PersistenceError
from schoolmeal.ingest.schemas import MEAL_SLOTS_BY_CODE, resolve_meal_slot
from schoolmeal.logging_config import get_logger
from schoolmeal.schemas import MealsResponse

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/meals", tags=["meals"])


async def get_coordinator() -> AsyncIterator[IngestionCoordinator]:
    """Dependency providing a coordinator backed by the NEIS feed."""
    settings = get_settings()
    async with NeisConnector(settings=settings) as connector:
        yield IngestionCoordinator(connector, get_session_factory(), settings=settings)


@router.get("", response_model=MealsResponse)
async def get_meal(
    school_code: Annotated[str, Query(min_length=1, description="Standard school code")],
    office_code: Annotated[str, Query(min_length=1, description="Education office code")],
    meal_date: Annotated[
        date | None, Query(alias="date", description="Meal date, today when omitted")
    ] = None,
    meal_slot: Annotated[
        str | None, Query(description="조식/중식/석식, 1/2/3 or breakfast/lunch/dinner")
    ] = None,
    refresh: Annotated[bool, Query(description="Query upstream even when stored")] = False,
    coordinator: IngestionCoordinator = Depends(get_coordinator),
) -> MealsResponse:
    """
    Get the normalized meal for a school, day and slot.

    Stored records are served directly; otherwise the upstream feed is
    queried and the result stored. When no meal exists a placeholder record
    is returned with ``is_empty_result`` set.
    """
    if meal_slot is not None:
        slot = resolve_meal_slot(meal_slot)
        if slot not in MEAL_SLOTS_BY_CODE.values():
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"Unknown meal slot: {meal_slot}",
            )
        meal_slot = slot

    try:
        record = await coordinator.ingest(
            school_code=school_code,
            office_code=office_code,
            meal_date=meal_date or local_today(),
            meal_slot=meal_slot,
            force_refresh=refresh,
        )
    except PersistenceError as e:
        logger.error(f"Meal lookup failed for {school_code}: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Meal store unavailable",
        )

    return MealsResponse(meal=record, is_empty_result=record.is_sentinel)
