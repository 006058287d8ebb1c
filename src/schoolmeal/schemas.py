"""Common data schemas for the pipeline."""

from datetime import date
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

NO_DATA_MARKER = "급식 정보가 없습니다"
SENTINEL_KCAL = "0 kcal"

FetchStatus = Literal["ok", "empty", "error"]


class MealRecord(BaseModel):
    """Canonical, normalized meal handed to downstream consumers."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    school_code: str
    office_code: str
    meal_date: date
    meal_slot: str
    menu_items: list[str] = Field(default_factory=list)
    kcal: str
    origin_info: str | None = None
    nutrition_info: str = ""
    fetch_status: FetchStatus = "ok"

    @property
    def is_sentinel(self) -> bool:
        """True for the "no data" placeholder rows."""
        return self.menu_items == [NO_DATA_MARKER]


class MealsResponse(BaseModel):
    """Response body of the on-demand meals endpoint."""

    meal: MealRecord
    is_empty_result: bool
