"""Pydantic schemas for validating raw feed rows."""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

BREAKFAST = "조식"
LUNCH = "중식"
DINNER = "석식"

MEAL_SLOTS_BY_CODE: dict[str, str] = {
    "1": BREAKFAST,
    "2": LUNCH,
    "3": DINNER,
}

MEAL_SLOT_ALIASES: dict[str, str] = {
    "breakfast": BREAKFAST,
    "lunch": LUNCH,
    "dinner": DINNER,
    BREAKFAST: BREAKFAST,
    LUNCH: LUNCH,
    DINNER: DINNER,
}


def resolve_meal_slot(value: str | None, default: str = LUNCH) -> str:
    """Map a slot code, English name or Korean label to the stored label."""
    if value is None:
        return default
    value = str(value).strip()
    if value in MEAL_SLOTS_BY_CODE:
        return MEAL_SLOTS_BY_CODE[value]
    return MEAL_SLOT_ALIASES.get(value.lower(), value)


def parse_feed_date(value: Any) -> date:
    """Parse YYYYMMDD or YYYY-MM-DD into a date."""
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if len(text) == 8 and text.isdigit():
        return datetime.strptime(text, "%Y%m%d").date()
    return date.fromisoformat(text)


class FeedRow(BaseModel):
    """One meal slot row from the mealServiceDietInfo feed."""

    school_code: str = Field(alias="SD_SCHUL_CODE")
    office_code: str = Field(alias="ATPT_OFCDC_SC_CODE")
    meal_date: date = Field(alias="MLSV_YMD")
    slot_code: str | None = Field(default=None, alias="MMEAL_SC_CODE")
    slot_name: str | None = Field(default=None, alias="MMEAL_SC_NM")
    dish_text: str = Field(default="", alias="DDISH_NM")
    kcal: str | None = Field(default=None, alias="CAL_INFO")
    nutrient_text: str | None = Field(default=None, alias="NTR_INFO")
    origin_text: str | None = Field(default=None, alias="ORPLC_INFO")

    @field_validator("meal_date", mode="before")
    @classmethod
    def coerce_date(cls, v: Any) -> date:
        """Feed dates come as YYYYMMDD strings."""
        return parse_feed_date(v)

    @field_validator("school_code", "office_code", "slot_code", mode="before")
    @classmethod
    def coerce_code(cls, v: Any) -> str | None:
        """Codes are sometimes numbers in the JSON payload."""
        if v is None:
            return None
        return str(v).strip()

    @field_validator("dish_text", mode="before")
    @classmethod
    def default_dish_text(cls, v: Any) -> str:
        if not v:
            return ""
        return str(v)

    @property
    def meal_slot(self) -> str:
        """Stored slot label, preferring the numeric code over the display name."""
        if self.slot_code in MEAL_SLOTS_BY_CODE:
            return MEAL_SLOTS_BY_CODE[self.slot_code]
        return resolve_meal_slot(self.slot_name)
