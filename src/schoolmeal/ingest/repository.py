"""Persistence boundary for canonical meal records."""

from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import exists, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from schoolmeal.logging_config import get_logger
from schoolmeal.models import DEPENDENT_MODELS, MealMenu

logger = get_logger(__name__)

CONFLICT_KEY = ("school_code", "meal_date", "meal_slot")
MUTABLE_FIELDS = (
    "office_code",
    "menu_items",
    "kcal",
    "origin_info",
    "nutrition_info",
    "fetch_status",
)


class PersistenceError(Exception):
    """Raised when the backing store fails to read or write a meal record."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class MealRepository:
    """Keyed reads and conflict-safe writes over the meal_menus table."""

    def __init__(self, session: Session):
        self.session = session

    def _insert(self):
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(MealMenu)
        if dialect == "sqlite":
            return sqlite.insert(MealMenu)
        raise PersistenceError(f"Unsupported database dialect for upserts: {dialect}")

    def get_by_key(self, school_code: str, meal_date: date, meal_slot: str) -> MealMenu | None:
        """Fetch the record for a (school, date, slot) key, if any."""
        try:
            return self.session.execute(
                select(MealMenu)
                .where(
                    MealMenu.school_code == school_code,
                    MealMenu.meal_date == meal_date,
                    MealMenu.meal_slot == meal_slot,
                )
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to read meal {school_code}/{meal_date}: {e}") from e

    def has_dependents(self, meal_id: str) -> bool:
        """Check whether any photo, rating or quiz references the meal."""
        try:
            for model in DEPENDENT_MODELS:
                referenced = self.session.execute(
                    select(exists().where(model.meal_id == meal_id))
                ).scalar()
                if referenced:
                    return True
            return False
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to check references to meal {meal_id}: {e}") from e

    def upsert(self, values: dict[str, Any]) -> MealMenu:
        """
        Insert or update on the composite key in one statement.

        The id of an existing row is never rewritten.
        """
        now = _utcnow()
        stmt = self._insert().values(**values, created_at=now, updated_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=list(CONFLICT_KEY),
            set_={
                **{field: getattr(stmt.excluded, field) for field in MUTABLE_FIELDS},
                "updated_at": now,
            },
        )

        try:
            self.session.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to upsert meal {values.get('school_code')}/{values.get('meal_date')}: {e}"
            ) from e

        return self._reload(values["school_code"], values["meal_date"], values["meal_slot"])

    def update_in_place(self, meal: MealMenu, values: dict[str, Any]) -> MealMenu:
        """Update the mutable fields of a referenced record, keyed by id."""
        changes = {field: values[field] for field in MUTABLE_FIELDS if field in values}
        try:
            self.session.execute(
                update(MealMenu)
                .where(MealMenu.id == meal.id)
                .values(**changes, updated_at=_utcnow())
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to update meal {meal.id}: {e}") from e

        return self._reload(meal.school_code, meal.meal_date, meal.meal_slot)

    def _reload(self, school_code: str, meal_date: date, meal_slot: str) -> MealMenu:
        meal = self.get_by_key(school_code, meal_date, meal_slot)
        if meal is None:
            raise PersistenceError(
                f"Store returned no row for {school_code}/{meal_date}/{meal_slot} after write"
            )
        return meal
