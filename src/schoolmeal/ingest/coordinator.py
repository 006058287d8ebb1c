"""Fetch -> normalize -> persist for one (school, date, meal slot)."""

import asyncio
from datetime import date
from typing import Any, Protocol

from sqlalchemy.orm import Session, sessionmaker

from schoolmeal.config import Settings, get_settings
from schoolmeal.ingest.connectors.base import FeedError, NetworkError
from schoolmeal.ingest.repository import MealRepository
from schoolmeal.ingest.schemas import FeedRow, resolve_meal_slot
from schoolmeal.logging_config import LoggingContext, get_logger
from schoolmeal.normalize import normalize_nutrition, normalize_origin, split_menu_items
from schoolmeal.schemas import NO_DATA_MARKER, SENTINEL_KCAL, MealRecord

logger = get_logger(__name__)

# Records in these states are served from the store without another upstream call
SETTLED_STATUSES = ("ok", "empty")


class MealFeed(Protocol):
    """Anything that can fetch raw rows for a school and day."""

    async def fetch_meals(
        self, school_code: str, office_code: str, meal_date: date
    ) -> list[FeedRow]: ...


def build_meal_values(row: FeedRow, meal_slot: str) -> dict[str, Any]:
    """Normalize one feed row into meal_menus column values."""
    return {
        "school_code": row.school_code,
        "office_code": row.office_code,
        "meal_date": row.meal_date,
        "meal_slot": meal_slot,
        "menu_items": split_menu_items(row.dish_text),
        "kcal": (row.kcal or "").strip() or SENTINEL_KCAL,
        "origin_info": normalize_origin(row.origin_text),
        "nutrition_info": normalize_nutrition(row.nutrient_text),
        "fetch_status": "ok",
    }


class IngestionCoordinator:
    """
    Orchestrates one ingestion: cache lookup, feed call, normalization, write.

    Feed failures never leave this class; they degrade to the cached record or
    a "no data" sentinel. PersistenceError is the only exception callers see.
    """

    def __init__(
        self,
        feed: MealFeed,
        session_factory: sessionmaker[Session],
        settings: Settings | None = None,
    ):
        self.feed = feed
        self.session_factory = session_factory
        self.settings = settings or get_settings()

    async def ingest(
        self,
        school_code: str,
        office_code: str,
        meal_date: date,
        meal_slot: str | None = None,
        force_refresh: bool = False,
    ) -> MealRecord:
        """
        Return the canonical record for a key, fetching upstream when needed.

        Args:
            school_code: Standard school code.
            office_code: Education office code.
            meal_date: Day of the meal.
            meal_slot: Slot label or code; defaults to the configured slot.
            force_refresh: Query upstream even when a settled record exists.

        Raises:
            PersistenceError: The backing store failed.
        """
        slot = resolve_meal_slot(meal_slot, default=self.settings.default_meal_slot)

        with LoggingContext(school_code=school_code):
            cached = self._load(school_code, meal_date, slot)
            if cached is not None and cached.fetch_status in SETTLED_STATUSES and not force_refresh:
                logger.debug(f"Serving stored {slot} for {meal_date} ({cached.fetch_status})")
                return cached

            rows, failed = await self._fetch(school_code, office_code, meal_date)

            if failed and cached is not None and not cached.is_sentinel:
                logger.warning(f"Feed failed, keeping stored {slot} for {meal_date}")
                return cached

            # The feed echoes the key back; the request is authoritative
            slot_values = {
                row_slot: {**values, "school_code": school_code, "meal_date": meal_date}
                for row_slot, values in self._values_by_slot(rows).items()
            }

            values = slot_values.pop(slot, None)
            if values is None:
                values = {
                    "school_code": school_code,
                    "office_code": office_code,
                    "meal_date": meal_date,
                    "meal_slot": slot,
                    "menu_items": [NO_DATA_MARKER],
                    "kcal": SENTINEL_KCAL,
                    "origin_info": None,
                    "nutrition_info": "",
                    "fetch_status": "error" if failed else "empty",
                }
                record = self._persist(values, preserve_notes=True)
            else:
                record = self._persist(values, preserve_notes=False)

            # One call covers the whole day; keep the other slots too
            for other in slot_values.values():
                self._persist(other, preserve_notes=False)

            return record

    @staticmethod
    def _values_by_slot(rows: list[FeedRow]) -> dict[str, dict[str, Any]]:
        """Normalized values of the first row per slot, minus rows with no dishes."""
        by_slot: dict[str, dict[str, Any]] = {}
        for row in rows:
            by_slot.setdefault(row.meal_slot, build_meal_values(row, row.meal_slot))
        return {slot: values for slot, values in by_slot.items() if values["menu_items"]}

    def _load(self, school_code: str, meal_date: date, meal_slot: str) -> MealRecord | None:
        with self.session_factory() as session:
            meal = MealRepository(session).get_by_key(school_code, meal_date, meal_slot)
            return MealRecord.model_validate(meal) if meal is not None else None

    async def _fetch(
        self, school_code: str, office_code: str, meal_date: date
    ) -> tuple[list[FeedRow], bool]:
        """Call the feed; returns (rows, failed)."""
        try:
            rows = await asyncio.wait_for(
                self.feed.fetch_meals(school_code, office_code, meal_date),
                timeout=self.settings.feed_call_timeout,
            )
            return rows, False
        except asyncio.TimeoutError:
            error: FeedError = NetworkError(
                f"Feed call exceeded {self.settings.feed_call_timeout}s"
            )
        except FeedError as e:
            error = e

        logger.warning(
            f"Feed unavailable for {school_code} on {meal_date}: "
            f"{type(error).__name__}: {error}"
        )
        return [], True

    def _persist(self, values: dict[str, Any], preserve_notes: bool) -> MealRecord:
        """Write values for the key in a single transaction."""
        with self.session_factory() as session, session.begin():
            repo = MealRepository(session)
            existing = repo.get_by_key(
                values["school_code"], values["meal_date"], values["meal_slot"]
            )

            if existing is not None and preserve_notes:
                # Sentinels must not wipe notes a previous run stored
                if existing.origin_info:
                    values["origin_info"] = existing.origin_info
                if existing.nutrition_info:
                    values["nutrition_info"] = existing.nutrition_info

            if existing is not None and repo.has_dependents(existing.id):
                logger.info(f"Meal {existing.id} is referenced, updating in place")
                meal = repo.update_in_place(existing, values)
            else:
                meal = repo.upsert(values)

            record = MealRecord.model_validate(meal)

        logger.info(
            f"Stored {record.meal_slot} for {record.meal_date} "
            f"({record.fetch_status}, {len(record.menu_items)} items)"
        )
        return record
