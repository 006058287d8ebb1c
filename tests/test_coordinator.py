"""Tests for the fetch -> normalize -> persist coordinator."""

import asyncio
from unittest.mock import MagicMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from schoolmeal.ingest.connectors.base import DecodeError, NetworkError, UpstreamError
from schoolmeal.ingest.coordinator import IngestionCoordinator, build_meal_values
from schoolmeal.ingest.repository import PersistenceError
from schoolmeal.ingest.schemas import FeedRow
from schoolmeal.models import MealImage, MealMenu, MealQuiz, MealRating
from schoolmeal.schemas import NO_DATA_MARKER, SENTINEL_KCAL


def _count_meals(session_factory) -> int:
    with session_factory() as session:
        return session.execute(select(func.count()).select_from(MealMenu)).scalar()


@pytest.fixture
def coordinator(mock_feed, session_factory, test_settings):
    return IngestionCoordinator(mock_feed, session_factory, settings=test_settings)


class TestBuildMealValues:
    """Tests for row normalization."""

    def test_normalized_fields(self, lunch_feed_row):
        values = build_meal_values(lunch_feed_row, "중식")

        assert values["menu_items"] == ["기장밥", "쇠고기미역국", "닭텐더/130ml", "배추김치", "우유"]
        assert values["kcal"] == "812.3 Kcal"
        assert values["origin_info"].startswith("domestic : 돼지고기, 쇠고기")
        assert values["nutrition_info"].startswith("탄수화물 : 73.6(g)")
        assert values["fetch_status"] == "ok"


class TestIngest:
    """Tests for IngestionCoordinator.ingest."""

    @pytest.mark.asyncio
    async def test_stores_normalized_record(self, coordinator, meal_date):
        record = await coordinator.ingest("7010057", "B10", meal_date)

        assert record.meal_slot == "중식"
        assert record.menu_items[0] == "기장밥"
        assert record.origin_info == "domestic : 돼지고기, 쇠고기\n미국 : 쌀\n중국 : 고춧가루, 쌀"
        assert record.fetch_status == "ok"
        assert not record.is_sentinel
        assert _count_meals(coordinator.session_factory) == 1

    @pytest.mark.asyncio
    async def test_stored_record_short_circuits(self, coordinator, mock_feed, meal_date):
        first = await coordinator.ingest("7010057", "B10", meal_date)
        second = await coordinator.ingest("7010057", "B10", meal_date)

        assert first == second
        mock_feed.fetch_meals.assert_awaited_once()
        assert _count_meals(coordinator.session_factory) == 1

    @pytest.mark.asyncio
    async def test_force_refresh_keeps_one_row_and_id(self, coordinator, mock_feed, meal_date):
        first = await coordinator.ingest("7010057", "B10", meal_date)
        second = await coordinator.ingest("7010057", "B10", meal_date, force_refresh=True)

        assert mock_feed.fetch_meals.await_count == 2
        assert second.id == first.id
        assert second.model_dump() == first.model_dump()
        assert _count_meals(coordinator.session_factory) == 1

    @pytest.mark.asyncio
    async def test_slot_selection(self, coordinator, mock_feed, neis_breakfast_row, meal_date):
        mock_feed.fetch_meals.return_value = [
            FeedRow.model_validate(neis_breakfast_row),
            *mock_feed.fetch_meals.return_value,
        ]

        breakfast = await coordinator.ingest("7010057", "B10", meal_date, meal_slot="1")
        lunch = await coordinator.ingest("7010057", "B10", meal_date, meal_slot="lunch")

        assert breakfast.meal_slot == "조식"
        assert breakfast.menu_items == ["토스트", "우유"]
        assert lunch.meal_slot == "중식"
        assert breakfast.id != lunch.id

    @pytest.mark.asyncio
    async def test_missing_slot_writes_empty_sentinel(self, coordinator, meal_date):
        record = await coordinator.ingest("7010057", "B10", meal_date, meal_slot="석식")

        assert record.menu_items == [NO_DATA_MARKER]
        assert record.kcal == SENTINEL_KCAL
        assert record.fetch_status == "empty"
        assert record.is_sentinel

    @pytest.mark.asyncio
    async def test_empty_sentinel_short_circuits(self, coordinator, mock_feed, meal_date):
        mock_feed.fetch_meals.return_value = []

        first = await coordinator.ingest("7010057", "B10", meal_date)
        second = await coordinator.ingest("7010057", "B10", meal_date)

        assert first.is_sentinel
        assert second == first
        mock_feed.fetch_meals.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_dish_text_without_items_is_sentinel(self, coordinator, mock_feed, meal_date):
        mock_feed.fetch_meals.return_value[0].dish_text = "<br/>(1.2)"

        record = await coordinator.ingest("7010057", "B10", meal_date)

        assert record.is_sentinel
        assert record.fetch_status == "empty"

    @pytest.mark.parametrize(
        "error",
        [
            NetworkError("connection refused"),
            DecodeError("bad envelope"),
            UpstreamError(code=500, message="Internal Server Error"),
        ],
    )
    @pytest.mark.asyncio
    async def test_feed_failure_writes_error_sentinel(self, coordinator, mock_feed, meal_date, error):
        mock_feed.fetch_meals.side_effect = error

        record = await coordinator.ingest("7010057", "B10", meal_date)

        assert record.is_sentinel
        assert record.fetch_status == "error"

    @pytest.mark.asyncio
    async def test_error_sentinel_is_retried(self, coordinator, mock_feed, lunch_feed_row, meal_date):
        mock_feed.fetch_meals.side_effect = NetworkError("timeout")
        failed = await coordinator.ingest("7010057", "B10", meal_date)

        mock_feed.fetch_meals.side_effect = None
        mock_feed.fetch_meals.return_value = [lunch_feed_row]
        recovered = await coordinator.ingest("7010057", "B10", meal_date)

        assert failed.fetch_status == "error"
        assert recovered.fetch_status == "ok"
        assert recovered.id == failed.id
        assert mock_feed.fetch_meals.await_count == 2

    @pytest.mark.asyncio
    async def test_feed_failure_keeps_stored_record(self, coordinator, mock_feed, meal_date):
        stored = await coordinator.ingest("7010057", "B10", meal_date)

        mock_feed.fetch_meals.side_effect = NetworkError("connection refused")
        refreshed = await coordinator.ingest("7010057", "B10", meal_date, force_refresh=True)

        assert refreshed == stored
        assert refreshed.origin_info == stored.origin_info
        assert refreshed.nutrition_info == stored.nutrition_info

    @pytest.mark.asyncio
    async def test_sentinel_preserves_stored_notes(self, coordinator, mock_feed, meal_date):
        stored = await coordinator.ingest("7010057", "B10", meal_date)

        mock_feed.fetch_meals.return_value = []
        emptied = await coordinator.ingest("7010057", "B10", meal_date, force_refresh=True)

        assert emptied.is_sentinel
        assert emptied.id == stored.id
        assert emptied.origin_info == stored.origin_info
        assert emptied.nutrition_info == stored.nutrition_info

    @pytest.mark.parametrize(
        "make_dependent",
        [
            lambda meal_id: MealImage(meal_id=meal_id, image_url="https://img.test/1.jpg"),
            lambda meal_id: MealRating(meal_id=meal_id, user_id="user-1", rating=5),
            lambda meal_id: MealQuiz(meal_id=meal_id, question="오늘 국의 재료는?"),
        ],
        ids=["image", "rating", "quiz"],
    )
    @pytest.mark.asyncio
    async def test_referenced_record_keeps_id(
        self, coordinator, mock_feed, meal_date, make_dependent
    ):
        stored = await coordinator.ingest("7010057", "B10", meal_date)
        dependent = make_dependent(stored.id)
        with coordinator.session_factory() as session, session.begin():
            session.add(dependent)

        mock_feed.fetch_meals.return_value[0].dish_text = "현미밥<br/>된장국"
        updated = await coordinator.ingest("7010057", "B10", meal_date, force_refresh=True)

        assert updated.id == stored.id
        assert updated.menu_items == ["현미밥", "된장국"]
        assert _count_meals(coordinator.session_factory) == 1
        with coordinator.session_factory() as session:
            kept = session.execute(select(type(dependent))).scalar_one()
            assert kept.meal_id == stored.id

    @pytest.mark.asyncio
    async def test_one_fetch_stores_every_slot(
        self, coordinator, mock_feed, neis_breakfast_row, meal_date
    ):
        mock_feed.fetch_meals.return_value = [
            FeedRow.model_validate(neis_breakfast_row),
            *mock_feed.fetch_meals.return_value,
        ]

        lunch = await coordinator.ingest("7010057", "B10", meal_date)
        assert _count_meals(coordinator.session_factory) == 2

        breakfast = await coordinator.ingest("7010057", "B10", meal_date, meal_slot="조식")

        mock_feed.fetch_meals.assert_awaited_once()
        assert lunch.meal_slot == "중식"
        assert breakfast.meal_slot == "조식"
        assert breakfast.menu_items == ["토스트", "우유"]
        assert breakfast.kcal == "450.0 Kcal"

    @pytest.mark.asyncio
    async def test_concurrent_ingests_converge_on_one_row(self, coordinator, mock_feed, meal_date):
        first, second = await asyncio.gather(
            coordinator.ingest("7010057", "B10", meal_date),
            coordinator.ingest("7010057", "B10", meal_date),
        )

        assert first.id == second.id
        assert first.menu_items == second.menu_items
        assert _count_meals(coordinator.session_factory) == 1

    @pytest.mark.asyncio
    async def test_request_key_overrides_row_key(self, coordinator, meal_date):
        record = await coordinator.ingest("7010099", "B10", meal_date)

        assert record.school_code == "7010099"
        assert record.meal_date == meal_date

    @pytest.mark.asyncio
    async def test_slow_feed_times_out(self, session_factory, test_settings, meal_date):
        async def never_returns(*args, **kwargs):
            await asyncio.sleep(60)

        feed = MagicMock()
        feed.fetch_meals = never_returns
        test_settings.feed_call_timeout = 0.01
        coordinator = IngestionCoordinator(feed, session_factory, settings=test_settings)

        record = await coordinator.ingest("7010057", "B10", meal_date)

        assert record.fetch_status == "error"

    @pytest.mark.asyncio
    async def test_store_failure_raises(self, mock_feed, test_settings, meal_date):
        session = MagicMock()
        session.__enter__.return_value = session
        session.execute.side_effect = OperationalError("SELECT", {}, Exception("db down"))
        session_factory = MagicMock(return_value=session)
        coordinator = IngestionCoordinator(mock_feed, session_factory, settings=test_settings)

        with pytest.raises(PersistenceError):
            await coordinator.ingest("7010057", "B10", meal_date)

        mock_feed.fetch_meals.assert_not_called()

