"""Pytest configuration and shared fixtures."""

from datetime import date
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from schoolmeal.config import Settings
from schoolmeal.database import Base, create_session_factory
from schoolmeal.ingest.schemas import FeedRow
from schoolmeal.models import SchoolInfo

# =============================================================================
# Pytest Configuration
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (require external services)"
    )
    config.addinivalue_line("markers", "slow: marks tests as slow running")


# =============================================================================
# Settings Fixtures
# =============================================================================


@pytest.fixture
def test_settings():
    """Settings with no pauses and an in-memory database."""
    return Settings(
        database_url="sqlite://",
        neis_api_key="test-key",
        neis_base_url="https://feed.test/hub",
        feed_timeout=1.0,
        feed_max_retries=1,
        feed_call_timeout=5.0,
        ingest_request_delay=0,
    )


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture(scope="function")
def test_db_engine():
    """Create an in-memory SQLite engine shared across sessions.

    StaticPool keeps the single connection alive so every session sees the
    same database.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    yield engine

    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(test_db_engine):
    """Session factory bound to the test engine."""
    return create_session_factory(test_db_engine)


@pytest.fixture
def registered_schools(session_factory):
    """Three registered schools, one without an office code."""
    schools = [
        SchoolInfo(school_code="7010057", office_code="B10", school_name="서울고등학교"),
        SchoolInfo(school_code="7010058", office_code="B10", school_name="서울중학교"),
        SchoolInfo(school_code="7010059", office_code=None, school_name="코드없는학교"),
    ]
    with session_factory() as session, session.begin():
        session.add_all(schools)
    return schools


# =============================================================================
# NEIS Feed Fixtures
# =============================================================================


MEAL_DATE = date(2024, 3, 4)


@pytest.fixture
def meal_date():
    """The day used across feed fixtures."""
    return MEAL_DATE


@pytest.fixture
def neis_lunch_row():
    """One raw lunch row as served by mealServiceDietInfo."""
    return {
        "ATPT_OFCDC_SC_CODE": "B10",
        "ATPT_OFCDC_SC_NM": "서울특별시교육청",
        "SD_SCHUL_CODE": "7010057",
        "SCHUL_NM": "서울고등학교",
        "MMEAL_SC_CODE": "2",
        "MMEAL_SC_NM": "중식",
        "MLSV_YMD": "20240304",
        "MLSV_FGR": 812,
        "DDISH_NM": "기장밥<br/>쇠고기미역국(5.6.16)<br/>닭텐더/130ml-u<br/>배추김치(9)<br/>우유-1",
        "ORPLC_INFO": (
            "쇠고기(종류) : 국내산(한우)<br/>돼지고기 : 국내산<br/>"
            "쌀 : 수입산(미국, 중국 등)<br/>고춧가루 : 중국<br/>"
            "수산가공품(어묵) : 국내산<br/>비고 : 원산지 표기"
        ),
        "CAL_INFO": "812.3 Kcal",
        "NTR_INFO": (
            "탄수화물(g) : 73.6<br/>단백질(g) : 10.2<br/>지방(g) : 9.8<br/>"
            "칼슘(mg) : 45<br/>철분(mg) : 2.1<br/>비타민C(mg) : 12.3"
        ),
        "MLSV_FROM_YMD": "20240304",
        "MLSV_TO_YMD": "20240304",
    }


@pytest.fixture
def neis_breakfast_row(neis_lunch_row):
    """A breakfast row for the same school and day."""
    return {
        **neis_lunch_row,
        "MMEAL_SC_CODE": "1",
        "MMEAL_SC_NM": "조식",
        "DDISH_NM": "토스트<br/>우유",
        "CAL_INFO": "450.0 Kcal",
    }


@pytest.fixture
def neis_success_payload(neis_breakfast_row, neis_lunch_row):
    """Successful feed envelope with two slots."""
    return {
        "mealServiceDietInfo": [
            {
                "head": [
                    {"list_total_count": 2},
                    {"RESULT": {"CODE": "INFO-000", "MESSAGE": "정상 처리되었습니다."}},
                ]
            },
            {"row": [neis_breakfast_row, neis_lunch_row]},
        ]
    }


@pytest.fixture
def neis_no_data_payload():
    """Envelope the feed sends when a day has no meals."""
    return {"RESULT": {"CODE": "INFO-200", "MESSAGE": "해당하는 데이터가 없습니다."}}


@pytest.fixture
def lunch_feed_row(neis_lunch_row):
    """Parsed lunch row."""
    return FeedRow.model_validate(neis_lunch_row)


@pytest.fixture
def mock_feed(lunch_feed_row):
    """Feed stub returning the lunch row."""
    feed = AsyncMock()
    feed.fetch_meals = AsyncMock(return_value=[lunch_feed_row])
    return feed
