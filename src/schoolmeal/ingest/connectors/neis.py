"""NEIS open data connector for the mealServiceDietInfo feed."""

import asyncio
import time
from datetime import date
from typing import Any

import httpx
from pydantic import ValidationError
from tenacity import (
    RetryError,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from schoolmeal.config import Settings, get_settings
from schoolmeal.ingest.connectors.base import (
    ConnectorResponse,
    DecodeError,
    NetworkError,
    UpstreamError,
)
from schoolmeal.ingest.schemas import FeedRow
from schoolmeal.logging_config import get_logger

logger = get_logger(__name__)

DATASET = "mealServiceDietInfo"
SUCCESS_CODE = "INFO-000"


def extract_rows(payload: Any) -> list[dict[str, Any]]:
    """
    Unwrap the feed envelope into raw row dicts.

    The envelope is ``{"mealServiceDietInfo": [{"head": [..., {"RESULT": ...}]},
    {"row": [...]}]}``. When there is nothing to report the feed answers with
    a bare ``{"RESULT": {...}}`` instead. Any result code other than INFO-000
    and any missing or empty body mean "no meals", not an error.

    Raises:
        DecodeError: The payload has no header segment at all.
    """
    if not isinstance(payload, dict):
        raise DecodeError("Feed payload is not a JSON object", payload=payload)

    segments = payload.get(DATASET)
    if segments is None:
        result = payload.get("RESULT")
        if not isinstance(result, dict):
            raise DecodeError("Feed payload has neither a dataset nor a RESULT", payload=payload)
        logger.info(f"Feed returned {result.get('CODE')}: {result.get('MESSAGE', '')}")
        return []

    if not isinstance(segments, list) or not segments:
        raise DecodeError("Dataset segment is not a non-empty list", payload=payload)

    head = segments[0].get("head") if isinstance(segments[0], dict) else None
    if not isinstance(head, list):
        raise DecodeError("Dataset segment has no head", payload=payload)

    result: dict[str, Any] = {}
    for item in head:
        if isinstance(item, dict) and isinstance(item.get("RESULT"), dict):
            result = item["RESULT"]
            break

    code = result.get("CODE")
    if code != SUCCESS_CODE:
        logger.info(f"Feed returned {code}: {result.get('MESSAGE', '')}")
        return []

    if len(segments) < 2 or not isinstance(segments[1], dict):
        return []

    rows = segments[1].get("row") or []
    if not isinstance(rows, list):
        raise DecodeError("Row segment is not a list", payload=payload)
    return [row for row in rows if isinstance(row, dict)]


def parse_rows(raw_rows: list[dict[str, Any]]) -> list[FeedRow]:
    """Validate raw rows, skipping the ones that do not fit the schema."""
    rows = []
    for raw in raw_rows:
        try:
            rows.append(FeedRow.model_validate(raw))
        except ValidationError as e:
            logger.warning(f"Skipping malformed feed row: {e.error_count()} validation errors")
    return rows


class NeisConnector:
    """Connector for the NEIS school meal feed."""

    MAX_RETRIES = 3
    BACKOFF_BASE = 1
    BACKOFF_MAX = 10
    REQUEST_DELAY = 0.1  # Minimum gap between requests

    def __init__(
        self,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
    ):
        settings = settings or get_settings()
        self.api_key = api_key if api_key is not None else settings.neis_api_key
        self.url = f"{base_url.rstrip('/')}/{DATASET}" if base_url else settings.meal_feed_url
        self.timeout = timeout or settings.feed_timeout
        self.max_retries = max_retries or settings.feed_max_retries or self.MAX_RETRIES
        self._client = client
        self._owns_client = client is None
        self._last_request_time: float = 0

    @property
    def name(self) -> str:
        """Return connector name."""
        return "neis"

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers={
                    "Accept": "application/json",
                    "User-Agent": "SchoolMeal/1.0",
                },
            )
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this connector created it."""
        if self._client and self._owns_client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _throttle(self) -> None:
        """Apply rate limiting between requests."""
        now = time.monotonic()
        elapsed = now - self._last_request_time
        if elapsed < self.REQUEST_DELAY:
            await asyncio.sleep(self.REQUEST_DELAY - elapsed)
        self._last_request_time = time.monotonic()

    async def _request(self, params: dict[str, Any]) -> ConnectorResponse:
        """Make a GET request with retry on transport errors."""
        await self._throttle()
        client = await self._get_client()

        @retry(
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError)),
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.BACKOFF_BASE, max=self.BACKOFF_MAX),
            reraise=False,
        )
        async def _do_request() -> httpx.Response:
            return await client.get(self.url, params=params)

        try:
            response = await _do_request()
        except RetryError as e:
            logger.error(f"Feed request failed after {self.max_retries} attempts: {self.url}")
            raise NetworkError(
                f"Feed request failed after {self.max_retries} attempts: {e.last_attempt.exception()}"
            ) from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Feed request failed: {e}") from e

        if response.status_code >= 400:
            error_detail = response.text[:500] if response.text else "No details"
            logger.error(f"Feed error {response.status_code}: {error_detail}")
            raise UpstreamError(code=response.status_code, message=error_detail)

        try:
            data = response.json()
        except ValueError as e:
            raise DecodeError(
                f"Feed response is not JSON: {response.text[:200]!r}", payload=response.text
            ) from e

        return ConnectorResponse(
            data=data,
            status_code=response.status_code,
            headers=dict(response.headers),
        )

    async def fetch_meals(
        self,
        school_code: str,
        office_code: str,
        meal_date: date,
    ) -> list[FeedRow]:
        """
        Fetch all meal slot rows for one school and day.

        Args:
            school_code: Standard school code (SD_SCHUL_CODE).
            office_code: Education office code (ATPT_OFCDC_SC_CODE).
            meal_date: Day to fetch.

        Returns:
            Parsed rows; empty when the feed has no meals for the day.

        Raises:
            NetworkError, DecodeError, UpstreamError
        """
        params = {
            "KEY": self.api_key,
            "Type": "json",
            "pIndex": "1",
            "pSize": "100",
            "ATPT_OFCDC_SC_CODE": office_code,
            "SD_SCHUL_CODE": school_code,
            "MLSV_YMD": meal_date.strftime("%Y%m%d"),
        }
        logger.debug(f"Fetching meals for {school_code} ({office_code}) on {meal_date}")

        response = await self._request(params)
        rows = parse_rows(extract_rows(response.data))

        logger.info(f"Fetched {len(rows)} meal rows for {school_code} on {meal_date}")
        return rows

    async def __aenter__(self) -> "NeisConnector":
        """Async context manager entry."""
        await self._get_client()
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.close()
