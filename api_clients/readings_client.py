"""
Reading provider API client for fetching glucose and insulin readings per dataset.
"""
import logging
import os
from datetime import datetime
from typing import Any, Optional

import httpx

from hypo_analysis.models import GlucoseReading, InsulinReading, InsulinType, ReadingBatch
from hypo_analysis.utils import MMOL_TO_MGDL, sort_readings
from models.reading_models import GlucoseUnitEnum, ReadingBatchPayload, ReadingBatchRequest

# get reading provider environment variables
HYPO_READINGS_API_BASE_URL = os.getenv("HYPO_READINGS_API_BASE_URL")
HYPO_READINGS_API_TOKEN = os.getenv("HYPO_READINGS_API_TOKEN")

READING_BATCH_ENDPOINT = "/readings/batch"


class ReadingsClient:
    """
    Client for the reading provider service.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        *,
        timeout: float | httpx.Timeout = httpx.Timeout(30.0, connect=10.0),
    ):
        self.base_url = base_url or HYPO_READINGS_API_BASE_URL
        self.token = token or HYPO_READINGS_API_TOKEN
        if not self.base_url or not self.token:
            raise ValueError("###### [Readings API] base URL/token not set")
        self.timeout = timeout
        self.headers = {
            "content-type": "application/json",
            "x-session-token": self.token,
        }

    def _url(self, endpoint: str) -> str:
        return f"{self.base_url.rstrip('/')}/{endpoint.lstrip('/')}"

    @staticmethod
    def _log_http_error(method: str, url: str, exc: httpx.HTTPError) -> None:
        if isinstance(exc, httpx.TimeoutException):
            logging.error(f"Timeout error calling Readings API {method} {url}: {exc}")
        elif isinstance(exc, httpx.HTTPStatusError):
            logging.error(f"HTTP error calling Readings API {method} {url}: {exc}")
            logging.error(f"Response status: {exc.response.status_code}")
            logging.error(f"Response text: {exc.response.text}")
        else:
            logging.error(f"Request error calling Readings API {method} {url}: {exc}")

    async def _make_request(self, method: str, endpoint: str, params=None, json_data=None):
        url = self._url(endpoint)
        try:
            async with httpx.AsyncClient(follow_redirects=True, timeout=self.timeout) as client:
                response = await client.request(
                    method=method.upper(),
                    url=url,
                    params=params,
                    json=json_data,
                    headers=self.headers,
                )
                logging.info(f"Request {url} completed with status: {response.status_code}")
                response.raise_for_status()
                return response.json() if response.text else {}
        except httpx.HTTPError as e:
            self._log_http_error(method, url, e)
            raise

    def _make_request_sync(self, method: str, endpoint: str, params=None, json_data=None):
        url = self._url(endpoint)
        try:
            with httpx.Client(follow_redirects=True, timeout=self.timeout) as client:
                response = client.request(
                    method=method.upper(),
                    url=url,
                    params=params,
                    json=json_data,
                    headers=self.headers,
                )
                logging.info(f"Request {url} completed with status: {response.status_code}")
                response.raise_for_status()
                return response.json() if response.text else {}
        except httpx.HTTPError as e:
            self._log_http_error(method, url, e)
            raise

    @staticmethod
    def _unwrap(data: Any) -> ReadingBatchPayload:
        if not isinstance(data, dict):
            raise RuntimeError(f"Unexpected non-JSON response from {READING_BATCH_ENDPOINT}: {data!r}")
        code = data.get("code")
        payload = data.get("data")
        if code not in (0, 200) or payload in (None, {}, []):
            logging.error(
                f"Reading batch failed: code={code}, endpoint={READING_BATCH_ENDPOINT}, body={data!r}"
            )
            raise RuntimeError(f"Reading batch API error (code={code})")
        return ReadingBatchPayload(**payload)

    async def get_reading_batch(
        self,
        dataset_id: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> ReadingBatchPayload:
        """Get one dataset's readings with strict validation and logging."""
        request_data = ReadingBatchRequest(datasetId=dataset_id, startDate=start_date, endDate=end_date)
        data = await self._make_request(
            method="POST",
            endpoint=READING_BATCH_ENDPOINT,
            json_data=request_data.model_dump(exclude_none=True),
        )
        return self._unwrap(data)

    def get_reading_batch_sync(
        self,
        dataset_id: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> ReadingBatchPayload:
        request_data = ReadingBatchRequest(datasetId=dataset_id, startDate=start_date, endDate=end_date)
        data = self._make_request_sync(
            method="POST",
            endpoint=READING_BATCH_ENDPOINT,
            json_data=request_data.model_dump(exclude_none=True),
        )
        return self._unwrap(data)


_client: ReadingsClient | None = None


def _get_client() -> ReadingsClient:
    global _client
    if _client is None:
        _client = ReadingsClient()
    return _client


def _parse_timestamp(value: str) -> datetime:
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def convert_reading_batch(payload: ReadingBatchPayload, dataset_id: Optional[str] = None) -> ReadingBatch:
    """Convert a wire payload into core readings, sorted and in mmol/L."""
    scale = 1.0 / MMOL_TO_MGDL if payload.glucoseUnit is GlucoseUnitEnum.MG_DL else 1.0
    glucose = [
        GlucoseReading(timestamp=_parse_timestamp(sample.timestamp), value=sample.value * scale)
        for sample in payload.glucose
    ]
    insulin = [
        InsulinReading(
            timestamp=_parse_timestamp(entry.timestamp),
            dose=entry.dose,
            insulin_type=InsulinType(entry.insulinType.value),
        )
        for entry in payload.insulin
    ]
    return ReadingBatch(
        dataset_id=dataset_id or payload.datasetId or "",
        glucose_readings=tuple(sort_readings(glucose)),
        insulin_readings=tuple(sort_readings(insulin)),
        local_timezone=payload.localTimezone,
    )


async def fetch_reading_batch(dataset_id: str, client: Optional[ReadingsClient] = None) -> ReadingBatch:
    readings_client = client or _get_client()
    payload = await readings_client.get_reading_batch(dataset_id)
    return convert_reading_batch(payload, dataset_id)


def fetch_reading_batch_sync(dataset_id: str, client: Optional[ReadingsClient] = None) -> ReadingBatch:
    readings_client = client or _get_client()
    payload = readings_client.get_reading_batch_sync(dataset_id)
    return convert_reading_batch(payload, dataset_id)
