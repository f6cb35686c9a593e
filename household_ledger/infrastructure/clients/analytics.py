"""Aggregation refresh client with exponential backoff retry logic"""

import asyncio
import logging
from datetime import date

import httpx

from household_ledger.config import settings
from household_ledger.infrastructure.observability.metrics import refresh_latency_histogram, refresh_failure_counter


class AnalyticsClient:
    """Notifies the analytics subsystem that a household's period needs re-aggregating"""

    def __init__(self, refresh_url: str | None = None, timeout: float | None = None):
        self.refresh_url = refresh_url or settings.analytics_refresh_url
        self.timeout = timeout or settings.http_timeout_seconds
        self.max_retries = settings.refresh_max_retries
        self.backoff_base = settings.refresh_backoff_base

    async def refresh_period(self, household_id: str, period: date) -> None:
        """
        Request re-aggregation of the month starting at ``period``.

        Retry strategy:
        - Exponential backoff: base, 2*base, 4*base ...
        - Retries on 5xx errors and network failures
        - Gives up after max_retries; a failed refresh is logged and counted,
          never propagated, since the posting it follows is already committed
        """
        payload = {
            "event": "LEDGER_PERIOD_CHANGED",
            "household_id": household_id,
            "year": period.year,
            "month": period.month,
        }

        attempt = 0
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            while attempt < self.max_retries:
                try:
                    with refresh_latency_histogram.time():
                        response = await client.post(self.refresh_url, json=payload)
                        response.raise_for_status()
                        return  # Success

                except (httpx.HTTPStatusError, httpx.RequestError) as e:
                    attempt += 1
                    refresh_failure_counter.inc()

                    if attempt >= self.max_retries:
                        logging.error(
                            f"Aggregation refresh abandoned: {e}",
                            extra={"household_id": household_id, "period": period.isoformat()},
                        )
                        return

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    await asyncio.sleep(backoff)
