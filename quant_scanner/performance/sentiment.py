"""
Sentiment Feed
==============
Rate-limited client for the Fear & Greed index.
"""

import time
from dataclasses import dataclass
from typing import Callable, Optional
import logging

import requests

logger = logging.getLogger(__name__)

FAILURE_LOG_EVERY = 5


@dataclass
class SentimentReading:
    """One Fear & Greed observation."""
    value: int
    classification: str
    fetched_at: float

    def to_dict(self) -> dict:
        return {
            'value': self.value,
            'classification': self.classification,
            'fetched_at': self.fetched_at
        }


class SentimentClient:
    """
    Fetches the Fear & Greed index at most once per fetch interval.

    Failures keep the last good reading and never raise.
    """

    def __init__(self, config=None, session: Optional[requests.Session] = None,
                 clock: Optional[Callable[[], float]] = None,
                 logger_: Optional[logging.Logger] = None, event_log=None):
        from ..config import MomentumConfig
        self.config = config or MomentumConfig()
        self.session = session or requests.Session()
        self.clock = clock or time.time
        self.logger = logger_ or logger
        self.event_log = event_log

        self.last_reading: Optional[SentimentReading] = None
        self.last_attempt: Optional[float] = None
        self.failure_count = 0

    def get(self) -> Optional[SentimentReading]:
        """Current reading; refreshes only when the cooldown has elapsed."""
        now = self.clock()
        if self.last_attempt is not None and now - self.last_attempt < self.config.sentiment_fetch_interval_seconds:
            return self.last_reading

        self.last_attempt = now
        try:
            response = self.session.get(self.config.sentiment_url, timeout=self.config.sentiment_timeout_seconds)
            response.raise_for_status()
            entry = response.json()['data'][0]
            reading = SentimentReading(
                value=int(entry['value']),
                classification=str(entry.get('value_classification', '')),
                fetched_at=now
            )
        except Exception as e:
            self._record_failure(e)
            return self.last_reading

        if self.failure_count > 0:
            self.logger.info(f"Fear & Greed feed recovered after {self.failure_count} failures")
        self.failure_count = 0
        self.last_reading = reading
        return reading

    def value(self) -> Optional[int]:
        reading = self.get()
        return reading.value if reading else None

    def _record_failure(self, error: Exception):
        self.failure_count += 1
        if self.failure_count == 1 or self.failure_count % FAILURE_LOG_EVERY == 0:
            self.logger.warning(
                f"Fear & Greed fetch failed ({self.failure_count} consecutive): {error}; "
                f"using {'cached value' if self.last_reading else 'no value'}"
            )
            if self.event_log is not None:
                from ..monitoring import ErrorCategory
                self.event_log.warning(
                    "Sentiment fetch failed",
                    source="sentiment",
                    category=ErrorCategory.EXTERNAL_FETCH_FAILURE,
                    failure_count=self.failure_count,
                    error=str(error)
                )
