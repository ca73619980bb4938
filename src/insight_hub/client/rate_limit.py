"""Upstream quota tracking fed by CRM response headers."""

from __future__ import annotations

import asyncio
import logging
from typing import Mapping, Optional

from insight_hub.domain.interfaces import SleepFn
from insight_hub.domain.models import RateLimitInfo, RateLimitState

DAILY_LIMIT_HEADER = "x-ratelimit-daily-limit"
DAILY_REMAINING_HEADER = "x-ratelimit-daily-remaining"
BURST_LIMIT_HEADER = "x-ratelimit-limit"
BURST_REMAINING_HEADER = "x-ratelimit-remaining"


class RateLimitTracker:
    """Holds the daily/burst quota and paces callers near exhaustion.

    Values are only as fresh as the last observed response. Responses of
    concurrent calls may arrive out of order, so a late response can raise
    the remaining counts again; no monotonicity is enforced.
    """

    def __init__(
        self,
        initial: Optional[RateLimitState] = None,
        *,
        daily_warning_threshold: int = 100,
        burst_threshold: int = 10,
        cooldown_seconds: float = 10.0,
        sleep: Optional[SleepFn] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        state = initial or RateLimitState()
        self._daily_limit = state.daily_limit
        self._daily_remaining = state.daily_remaining
        self._burst_limit = state.burst_limit
        self._burst_remaining = state.burst_remaining
        self.daily_warning_threshold = daily_warning_threshold
        self.burst_threshold = burst_threshold
        self.cooldown_seconds = cooldown_seconds
        self._sleep = sleep or asyncio.sleep
        self.logger = logger or logging.getLogger(__name__)

    @property
    def state(self) -> RateLimitState:
        return RateLimitState(
            daily_limit=self._daily_limit,
            daily_remaining=self._daily_remaining,
            burst_limit=self._burst_limit,
            burst_remaining=self._burst_remaining,
        )

    def info(self) -> RateLimitInfo:
        return self.state.as_info()

    def observe(
        self,
        *,
        daily_limit: Optional[int] = None,
        daily_remaining: Optional[int] = None,
        burst_limit: Optional[int] = None,
        burst_remaining: Optional[int] = None,
    ) -> None:
        """Overwrite the fields supplied; absent or negative values are ignored."""

        if _usable(daily_limit):
            self._daily_limit = daily_limit
        if _usable(daily_remaining):
            self._daily_remaining = daily_remaining
        if _usable(burst_limit):
            self._burst_limit = burst_limit
        if _usable(burst_remaining):
            self._burst_remaining = burst_remaining
        self._daily_remaining = min(self._daily_remaining, self._daily_limit)
        self._burst_remaining = min(self._burst_remaining, self._burst_limit)

    def observe_headers(self, headers: Mapping[str, str]) -> None:
        self.observe(
            daily_limit=_parse_header(headers, DAILY_LIMIT_HEADER),
            daily_remaining=_parse_header(headers, DAILY_REMAINING_HEADER),
            burst_limit=_parse_header(headers, BURST_LIMIT_HEADER),
            burst_remaining=_parse_header(headers, BURST_REMAINING_HEADER),
        )

    async def throttle(self) -> None:
        """Warn on a low daily quota and wait out a nearly spent burst window."""

        if self._daily_remaining < self.daily_warning_threshold:
            self.logger.warning(
                "rate_limit_low",
                extra={"daily_remaining": self._daily_remaining},
            )
        if self._burst_remaining < self.burst_threshold:
            self.logger.warning(
                "burst_cooldown",
                extra={
                    "burst_remaining": self._burst_remaining,
                    "delay": self.cooldown_seconds,
                },
            )
            await self._sleep(self.cooldown_seconds)


def _usable(value: Optional[int]) -> bool:
    return value is not None and value >= 0


def _parse_header(headers: Mapping[str, str], name: str) -> Optional[int]:
    raw = headers.get(name)
    if raw is None:
        return None
    try:
        return int(str(raw).strip())
    except ValueError:
        return None
