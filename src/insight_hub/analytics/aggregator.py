"""Pure business-logic helpers for request analytics aggregation."""

from __future__ import annotations

import math
from typing import Dict, List, Sequence

from insight_hub.domain.interfaces import IAnalyticsAggregator
from insight_hub.domain.models import (
    AnalyticsSnapshot,
    EndpointStat,
    ErrorEvent,
    RequestEvent,
    RequestTotals,
)

DEFAULT_RECENT_REQUESTS = 20
DEFAULT_RECENT_ERRORS = 10


class AnalyticsAggregator(IAnalyticsAggregator):
    """Performs read-only calculations on retained request and error events."""

    def __init__(
        self,
        *,
        recent_requests: int = DEFAULT_RECENT_REQUESTS,
        recent_errors: int = DEFAULT_RECENT_ERRORS,
    ) -> None:
        if recent_requests < 0 or recent_errors < 0:
            raise ValueError("recent limits must be non-negative")
        self._recent_requests = recent_requests
        self._recent_errors = recent_errors

    def compute_snapshot(
        self, requests: Sequence[RequestEvent], errors: Sequence[ErrorEvent]
    ) -> AnalyticsSnapshot:
        """Summarize the supplied events; both sequences are chronological."""

        return AnalyticsSnapshot(
            requests=self.calculate_totals(requests),
            recent_requests=tuple(self._newest_first(requests, self._recent_requests)),
            recent_errors=tuple(self._newest_first(errors, self._recent_errors)),
            endpoints=self.calculate_endpoint_stats(requests),
        )

    def calculate_totals(self, requests: Sequence[RequestEvent]) -> RequestTotals:
        total = len(requests)
        if not total:
            return RequestTotals()
        success = sum(1 for event in requests if not event.is_error)
        duration = sum(event.duration_millis for event in requests)
        return RequestTotals(
            total=total,
            success=success,
            errors=total - success,
            average_duration_millis=_round_half_up(duration / total),
        )

    def calculate_endpoint_stats(
        self, requests: Sequence[RequestEvent]
    ) -> Dict[str, EndpointStat]:
        # [count, total duration, errors] per key; averages are derived once
        # the accumulation pass is complete.
        sums: Dict[str, List[int]] = {}
        for event in requests:
            bucket = sums.setdefault(event.endpoint_key, [0, 0, 0])
            bucket[0] += 1
            bucket[1] += event.duration_millis
            if event.is_error:
                bucket[2] += 1

        return {
            key: EndpointStat(
                count=count,
                total_duration_millis=duration,
                error_count=error_count,
                average_duration_millis=duration / count,
            )
            for key, (count, duration, error_count) in sums.items()
        }

    @staticmethod
    def _newest_first(events: Sequence, limit: int) -> list:
        if limit <= 0:
            return []
        return list(reversed(events[-limit:]))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))
