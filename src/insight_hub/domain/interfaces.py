"""Domain-level interfaces defining contracts between hub collaborators."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Mapping, Optional, Protocol, Sequence

from .models import AnalyticsSnapshot, ErrorEvent, RateLimitInfo, RequestEvent


class IRequestMonitor(Protocol):
    """Records request outcomes on the response-completion path."""

    def track_request(
        self, event: RequestEvent | Mapping[str, Any] | None = None, **fields: Any
    ) -> None:
        """Append a request outcome; must never raise."""

    def track_error(
        self, event: ErrorEvent | Mapping[str, Any] | None = None, **fields: Any
    ) -> None:
        """Append an application error; must never raise."""

    def get_analytics(self) -> AnalyticsSnapshot:
        """Return a freshly computed analytics snapshot."""


class IAnalyticsAggregator(Protocol):
    """Derives summary statistics from retained events."""

    def compute_snapshot(
        self, requests: Sequence[RequestEvent], errors: Sequence[ErrorEvent]
    ) -> AnalyticsSnapshot:
        """Return totals, recent activity and per-endpoint rollups."""


class IUpstreamClient(Protocol):
    """Outbound client for the CRM API."""

    async def get(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        """Issue a GET and return the parsed body."""

    async def post(self, path: str, json: Any = None) -> Any:
        """Issue a POST and return the parsed body."""

    async def put(self, path: str, json: Any = None) -> Any:
        """Issue a PUT and return the parsed body."""

    async def delete(
        self, path: str, params: Optional[Mapping[str, Any]] = None
    ) -> Any:
        """Issue a DELETE and return the parsed body."""

    def rate_limits(self) -> RateLimitInfo:
        """Return the quota as of the last successful response."""


SleepFn = Callable[[float], Awaitable[None]]
