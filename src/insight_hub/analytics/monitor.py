"""API usage monitor coordinating event logs, aggregation and live updates."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from insight_hub.analytics.aggregator import AnalyticsAggregator
from insight_hub.analytics.event_log import DEFAULT_RETENTION, EventLog
from insight_hub.domain.interfaces import IAnalyticsAggregator, IRequestMonitor
from insight_hub.domain.models import AnalyticsSnapshot, ErrorEvent, RequestEvent
from insight_hub.realtime.broadcaster import LiveBroadcaster, Subscription

E = TypeVar("E", bound=BaseModel)

REQUEST_EVENT = "request"
ERROR_EVENT = "error"
ANALYTICS_EVENT = "analytics"


class ApiMonitor(IRequestMonitor):
    """High-level facade for recording request outcomes and producing summaries.

    Construct one per process at the composition root and pass it to every
    component that records or reads analytics.
    """

    def __init__(
        self,
        *,
        retention: int = DEFAULT_RETENTION,
        aggregator: Optional[IAnalyticsAggregator] = None,
        broadcaster: Optional[LiveBroadcaster] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._requests: EventLog[RequestEvent] = EventLog(retention)
        self._errors: EventLog[ErrorEvent] = EventLog(retention)
        self._aggregator = aggregator or AnalyticsAggregator()
        self.broadcaster = broadcaster or LiveBroadcaster()
        self.logger = logger or logging.getLogger(__name__)

    @property
    def requests(self) -> EventLog[RequestEvent]:
        return self._requests

    @property
    def errors(self) -> EventLog[ErrorEvent]:
        return self._errors

    def track_request(
        self, event: RequestEvent | Mapping[str, Any] | None = None, **fields: Any
    ) -> None:
        """Record a completed inbound request and push it to live subscribers."""

        record = self._coerce(RequestEvent, event, fields)
        if record is None:
            return
        self._requests.append(record)
        self._publish(REQUEST_EVENT, record)

    def track_error(
        self, event: ErrorEvent | Mapping[str, Any] | None = None, **fields: Any
    ) -> None:
        """Record an application error and push it to live subscribers."""

        record = self._coerce(ErrorEvent, event, fields)
        if record is None:
            return
        self._errors.append(record)
        self._publish(ERROR_EVENT, record)

    def get_analytics(self) -> AnalyticsSnapshot:
        return self._aggregator.compute_snapshot(
            self._requests.all(), self._errors.all()
        )

    def subscribe(self) -> Subscription:
        """Register a live observer whose first message is the current snapshot."""

        return self.broadcaster.subscribe(initial=(ANALYTICS_EVENT, self.get_analytics()))

    def unsubscribe(self, subscription: Subscription) -> None:
        self.broadcaster.unsubscribe(subscription)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _coerce(
        self,
        model: Type[E],
        event: Any,
        fields: Mapping[str, Any],
    ) -> Optional[E]:
        if isinstance(event, model) and not fields:
            return event
        data: dict[str, Any] = {}
        if isinstance(event, BaseModel):
            data.update(event.model_dump())
        elif isinstance(event, Mapping):
            data.update(event)
        elif event is not None:
            self.logger.warning(
                "tracking_rejected",
                extra={"kind": model.__name__, "reason": f"unsupported {type(event)!r}"},
            )
            return None
        data.update(fields)
        try:
            return model.model_validate(data)
        except PydanticValidationError as exc:
            self.logger.warning(
                "tracking_rejected",
                extra={"kind": model.__name__, "errors": exc.errors()},
            )
            return None
        except Exception as exc:
            self.logger.warning(
                "tracking_rejected",
                extra={"kind": model.__name__, "reason": repr(exc)},
            )
            return None

    def _publish(self, event_type: str, record: BaseModel) -> None:
        try:
            self.broadcaster.broadcast(event_type, record)
        except Exception:
            # the event is already retained; live delivery is best effort
            self.logger.exception("broadcast_failed", extra={"type": event_type})
