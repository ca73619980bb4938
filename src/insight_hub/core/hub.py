"""Hub facade tying the monitor, CRM client and collaborators together."""

from __future__ import annotations

from typing import Any, Optional

from insight_hub.ai.engine import AIEngine
from insight_hub.analytics.monitor import ApiMonitor
from insight_hub.client.crm_client import CRMClient
from insight_hub.client.rate_limit import RateLimitTracker
from insight_hub.core.config import HubConfig
from insight_hub.core.middleware import (
    Handler,
    HandlerResult,
    MiddlewareChain,
    RequestContext,
)
from insight_hub.domain.models import AnalyticsSnapshot, RateLimitInfo
from insight_hub.realtime.broadcaster import Subscription
from insight_hub.webhooks.store import WebhookStore


class InsightHub:
    """Process-wide bundle of the long-lived hub components.

    Route handlers receive the hub (or the pieces they need) by reference;
    nothing here is a module-level singleton.
    """

    def __init__(
        self,
        config: HubConfig,
        monitor: ApiMonitor,
        *,
        crm_client: Optional[CRMClient] = None,
        tracker: Optional[RateLimitTracker] = None,
        webhooks: Optional[WebhookStore] = None,
        ai_engine: Optional[AIEngine] = None,
        middleware: Optional[MiddlewareChain] = None,
    ) -> None:
        self.config = config
        self.monitor = monitor
        self._crm_client = crm_client
        if tracker is None:
            tracker = crm_client.tracker if crm_client is not None else RateLimitTracker()
        self.tracker = tracker
        self.webhooks = webhooks or WebhookStore(config.webhook_retention)
        self.ai_engine = ai_engine
        self._middleware = middleware or MiddlewareChain([])

    @property
    def crm(self) -> CRMClient:
        if self._crm_client is None:
            raise RuntimeError("CRM client not configured; set GHL_API_KEY and GHL_LOCATION_ID")
        return self._crm_client

    @property
    def ai(self) -> AIEngine:
        if self.ai_engine is None:
            raise RuntimeError("AI engine not configured")
        return self.ai_engine

    async def handle(self, method: str, path: str, handler: Handler) -> HandlerResult:
        """Run an inbound route handler through the middleware chain."""

        return await self._middleware.execute(RequestContext(method.upper(), path), handler)

    def analytics(self) -> AnalyticsSnapshot:
        return self.monitor.get_analytics()

    def rate_limits(self) -> RateLimitInfo:
        return self.tracker.info()

    def subscribe(self) -> Subscription:
        return self.monitor.subscribe()

    def unsubscribe(self, subscription: Subscription) -> None:
        self.monitor.unsubscribe(subscription)

    def health(self) -> dict[str, Any]:
        return {
            "status": "healthy",
            "ai": self.config.enable_ai,
            "crm_configured": self._crm_client is not None,
            "subscribers": self.monitor.broadcaster.subscriber_count,
        }

    async def aclose(self) -> None:
        self.monitor.broadcaster.close()
        if self._crm_client is not None:
            await self._crm_client.aclose()
        if self.ai_engine is not None:
            await self.ai_engine.aclose()
