"""Dependency injection container for building fully-wired hub instances."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import httpx

from insight_hub.ai.engine import AIEngine
from insight_hub.analytics.aggregator import AnalyticsAggregator
from insight_hub.analytics.monitor import ApiMonitor
from insight_hub.client.crm_client import ClientConfig, CRMClient
from insight_hub.client.rate_limit import RateLimitTracker
from insight_hub.core.config import HubConfig, load_config
from insight_hub.core.hub import InsightHub
from insight_hub.core.middleware import (
    IMiddleware,
    LoggingMiddleware,
    MiddlewareChain,
    MonitoringMiddleware,
)
from insight_hub.realtime.broadcaster import LiveBroadcaster
from insight_hub.webhooks.store import WebhookStore

logger = logging.getLogger(__name__)


class DIContainer:
    """Factory helpers that assemble an InsightHub with default wiring."""

    @staticmethod
    def create_hub(
        *,
        config: Optional[HubConfig] = None,
        config_path: Optional[str] = None,
        crm_http_client: Optional[httpx.AsyncClient] = None,
        llm_http_client: Optional[httpx.AsyncClient] = None,
    ) -> InsightHub:
        if config is not None and config_path is not None:
            raise ValueError("Provide either 'config' or 'config_path', not both")
        cfg = config or load_config(config_path)

        monitor = DIContainer._build_monitor(cfg)
        tracker = DIContainer._build_tracker(cfg)
        crm_client = DIContainer._build_crm_client(cfg, tracker, crm_http_client)
        ai_engine = AIEngine.from_config(cfg, http_client=llm_http_client)
        middleware = DIContainer._build_middleware_chain(monitor)

        return InsightHub(
            cfg,
            monitor,
            crm_client=crm_client,
            tracker=tracker,
            webhooks=WebhookStore(cfg.webhook_retention),
            ai_engine=ai_engine,
            middleware=middleware,
        )

    @staticmethod
    def create_custom_hub(
        *,
        config: HubConfig,
        monitor: ApiMonitor,
        crm_client: Optional[CRMClient] = None,
        ai_engine: Optional[AIEngine] = None,
        middlewares: Optional[Sequence[IMiddleware]] = None,
    ) -> InsightHub:
        chain = (
            MiddlewareChain(middlewares)
            if middlewares is not None
            else DIContainer._build_middleware_chain(monitor)
        )
        return InsightHub(
            config,
            monitor,
            crm_client=crm_client,
            ai_engine=ai_engine,
            middleware=chain,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _build_monitor(config: HubConfig) -> ApiMonitor:
        return ApiMonitor(
            retention=config.log_retention,
            aggregator=AnalyticsAggregator(
                recent_requests=config.recent_requests_limit,
                recent_errors=config.recent_errors_limit,
            ),
            broadcaster=LiveBroadcaster(queue_size=config.subscriber_queue_size),
        )

    @staticmethod
    def _build_tracker(config: HubConfig) -> RateLimitTracker:
        return RateLimitTracker(
            daily_warning_threshold=config.daily_warning_threshold,
            burst_threshold=config.burst_threshold,
            cooldown_seconds=config.burst_cooldown_seconds,
        )

    @staticmethod
    def _build_crm_client(
        config: HubConfig,
        tracker: RateLimitTracker,
        http_client: Optional[httpx.AsyncClient],
    ) -> Optional[CRMClient]:
        """One client/tracker pair per upstream, shared by every route."""

        if not config.crm_access_token or not config.crm_location_id:
            logger.warning("crm_client_disabled", extra={"reason": "missing credentials"})
            return None
        return CRMClient(
            ClientConfig.from_hub_config(config),
            http_client=http_client,
            tracker=tracker,
        )

    @staticmethod
    def _build_middleware_chain(monitor: ApiMonitor) -> MiddlewareChain:
        return MiddlewareChain([LoggingMiddleware(), MonitoringMiddleware(monitor)])
