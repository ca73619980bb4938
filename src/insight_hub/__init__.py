"""Insight Hub: CRM debugging proxy with in-memory API analytics."""

from .core.container import DIContainer
from .core.hub import InsightHub

__all__ = [
    "InsightHub",
    "DIContainer",
    "ai",
    "analytics",
    "client",
    "core",
    "domain",
    "realtime",
    "webhooks",
]
