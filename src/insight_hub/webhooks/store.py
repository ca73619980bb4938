"""Bounded store of captured webhook deliveries."""

from __future__ import annotations

import random
import string
import time
from collections import deque
from typing import Any, Deque, List, Mapping, Optional

from insight_hub.domain.models import WebhookRecord

_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_webhook_id() -> str:
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"wh_{int(time.time() * 1000)}_{suffix}"


class WebhookStore:
    """Keeps the most recent ``max_webhooks`` deliveries for inspection."""

    def __init__(self, max_webhooks: int = 500) -> None:
        if max_webhooks <= 0:
            raise ValueError("max_webhooks must be greater than zero")
        self._webhooks: Deque[WebhookRecord] = deque(maxlen=max_webhooks)

    def add(self, webhook: WebhookRecord) -> None:
        self._webhooks.append(webhook)

    def record(
        self,
        webhook_type: Optional[str] = None,
        *,
        headers: Optional[Mapping[str, Any]] = None,
        body: Any = None,
        query: Optional[Mapping[str, Any]] = None,
    ) -> WebhookRecord:
        webhook = WebhookRecord(
            id=new_webhook_id(),
            type=webhook_type or "default",
            headers=dict(headers or {}),
            body=body,
            query=dict(query or {}),
        )
        self.add(webhook)
        return webhook

    def get_all(self, limit: int = 50, webhook_type: Optional[str] = None) -> List[WebhookRecord]:
        """Return up to ``limit`` deliveries, newest first."""

        if limit <= 0:
            return []
        selected = [
            webhook
            for webhook in reversed(self._webhooks)
            if webhook_type is None or webhook.type == webhook_type
        ]
        return selected[:limit]

    def get_by_id(self, webhook_id: str) -> Optional[WebhookRecord]:
        return next((w for w in self._webhooks if w.id == webhook_id), None)

    def count(self) -> int:
        return len(self._webhooks)

    def clear(self) -> int:
        cleared = len(self._webhooks)
        self._webhooks.clear()
        return cleared
