"""Domain value objects for request monitoring, rate limits and webhooks."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _FrozenModel(BaseModel):
    """Immutable model serialized with camelCase keys for the dashboard."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class RateLimitInfo(_FrozenModel):
    """Caller-facing view of the upstream quota."""

    daily: int
    burst: int
    daily_remaining: int
    burst_remaining: int


class RateLimitState(_FrozenModel):
    """Daily and burst quota as of the last observed upstream response."""

    daily_limit: int = Field(200_000, ge=0)
    daily_remaining: int = Field(200_000, ge=0)
    burst_limit: int = Field(100, ge=0)
    burst_remaining: int = Field(100, ge=0)

    @model_validator(mode="after")
    def validate_remaining(self) -> "RateLimitState":
        if self.daily_remaining > self.daily_limit:
            raise ValueError("daily_remaining cannot exceed daily_limit")
        if self.burst_remaining > self.burst_limit:
            raise ValueError("burst_remaining cannot exceed burst_limit")
        return self

    def as_info(self) -> RateLimitInfo:
        return RateLimitInfo(
            daily=self.daily_limit,
            burst=self.burst_limit,
            daily_remaining=self.daily_remaining,
            burst_remaining=self.burst_remaining,
        )


class RequestEvent(_FrozenModel):
    """Outcome of one inbound request handled by the proxy."""

    method: str = Field(..., min_length=1)
    path: str
    status_code: int = Field(..., ge=0)
    duration_millis: int = Field(..., ge=0)
    timestamp: datetime = Field(default_factory=utcnow)

    @field_validator("method")
    @classmethod
    def normalize_method(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("duration_millis", mode="before")
    @classmethod
    def round_duration(cls, value: Any) -> Any:
        if isinstance(value, float):
            if not math.isfinite(value):
                raise ValueError("duration_millis must be finite")
            return int(round(value))
        return value

    @property
    def endpoint_key(self) -> str:
        return f"{self.method} {self.path}"

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400


class ErrorEvent(_FrozenModel):
    """Application error raised while serving an inbound request."""

    path: str
    message: str
    timestamp: datetime = Field(default_factory=utcnow)


class EndpointStat(_FrozenModel):
    """Rollup of retained requests sharing a ``METHOD path`` key."""

    count: int = Field(..., ge=1)
    total_duration_millis: int = Field(..., ge=0)
    error_count: int = Field(..., ge=0, alias="errors")
    average_duration_millis: float = Field(..., ge=0, alias="avgDuration")


class RequestTotals(_FrozenModel):
    total: int = 0
    success: int = 0
    errors: int = 0
    average_duration_millis: int = Field(0, alias="avgDuration")


class AnalyticsSnapshot(_FrozenModel):
    """Point-in-time summary derived from the event logs."""

    requests: RequestTotals = Field(default_factory=RequestTotals)
    recent_requests: Tuple[RequestEvent, ...] = Field(default_factory=tuple)
    recent_errors: Tuple[ErrorEvent, ...] = Field(default_factory=tuple)
    endpoints: Dict[str, EndpointStat] = Field(default_factory=dict)

    @property
    def total_requests(self) -> int:
        return self.requests.total

    @property
    def success_count(self) -> int:
        return self.requests.success

    @property
    def error_count(self) -> int:
        return self.requests.errors

    @property
    def average_duration_millis(self) -> int:
        return self.requests.average_duration_millis

    @property
    def per_endpoint(self) -> Mapping[str, EndpointStat]:
        return self.endpoints


class BroadcastMessage(_FrozenModel):
    """Envelope pushed to live subscribers."""

    type: str
    data: Any = None


class WebhookRecord(_FrozenModel):
    """Webhook delivery captured for debugging."""

    id: str
    type: str = "default"
    headers: Dict[str, Any] = Field(default_factory=dict)
    body: Any = None
    query: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)


class InsightType(str, Enum):
    """Kinds of insight produced by the scoring collaborator."""

    PREDICTION = "prediction"
    RECOMMENDATION = "recommendation"
    ANOMALY = "anomaly"
    INSIGHT = "insight"


class AIInsight(_FrozenModel):
    type: InsightType
    title: str
    description: str
    confidence: int = Field(..., ge=0, le=100)
    data: Optional[Any] = None
    timestamp: datetime = Field(default_factory=utcnow)


class LeadScore(_FrozenModel):
    contact_id: Optional[str] = None
    score: int = Field(..., ge=0, le=100)
    confidence: int = Field(..., ge=0, le=100)
    factors: List[str] = Field(default_factory=list)
    recommendation: str
