"""Exception hierarchy for CRM proxy and monitoring failures."""

from __future__ import annotations

from typing import Any, Mapping


class InsightHubError(Exception):
    """Base class for all domain-level errors raised by the hub."""

    default_message = "Insight hub error occurred"

    def __init__(
        self, message: str | None = None, *, context: Mapping[str, Any] | None = None
    ):
        self.message = message or self.default_message
        self.context: Mapping[str, Any] = dict(context or {})
        formatted = self._format_message()
        super().__init__(formatted)

    def _format_message(self) -> str:
        if self.context:
            return f"{self.message} | context={self.context}"
        return self.message


class CRMClientError(InsightHubError):
    """Final failure of an outbound CRM call, carrying the normalized payload."""

    default_message = "CRM request failed"

    def __init__(
        self,
        payload: Any = None,
        *,
        status_code: int | None = None,
        context: Mapping[str, Any] | None = None,
    ):
        self.payload = payload if payload is not None else {"message": self.default_message}
        self.status_code = status_code
        super().__init__(_payload_message(self.payload), context=context)


class UpstreamError(CRMClientError):
    """The CRM answered with an error status."""

    default_message = "CRM responded with an error"


class RateLimitedError(UpstreamError):
    """The CRM kept answering 429 after the retry budget was spent."""

    default_message = "CRM rate limit exceeded"


class TransportError(CRMClientError):
    """No response reached the client (timeout, DNS, connection reset)."""

    default_message = "CRM is unreachable"


class ValidationError(InsightHubError, ValueError):
    """Caller-supplied input is missing required fields."""

    default_message = "Validation failed"


class ScoringUnavailableError(InsightHubError):
    """The LLM scoring collaborator could not be queried."""

    default_message = "AI service unavailable"


def _payload_message(payload: Any) -> str | None:
    if isinstance(payload, Mapping):
        for key in ("message", "error", "msg"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
        return None
    if isinstance(payload, str) and payload:
        return payload
    return None
