"""Middleware system wrapping inbound route handlers with cross-cutting concerns."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Protocol, Sequence

from insight_hub.domain.exceptions import CRMClientError
from insight_hub.domain.interfaces import IRequestMonitor


@dataclass
class RequestContext:
    """Inbound request as seen by the middleware chain."""

    method: str
    path: str
    started_at: float = field(default_factory=time.perf_counter)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def elapsed_millis(self) -> int:
        return max(0, int(round((time.perf_counter() - self.started_at) * 1000)))


@dataclass(frozen=True)
class HandlerResult:
    status_code: int = 200
    body: Any = None


Handler = Callable[[RequestContext], Awaitable[HandlerResult]]


class IMiddleware(Protocol):
    """Protocol describing middleware hooks."""

    def process_request(self, context: RequestContext) -> RequestContext: ...

    def process_response(
        self, context: RequestContext, result: HandlerResult
    ) -> HandlerResult: ...

    def process_error(self, context: RequestContext, error: Exception) -> None: ...


class LoggingMiddleware(IMiddleware):
    """Logs one line per completed inbound request."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger(__name__)

    def process_request(self, context: RequestContext) -> RequestContext:
        return context

    def process_response(
        self, context: RequestContext, result: HandlerResult
    ) -> HandlerResult:
        duration = context.elapsed_millis()
        self._logger.info(
            "%s %s - %s (%sms)",
            context.method,
            context.path,
            result.status_code,
            duration,
            extra={
                "method": context.method,
                "path": context.path,
                "status_code": result.status_code,
                "duration_ms": duration,
            },
        )
        return result

    def process_error(self, context: RequestContext, error: Exception) -> None:
        self._logger.error(
            "request_failed",
            exc_info=error,
            extra={"method": context.method, "path": context.path},
        )


class MonitoringMiddleware(IMiddleware):
    """Forwards request outcomes and handler errors to the API monitor."""

    def __init__(self, monitor: IRequestMonitor) -> None:
        self._monitor = monitor

    def process_request(self, context: RequestContext) -> RequestContext:
        return context

    def process_response(
        self, context: RequestContext, result: HandlerResult
    ) -> HandlerResult:
        self._monitor.track_request(
            method=context.method,
            path=context.path,
            status_code=result.status_code,
            duration_millis=context.elapsed_millis(),
        )
        return result

    def process_error(self, context: RequestContext, error: Exception) -> None:
        self._monitor.track_error(path=context.path, message=_error_message(error))


class MiddlewareChain:
    """Applies middleware around an async handler using chain of responsibility.

    A handler exception is reported to every middleware and then turned into
    an error result, the way a web framework's error handler would.
    """

    def __init__(self, middlewares: Sequence[IMiddleware]) -> None:
        self._middlewares = list(middlewares)

    async def execute(self, context: RequestContext, handler: Handler) -> HandlerResult:
        for middleware in self._middlewares:
            context = middleware.process_request(context)

        try:
            result = await handler(context)
        except Exception as exc:
            for middleware in reversed(self._middlewares):
                middleware.process_error(context, exc)
            result = error_result(exc)

        for middleware in reversed(self._middlewares):
            result = middleware.process_response(context, result)

        return result


def error_result(error: Exception) -> HandlerResult:
    status = getattr(error, "status_code", None)
    if not isinstance(status, int) or status < 400:
        status = 500
    body: Dict[str, Any] = {"error": _error_message(error)}
    if isinstance(error, CRMClientError) and isinstance(error.payload, dict):
        body["details"] = error.payload
    return HandlerResult(status_code=status, body=body)


def _error_message(error: Exception) -> str:
    if isinstance(error, CRMClientError):
        return error.message
    return str(error) or "Internal server error"
