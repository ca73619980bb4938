"""Rate-limit-aware async client for the upstream CRM API."""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import httpx

from insight_hub.client.rate_limit import RateLimitTracker
from insight_hub.core.config import (
    DEFAULT_CRM_API_VERSION,
    DEFAULT_CRM_BASE_URL,
    HubConfig,
)
from insight_hub.domain.exceptions import (
    CRMClientError,
    RateLimitedError,
    TransportError,
    UpstreamError,
    ValidationError,
)
from insight_hub.domain.models import RateLimitInfo

IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "PUT", "DELETE"})
RATE_LIMITED_STATUS = 429


@dataclass(frozen=True)
class ClientConfig:
    """Connection settings for one upstream CRM target."""

    access_token: str
    location_id: str
    base_url: str = DEFAULT_CRM_BASE_URL
    version: str = DEFAULT_CRM_API_VERSION
    timeout: float = 10.0
    max_retries: int = 3
    backoff_base: float = 1.0

    def __post_init__(self) -> None:
        if not self.access_token:
            raise ValidationError(
                "access_token must be provided", context={"field": "access_token"}
            )
        if not self.location_id:
            raise ValidationError(
                "location_id must be provided", context={"field": "location_id"}
            )
        if not self.base_url:
            raise ValidationError("base_url must be provided")
        if self.timeout <= 0:
            raise ValueError("timeout must be greater than zero")
        if self.max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        if self.backoff_base < 0:
            raise ValueError("backoff_base cannot be negative")

    @classmethod
    def from_hub_config(cls, config: HubConfig) -> "ClientConfig":
        return cls(
            access_token=config.crm_access_token,
            location_id=config.crm_location_id,
            base_url=config.crm_base_url,
            version=config.crm_api_version,
            timeout=config.request_timeout_seconds,
            max_retries=config.max_retries,
            backoff_base=config.retry_backoff_seconds,
        )


class CRMClient:
    """Forwards calls to the CRM with throttling, retries and error normalization.

    One instance (and its :class:`RateLimitTracker`) should be shared per
    upstream target; separate instances do not share quota state.
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        tracker: Optional[RateLimitTracker] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        self.location_id = config.location_id
        self.tracker = tracker or RateLimitTracker()
        self.logger = logger or logging.getLogger(
            f"{__name__}.{self.__class__.__name__}"
        )
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient()
        self._headers = {
            "Accept": "application/json",
            "Version": config.version,
            "Authorization": f"Bearer {config.access_token}",
        }

    async def get(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, json: Any = None) -> Any:
        return await self.request("POST", path, json=json)

    async def put(self, path: str, json: Any = None) -> Any:
        return await self.request("PUT", path, json=json)

    async def delete(
        self, path: str, params: Optional[Mapping[str, Any]] = None
    ) -> Any:
        return await self.request("DELETE", path, params=params)

    def rate_limits(self) -> RateLimitInfo:
        return self.tracker.info()

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json: Any = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Any:
        """Throttle, send with retry/backoff, and return the parsed body."""

        if not path or not path.strip():
            raise ValidationError("path must be provided")
        method = method.upper()
        url = self._build_url(path)
        await self.tracker.throttle()

        request_headers: Dict[str, str] = dict(self._headers)
        if json is not None:
            request_headers["Content-Type"] = "application/json"
        request_headers.update(headers or {})

        for attempt in range(self.config.max_retries + 1):
            self.log_request(method, path, attempt)
            try:
                response = await self._http.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    headers=request_headers,
                    timeout=self.config.timeout,
                )
            except httpx.TransportError as exc:
                if attempt == self.config.max_retries:
                    self.logger.error(
                        "crm_unreachable",
                        extra={"method": method, "path": path, "attempts": attempt + 1},
                    )
                    raise TransportError(
                        {"message": f"Could not reach {self.base_url}"},
                        context={"method": method, "path": path},
                    ) from exc
                await self._backoff(attempt, method, path, reason=type(exc).__name__)
                continue
            except (httpx.HTTPError, httpx.InvalidURL) as exc:
                raise CRMClientError(
                    {"message": str(exc)}, context={"method": method, "path": path}
                ) from exc

            if response.is_success:
                self.tracker.observe_headers(response.headers)
                self.log_response(method, path, response)
                return self._parse_body(response)

            if (
                self._should_retry(method, response.status_code)
                and attempt < self.config.max_retries
            ):
                await self._backoff(
                    attempt, method, path, reason=str(response.status_code)
                )
                continue
            raise self._normalize_error(response, method, path)

        raise CRMClientError({"message": "Failed to execute request"})

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "CRMClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def log_request(self, method: str, path: str, attempt: int) -> None:
        self.logger.debug(
            "crm_request",
            extra={"method": method, "path": path, "attempt": attempt},
        )

    def log_response(self, method: str, path: str, response: httpx.Response) -> None:
        self.logger.debug(
            "crm_response",
            extra={"method": method, "path": path, "status_code": response.status_code},
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _build_url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            # credentials are only ever sent to the configured origin
            try:
                target = _origin(httpx.URL(path))
            except httpx.InvalidURL as exc:
                raise ValidationError(
                    f"invalid URL: {exc}", context={"path": path}
                ) from exc
            if target != _origin(httpx.URL(self.base_url)):
                raise ValidationError(
                    "absolute URL does not match the configured base_url",
                    context={"path": path, "base_url": self.base_url},
                )
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    @staticmethod
    def _should_retry(method: str, status_code: int) -> bool:
        if status_code == RATE_LIMITED_STATUS:
            return True
        return status_code >= 500 and method in IDEMPOTENT_METHODS

    def _backoff_delay(self, attempt: int) -> float:
        return self.config.backoff_base * math.pow(2, attempt)

    async def _backoff(self, attempt: int, method: str, path: str, *, reason: str) -> None:
        delay = self._backoff_delay(attempt)
        self.logger.warning(
            "crm_retry",
            extra={
                "method": method,
                "path": path,
                "attempt": attempt,
                "delay": delay,
                "reason": reason,
            },
        )
        await self._sleep(delay)

    async def _sleep(self, delay: float) -> None:
        await asyncio.sleep(delay)

    @staticmethod
    def _parse_body(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    def _normalize_error(
        self, response: httpx.Response, method: str, path: str
    ) -> UpstreamError:
        status = response.status_code
        body = self._parse_body(response)
        if body not in (None, ""):
            payload: Any = body
        else:
            payload = {"message": response.reason_phrase or f"HTTP {status}"}
        error_cls = RateLimitedError if status == RATE_LIMITED_STATUS else UpstreamError
        self.logger.info(
            "crm_error",
            extra={"method": method, "path": path, "status_code": status},
        )
        return error_cls(
            payload,
            status_code=status,
            context={"method": method, "path": path, "status_code": status},
        )


def _origin(url: httpx.URL) -> tuple:
    return (url.scheme, url.host, url.port)
