"""Hub configuration management helpers."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

DEFAULT_CRM_BASE_URL = "https://services.leadconnectorhq.com"
DEFAULT_CRM_API_VERSION = "2021-07-28"
DEFAULT_LLM_ENDPOINT = "http://localhost:8000/api/chat"


def _str_to_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    value = value.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    return default


def _str_to_int(value: str | None, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"Invalid integer value: {value}") from exc


def _str_to_float(value: str | None, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ValueError(f"Invalid number: {value}") from exc


@dataclass(frozen=True)
class HubConfig:
    """Immutable configuration object loaded from env or files."""

    crm_access_token: str = ""
    crm_location_id: str = ""
    crm_base_url: str = DEFAULT_CRM_BASE_URL
    crm_api_version: str = DEFAULT_CRM_API_VERSION
    request_timeout_seconds: float = 10.0
    max_retries: int = 3
    retry_backoff_seconds: float = 1.0
    daily_warning_threshold: int = 100
    burst_threshold: int = 10
    burst_cooldown_seconds: float = 10.0
    log_retention: int = 1000
    recent_requests_limit: int = 20
    recent_errors_limit: int = 10
    subscriber_queue_size: int = 100
    webhook_retention: int = 500
    enable_ai: bool = False
    llm_endpoint: str = DEFAULT_LLM_ENDPOINT
    llm_timeout_seconds: float = 30.0

    def __post_init__(self) -> None:
        self.validate()

    @classmethod
    def from_env(cls) -> "HubConfig":
        defaults = cls()
        return cls(
            crm_access_token=os.getenv("GHL_API_KEY", defaults.crm_access_token),
            crm_location_id=os.getenv("GHL_LOCATION_ID", defaults.crm_location_id),
            crm_base_url=os.getenv("GHL_BASE_URL") or defaults.crm_base_url,
            crm_api_version=os.getenv("GHL_API_VERSION") or defaults.crm_api_version,
            request_timeout_seconds=_str_to_float(
                os.getenv("HUB_REQUEST_TIMEOUT_SECONDS"),
                defaults.request_timeout_seconds,
            ),
            max_retries=_str_to_int(os.getenv("HUB_MAX_RETRIES"), defaults.max_retries),
            retry_backoff_seconds=_str_to_float(
                os.getenv("HUB_RETRY_BACKOFF_SECONDS"), defaults.retry_backoff_seconds
            ),
            daily_warning_threshold=_str_to_int(
                os.getenv("HUB_DAILY_WARNING_THRESHOLD"),
                defaults.daily_warning_threshold,
            ),
            burst_threshold=_str_to_int(
                os.getenv("HUB_BURST_THRESHOLD"), defaults.burst_threshold
            ),
            burst_cooldown_seconds=_str_to_float(
                os.getenv("HUB_BURST_COOLDOWN_SECONDS"), defaults.burst_cooldown_seconds
            ),
            log_retention=_str_to_int(
                os.getenv("HUB_LOG_RETENTION"), defaults.log_retention
            ),
            recent_requests_limit=_str_to_int(
                os.getenv("HUB_RECENT_REQUESTS_LIMIT"), defaults.recent_requests_limit
            ),
            recent_errors_limit=_str_to_int(
                os.getenv("HUB_RECENT_ERRORS_LIMIT"), defaults.recent_errors_limit
            ),
            subscriber_queue_size=_str_to_int(
                os.getenv("HUB_SUBSCRIBER_QUEUE_SIZE"), defaults.subscriber_queue_size
            ),
            webhook_retention=_str_to_int(
                os.getenv("HUB_WEBHOOK_RETENTION"), defaults.webhook_retention
            ),
            enable_ai=_str_to_bool(os.getenv("ENABLE_AI"), defaults.enable_ai),
            llm_endpoint=os.getenv("LLM_ENDPOINT") or defaults.llm_endpoint,
            llm_timeout_seconds=_str_to_float(
                os.getenv("HUB_LLM_TIMEOUT_SECONDS"), defaults.llm_timeout_seconds
            ),
        )

    @classmethod
    def from_file(cls, path: str) -> "HubConfig":
        file_path = Path(path)
        if not file_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")
        raw = file_path.read_text()
        data: Dict[str, Any]
        suffix = file_path.suffix.lower()
        if suffix == ".json":
            data = json.loads(raw)
        elif suffix in {".yaml", ".yml"}:
            data = cls._load_yaml(raw)
        else:
            raise ValueError("Unsupported config format. Use JSON or YAML.")
        return cls(**cls._merge_with_defaults(data))

    def validate(self) -> None:
        if not self.crm_base_url.startswith(("http://", "https://")):
            raise ValueError("crm_base_url must be an http(s) URL")
        if self.request_timeout_seconds <= 0:
            raise ValueError("request_timeout_seconds must be greater than zero")
        if self.max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if self.retry_backoff_seconds < 0:
            raise ValueError("retry_backoff_seconds must be non-negative")
        if self.burst_cooldown_seconds < 0:
            raise ValueError("burst_cooldown_seconds must be non-negative")
        for name in (
            "log_retention",
            "recent_requests_limit",
            "recent_errors_limit",
            "subscriber_queue_size",
            "webhook_retention",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be greater than zero")
        if self.llm_timeout_seconds <= 0:
            raise ValueError("llm_timeout_seconds must be greater than zero")

    @classmethod
    def _merge_with_defaults(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        defaults = cls()
        unknown = set(data) - {f.name for f in fields(cls)}
        if unknown:
            raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")
        return {
            f.name: data.get(f.name, getattr(defaults, f.name)) for f in fields(cls)
        }

    @staticmethod
    def _load_yaml(raw: str) -> Dict[str, Any]:
        try:
            import yaml  # type: ignore
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise RuntimeError("PyYAML is required to parse YAML config files") from exc
        return yaml.safe_load(raw) or {}


def load_config(path: Optional[str] = None) -> HubConfig:
    """Load from ``path`` when given, otherwise from the environment."""

    if path:
        return HubConfig.from_file(path)
    return HubConfig.from_env()
