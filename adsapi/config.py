from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from adsapi import __version__

DEFAULT_BASE_URL = "https://business-api.tiktok.com"
DEFAULT_RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

ENV_ACCESS_TOKEN = "ADSAPI_ACCESS_TOKEN"
ENV_BASE_URL = "ADSAPI_BASE_URL"


class ConfigError(Exception):
    """Raised when configuration cannot be loaded or validated."""


class BackoffStrategy(str, Enum):
    LINEAR = "linear"
    EXPONENTIAL = "exponential"
    FIXED = "fixed"


class RetryPolicy(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    max_retries: int = Field(default=3, ge=0)
    backoff_strategy: BackoffStrategy = Field(default=BackoffStrategy.EXPONENTIAL)
    initial_delay_s: float = Field(default=1.0, gt=0)
    max_delay_s: float = Field(default=30.0, gt=0)
    multiplier: float = Field(default=2.0, gt=0)
    retryable_status_codes: frozenset[int] = Field(default=DEFAULT_RETRYABLE_STATUS_CODES)
    jitter_s: float = Field(default=0.0, ge=0)

    @field_validator("retryable_status_codes")
    @classmethod
    def _default_when_empty(cls, value: frozenset[int]) -> frozenset[int]:
        if not value:
            return DEFAULT_RETRYABLE_STATUS_CODES
        for code in value:
            if not 100 <= code <= 599:
                raise ValueError(f"Invalid HTTP status code in retryable_status_codes: {code}")
        return value

    @model_validator(mode="after")
    def _check_delays(self) -> "RetryPolicy":
        if self.max_delay_s < self.initial_delay_s:
            raise ValueError("max_delay_s must be >= initial_delay_s")
        return self


class RateLimitPolicy(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    requests_per_second: float = Field(default=10.0, gt=0)
    burst_size: int = Field(default=20, gt=0)


class PoolConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    max_connections: int = Field(default=100, gt=0)
    max_keepalive_connections: int = Field(default=10, ge=0)
    keepalive_expiry_s: float = Field(default=90.0, gt=0)
    tls_handshake_timeout_s: float = Field(default=10.0, gt=0)


class ClientConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    base_url: str = Field(default=DEFAULT_BASE_URL)
    access_token: str | None = Field(default=None)
    client_id: str | None = Field(default=None)
    client_secret: str | None = Field(default=None)
    timeout_s: float = Field(default=30.0, gt=0)
    user_agent: str = Field(default=f"adsapi-python/{__version__}")
    auth_header: str = Field(default="Access-Token", min_length=1)
    retry: RetryPolicy | None = Field(default_factory=RetryPolicy)
    rate_limit: RateLimitPolicy | None = Field(default_factory=RateLimitPolicy)
    pool: PoolConfig = Field(default_factory=PoolConfig)
    debug: bool = Field(default=False)

    @field_validator("base_url")
    @classmethod
    def _validate_base_url(cls, value: str) -> str:
        if not value:
            raise ValueError("base URL is required")
        parsed = urlparse(value)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError(f"base URL must be an absolute http(s) URL: {value!r}")
        return value.rstrip("/")

    @model_validator(mode="after")
    def _require_credentials(self) -> "ClientConfig":
        if not self.access_token and not (self.client_id and self.client_secret):
            raise ValueError("either access token or client credentials are required")
        return self

    @property
    def max_retries(self) -> int:
        return self.retry.max_retries if self.retry is not None else 3

    @property
    def retryable_status_codes(self) -> frozenset[int]:
        if self.retry is None:
            return DEFAULT_RETRYABLE_STATUS_CODES
        return self.retry.retryable_status_codes


def create_config(**fields: Any) -> ClientConfig:
    try:
        return ClientConfig.model_validate(fields)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc


@dataclass(frozen=True)
class LoadedConfig:
    config: ClientConfig
    raw: dict[str, Any]


def _apply_env_overrides(payload: dict[str, Any]) -> dict[str, Any]:
    merged = dict(payload)
    token = os.environ.get(ENV_ACCESS_TOKEN)
    if token and not merged.get("access_token"):
        merged["access_token"] = token
    base_url = os.environ.get(ENV_BASE_URL)
    if base_url and not merged.get("base_url"):
        merged["base_url"] = base_url
    return merged


def load_config(path: Path) -> LoadedConfig:
    if not path.exists():
        raise ConfigError(f"Config not found: {path}")

    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML: {exc}") from exc

    if not isinstance(payload, dict):
        raise ConfigError("Config root must be a mapping")

    config = create_config(**_apply_env_overrides(payload))
    return LoadedConfig(config=config, raw=payload)
