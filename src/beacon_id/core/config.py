"""
Configuration management for Beacon Identity.

Handles loading configuration from environment variables and validation.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Any
from urllib.parse import urlsplit, urlunsplit

from beacon_id.core.exceptions import ConfigurationError


def _get_env_var(name: str, default: str | None = None, required: bool = False) -> str | None:
    """Get environment variable with optional default."""
    value = os.environ.get(name, default)
    if value is not None:
        value = value.strip()
    if required and not value:
        raise ValueError(f"Required environment variable {name} is not set")
    return value or default


@dataclass(frozen=True)
class Config:
    """Identity service configuration."""

    encryption_key: str
    # Gateway identity the local npub map is keyed under
    gateway_npub: str = ""
    # Process-wide NWC wallet used when a user has no wallet row
    shared_nwc_string: str | None = None

    # nwcli wallet service
    nwcli_base_url: str = "http://127.0.0.1"
    nwcli_port: str | None = None
    nwcli_auth: str | None = None
    nwcli_master_wallet: str | None = None

    storage_backend: str = "memory"
    redis_url: str | None = None
    notify_url: str | None = None
    log_level: str = "INFO"

    # Timeouts (seconds)
    http_timeout: float = 30.0
    nwc_timeout: float | None = None

    def __post_init__(self) -> None:
        if not self.encryption_key:
            raise ValueError("encryption_key is required")

    @classmethod
    def from_env(cls, **overrides: Any) -> Config:
        """Load configuration from environment variables."""
        encryption_key = overrides.get("encryption_key") or _get_env_var(
            "BEACON_ENCRYPTION_KEY", required=True
        )

        return cls(
            encryption_key=encryption_key,  # type: ignore
            gateway_npub=overrides.get("gateway_npub") or _get_env_var("GATEWAY_NPUB", default=""),  # type: ignore
            shared_nwc_string=overrides.get("shared_nwc_string") or _get_env_var("SHARED_NWC_STRING"),
            nwcli_base_url=overrides.get("nwcli_base_url")
            or _get_env_var("NWCLI_BASEURL", default=cls.nwcli_base_url),  # type: ignore
            nwcli_port=overrides.get("nwcli_port") or _get_env_var("NWCLI_PORT"),
            nwcli_auth=overrides.get("nwcli_auth") or _get_env_var("NWCLI_AUTH"),
            nwcli_master_wallet=overrides.get("nwcli_master_wallet")
            or _get_env_var("NWCLI_MASTER_WALLET"),
            storage_backend=overrides.get("storage_backend")
            or _get_env_var("BEACON_STORAGE_BACKEND", default="memory"),  # type: ignore
            redis_url=overrides.get("redis_url") or _get_env_var("BEACON_REDIS_URL"),
            notify_url=overrides.get("notify_url") or _get_env_var("BEACON_NOTIFY_URL"),
            log_level=overrides.get("log_level") or _get_env_var("BEACON_LOG_LEVEL", default="INFO"),  # type: ignore
            http_timeout=overrides.get("http_timeout", cls.http_timeout),
            nwc_timeout=overrides.get("nwc_timeout", cls.nwc_timeout),
        )

    def with_updates(self, **updates: Any) -> Config:
        """Create a new Config with updated values."""
        current = {f.name: getattr(self, f.name) for f in fields(self)}
        current.update(updates)
        return Config(**current)

    def nwcli_url(self) -> str:
        """Base URL of the nwcli wallet service, with NWCLI_PORT applied and no trailing slash."""
        try:
            parts = urlsplit(self.nwcli_base_url)
        except ValueError as e:
            raise ConfigurationError(f"Invalid NWCLI_BASEURL '{self.nwcli_base_url}': {e}") from e
        if not parts.scheme or not parts.hostname:
            raise ConfigurationError(f"Invalid NWCLI_BASEURL '{self.nwcli_base_url}'")

        netloc = parts.netloc
        if self.nwcli_port:
            netloc = f"{parts.hostname}:{self.nwcli_port}"
        return urlunsplit((parts.scheme, netloc, parts.path, "", "")).rstrip("/")

    def masked_auth(self) -> str:
        """Return the nwcli bearer token with most characters masked for safe logging."""
        if not self.nwcli_auth:
            return "<none>"
        if len(self.nwcli_auth) <= 8:
            return "****"
        return self.nwcli_auth[:4] + "..." + self.nwcli_auth[-4:]
