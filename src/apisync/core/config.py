"""Configuration classes for apisync.

This module defines the remote connection settings and the global
engine settings. Mapping definitions are configured separately (see
apisync.mapping.schemas) and runtime timestamps live in the database.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any

# Defaults for the global engine settings
DEFAULT_GLOBAL_PUSH_LIMIT = 10000
DEFAULT_PULL_MAX_QUEUE_SIZE = 100000
DEFAULT_REVISION_LIMIT = 10
DEFAULT_PUSH_MAX_FAILS = 10
DEFAULT_PUSH_LEASE_TIME = 300  # seconds


@dataclass
class RemoteConfig:
    """Configuration for connecting to the remote OData service.

    Attributes:
        instance_url: Base URL of the remote instance (e.g., "https://erp.example.com").
        token: Bearer token sent with every request.
        api_path: Path of the OData service root below the instance URL.
        timeout: Request timeout in seconds.
        verify_ssl: Whether to verify SSL certificates (default True).
        max_retries: Retries for transport failures before giving up.
    """

    instance_url: str
    token: str = ""
    api_path: str = ""
    timeout: float = 30.0
    verify_ssl: bool = True
    max_retries: int = 2

    def __post_init__(self) -> None:
        """Normalize URL and service path."""
        self.instance_url = self.instance_url.rstrip("/")
        path = self.api_path.strip("/")
        self.api_path = f"/{path}" if path else ""

    @property
    def base_url(self) -> str:
        """Service root URL used for all OData requests."""
        return f"{self.instance_url}{self.api_path}"

    @property
    def is_authorized(self) -> bool:
        """Check if credentials are available.

        Returns:
            True if a token is configured.
        """
        return bool(self.token)


@dataclass
class SyncSettings:
    """Global settings shared by the push and pull engines.

    Attributes:
        global_push_limit: Maximum push items processed per invocation across mappings.
        pull_max_queue_size: Pull enqueuing is skipped while the queue holds more items.
        limit_mapped_object_revisions: Revisions kept per mapped object (0 keeps all).
        standalone: When set, cron processing skips every mapping.
        push_max_fails: Failure count at which push items stop being claimed.
        push_lease_time: Lease duration in seconds for claimed push items.
        log_level: Minimum signal level logged ("error", "warning" or "notice").
    """

    global_push_limit: int = DEFAULT_GLOBAL_PUSH_LIMIT
    pull_max_queue_size: int = DEFAULT_PULL_MAX_QUEUE_SIZE
    limit_mapped_object_revisions: int = DEFAULT_REVISION_LIMIT
    standalone: bool = False
    push_max_fails: int = DEFAULT_PUSH_MAX_FAILS
    push_lease_time: int = DEFAULT_PUSH_LEASE_TIME
    log_level: str = "notice"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncSettings:
        """Create from a configuration dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in known})
