"""Tests for core configuration classes."""

from __future__ import annotations

from apisync.core.config import (
    DEFAULT_GLOBAL_PUSH_LIMIT,
    DEFAULT_PUSH_LEASE_TIME,
    DEFAULT_PUSH_MAX_FAILS,
    RemoteConfig,
    SyncSettings,
)


class TestRemoteConfig:
    """Tests for RemoteConfig class."""

    def test_init_basic(self) -> None:
        """Should initialize with required fields."""
        config = RemoteConfig(instance_url="https://erp.example.com", token="test-token")
        assert config.instance_url == "https://erp.example.com"
        assert config.token == "test-token"
        assert config.timeout == 30.0
        assert config.verify_ssl is True

    def test_url_trailing_slash_removed(self) -> None:
        """Should strip trailing slash from instance URL."""
        config = RemoteConfig(instance_url="https://erp.example.com/")
        assert config.instance_url == "https://erp.example.com"

    def test_api_path_normalized(self) -> None:
        """Service path should get exactly one leading slash."""
        config = RemoteConfig(instance_url="https://erp.example.com", api_path="odata/v4/")
        assert config.api_path == "/odata/v4"
        assert config.base_url == "https://erp.example.com/odata/v4"

    def test_base_url_without_path(self) -> None:
        """Base URL should be the instance URL when no path is set."""
        config = RemoteConfig(instance_url="https://erp.example.com")
        assert config.base_url == "https://erp.example.com"

    def test_is_authorized(self) -> None:
        """Should be authorized only with a token."""
        assert RemoteConfig(instance_url="https://x", token="t").is_authorized is True
        assert RemoteConfig(instance_url="https://x").is_authorized is False


class TestSyncSettings:
    """Tests for SyncSettings class."""

    def test_defaults(self) -> None:
        """Should use the documented defaults."""
        settings = SyncSettings()
        assert settings.global_push_limit == DEFAULT_GLOBAL_PUSH_LIMIT
        assert settings.push_max_fails == DEFAULT_PUSH_MAX_FAILS
        assert settings.push_lease_time == DEFAULT_PUSH_LEASE_TIME
        assert settings.standalone is False

    def test_from_dict(self) -> None:
        """Should read known keys."""
        settings = SyncSettings.from_dict({"global_push_limit": 5, "standalone": True})
        assert settings.global_push_limit == 5
        assert settings.standalone is True

    def test_from_dict_ignores_unknown_keys(self) -> None:
        """Unknown keys should not raise."""
        settings = SyncSettings.from_dict({"unknown": 1, "push_lease_time": 60})
        assert settings.push_lease_time == 60
