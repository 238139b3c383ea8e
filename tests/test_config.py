"""
Tests for settings loading and the CLI overrides built on it.

## Test Perspectives Table

| Case ID | Input / Precondition | Perspective (Equivalence / Boundary) | Expected Result | Notes |
|---------|----------------------|--------------------------------------|-----------------|-------|
| TC-CF-01 | No arguments | Equivalence – normal | Documented defaults | - |
| TC-CF-02 | max_proxy_scans: 0 | Boundary – below minimum | ValidationError | ge=1 constraint |
| TC-CF-03 | settings.yaml + local.yaml | Equivalence – merge | local.yaml wins, rest kept | Deep merge |
| TC-CF-04 | PHISHSCAN_SECTION__KEY env | Equivalence – override | Typed override applied | Env |
| TC-CF-05 | PHISHSCAN_CONFIG_DIR env | Boundary – no __ | Not treated as a setting | Env |
| TC-CF-06 | Unknown navigation key | Abnormal – typo | ValidationError | extra=forbid |
| TC-CF-07 | Shipped config/settings.yaml | Equivalence – wiring | Loads into Settings | Repo config |
| TC-CF-08 | CLI concurrency overrides | Equivalence – override | Bounds replaced | apply_overrides |
| TC-CF-09 | CLI concurrency 0 | Boundary – below minimum | ValidationError | apply_overrides |
"""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

pytestmark = pytest.mark.unit

from phishscan.main import apply_overrides
from phishscan.utils.config import (
    ConcurrencyConfig,
    NavigationConfig,
    Settings,
    _apply_env_overrides,
    _load_yaml_config,
)

REPO_CONFIG = Path(__file__).parent.parent / "config"


class TestDefaults:
    """Tests for default values."""

    def test_defaults(self) -> None:
        """Test documented defaults.

        Given: No explicit values
        When: Settings is created
        Then: Bounds, cooldown, proxy mode and timeouts have their defaults
        """
        # Given/When
        settings = Settings()

        # Then
        assert settings.concurrency.max_concurrent_scans == 10
        assert settings.concurrency.max_proxy_scans == 5
        assert settings.session.relaunch_cooldown == 3.0
        assert settings.proxy.mode == "none"
        assert settings.navigation.navigation_timeout == 120.0
        assert settings.navigation.extraction_timeout == 60.0
        assert settings.navigation.blocked_resource_types == ["image", "stylesheet", "font"]
        assert settings.scan.skip_bypass_on_unresolved is False

    def test_proxy_bound_minimum(self) -> None:
        """Test max_proxy_scans below minimum.

        Given: max_proxy_scans=0
        When: ConcurrencyConfig is created
        Then: ValidationError is raised
        """
        with pytest.raises(ValidationError):
            ConcurrencyConfig(max_proxy_scans=0)

    def test_unknown_navigation_key(self) -> None:
        """Test that typos in navigation settings are rejected.

        Given: A misspelled key
        When: NavigationConfig is created
        Then: ValidationError is raised
        """
        with pytest.raises(ValidationError):
            NavigationConfig(navigation_timout=5)


class TestLoading:
    """Tests for YAML and environment loading."""

    def test_local_yaml_merge(self, tmp_path: Path) -> None:
        """Test local.yaml deep-merges over settings.yaml.

        Given: settings.yaml with proxy and concurrency, local.yaml with an API key
        When: The config is loaded
        Then: local values win, untouched siblings are kept
        """
        # Given
        (tmp_path / "settings.yaml").write_text(
            "proxy:\n  mode: gateway\n  api_key: null\nconcurrency:\n  max_proxy_scans: 3\n",
            encoding="utf-8",
        )
        (tmp_path / "local.yaml").write_text("proxy:\n  api_key: SECRET\n", encoding="utf-8")

        # When
        settings = Settings(**_load_yaml_config(tmp_path))

        # Then
        assert settings.proxy.mode == "gateway"
        assert settings.proxy.api_key == "SECRET"
        assert settings.concurrency.max_proxy_scans == 3

    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test PHISHSCAN_<SECTION>__<KEY> overrides.

        Given: Env vars for an int, a float and a bool
        When: Overrides are applied
        Then: Values are typed and nested
        """
        # Given
        monkeypatch.setenv("PHISHSCAN_CONCURRENCY__MAX_CONCURRENT_SCANS", "20")
        monkeypatch.setenv("PHISHSCAN_SESSION__RELAUNCH_COOLDOWN", "0.5")
        monkeypatch.setenv("PHISHSCAN_SCAN__SKIP_BYPASS_ON_UNRESOLVED", "true")

        # When
        settings = Settings(**_apply_env_overrides({}))

        # Then
        assert settings.concurrency.max_concurrent_scans == 20
        assert settings.session.relaunch_cooldown == 0.5
        assert settings.scan.skip_bypass_on_unresolved is True

    def test_config_dir_env_ignored(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that PHISHSCAN_CONFIG_DIR is not read as a setting.

        Given: PHISHSCAN_CONFIG_DIR is set
        When: Overrides are applied
        Then: No top-level config_dir key appears
        """
        monkeypatch.setenv("PHISHSCAN_CONFIG_DIR", "/tmp/elsewhere")

        config = _apply_env_overrides({})

        assert "config_dir" not in config

    def test_repo_settings_yaml(self) -> None:
        """Test that the shipped settings.yaml is valid.

        Given: config/settings.yaml from the repository
        When: It is loaded
        Then: Settings validates with the documented defaults
        """
        settings = Settings(**_load_yaml_config(REPO_CONFIG))

        assert settings.browser.viewport_width == 1366
        assert ".gz" in settings.navigation.blocked_extensions
        assert settings.proxy.gateway_url == "http://api.scraperapi.com/"


class TestApplyOverrides:
    """Tests for CLI concurrency overrides."""

    def test_overrides(self) -> None:
        """Test --concurrency and --proxy-concurrency.

        Given: Default settings
        When: Both overrides are applied
        Then: Both bounds change, other sections untouched
        """
        settings = apply_overrides(Settings(), concurrency=20, proxy_concurrency=2)

        assert settings.concurrency.max_concurrent_scans == 20
        assert settings.concurrency.max_proxy_scans == 2
        assert settings.session.relaunch_cooldown == 3.0

    def test_partial_and_none(self) -> None:
        """Test a single override and no override.

        Given: Default settings
        When: Only the proxy bound is overridden, or nothing is
        Then: The other bound keeps its value; no-op returns the same object
        """
        base = Settings()

        assert apply_overrides(base, proxy_concurrency=1).concurrency.max_concurrent_scans == 10
        assert apply_overrides(base) is base

    def test_invalid(self) -> None:
        """Test an override below minimum.

        Given: --concurrency 0
        When: Overrides are applied
        Then: ValidationError is raised
        """
        with pytest.raises(ValidationError):
            apply_overrides(Settings(), concurrency=0)
