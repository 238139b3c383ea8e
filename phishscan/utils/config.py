"""
Configuration management for phishscan.
Loads and validates settings from YAML files and environment variables.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field


class GeneralConfig(BaseModel):
    """General configuration."""

    project_name: str = "phishscan"
    version: str = "0.1.0"
    log_level: str = "INFO"
    logs_dir: str = "logs"
    output_dir: str = "output"


class BrowserConfig(BaseModel):
    """Browser process configuration.

    The launch args mirror what a scanner needs to load hostile pages:
    no sandbox, no web security, site isolation off, certificate errors
    tolerated at process level.
    """

    headless: bool = True
    launch_args: list[str] = Field(
        default_factory=lambda: [
            "--no-sandbox",
            "--disable-setuid-sandbox",
            "--disable-web-security",
            "--disable-features=IsolateOrigins,site-per-process",
            "--ignore-certificate-errors",
            "--ignore-ssl-errors",
        ]
    )
    protocol_timeout: float = 180.0  # seconds
    viewport_width: int = 1366
    viewport_height: int = 768
    accept_language: str = "en-US,en;q=0.9"


class NavigationConfig(BaseModel):
    """Per-attempt navigation policy."""

    model_config = ConfigDict(extra="forbid")

    primary_wait_until: str = "domcontentloaded"
    fallback_wait_until: str = "networkidle"
    navigation_timeout: float = 120.0  # seconds, per navigation call
    extraction_timeout: float = 60.0  # seconds, whole feature extraction
    pre_navigation_delay: float = 0.5
    page_open_delay: float = 2.0
    settle_delay_min: float = 1.0
    settle_delay_jitter: float = 0.5
    blocked_resource_types: list[str] = Field(
        default_factory=lambda: ["image", "stylesheet", "font"]
    )
    block_archive_extensions: bool = True
    blocked_extensions: list[str] = Field(
        default_factory=lambda: [
            ".zip",
            ".rar",
            ".pdf",
            ".exe",
            ".doc",
            ".xls",
            ".msi",
            ".dmg",
            ".iso",
            ".7z",
            ".tar",
            ".gz",
        ]
    )


class ConcurrencyConfig(BaseModel):
    """Concurrency bounds for a scan batch.

    Attributes:
        max_concurrent_scans: Tasks processed at once (outer bound).
        max_proxy_scans: Proxy-routed attempts at once (inner bound).
    """

    model_config = ConfigDict(extra="forbid")

    max_concurrent_scans: int = Field(default=10, ge=1)
    max_proxy_scans: int = Field(default=5, ge=1)


class SessionConfig(BaseModel):
    """Shared browser session lifecycle."""

    relaunch_cooldown: float = 3.0  # seconds paid before each relaunch completes


class ProxyConfig(BaseModel):
    """Third-party egress used for proxy escalation.

    Modes:
    - none: never escalate, proxy-eligible failures stay failures.
    - gateway: rewrite the target URL through a URL-rewriting gateway.
    - server: egress through host:port with optional credentials, using a
      browser session dedicated to proxy traffic.
    """

    mode: Literal["none", "gateway", "server"] = "none"
    gateway_url: str = "http://api.scraperapi.com/"
    api_key: str | None = None
    server: str | None = None  # e.g. "http://proxy-server.scraperapi.com:8001"
    username: str | None = None
    password: str | None = None


class ClassifierConfig(BaseModel):
    """Additional failure substrings appended to the built-in table."""

    extra_fatal_session: list[str] = Field(default_factory=list)
    extra_proxy_eligible: list[str] = Field(default_factory=list)


class ScanConfig(BaseModel):
    """Attempt strategy switches."""

    skip_bypass_on_unresolved: bool = False


class Settings(BaseModel):
    """Main settings container."""

    general: GeneralConfig = Field(default_factory=GeneralConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    navigation: NavigationConfig = Field(default_factory=NavigationConfig)
    concurrency: ConcurrencyConfig = Field(default_factory=ConcurrencyConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    proxy: ProxyConfig = Field(default_factory=ProxyConfig)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    scan: ScanConfig = Field(default_factory=ScanConfig)


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries.

    Args:
        base: Base dictionary.
        override: Override dictionary.

    Returns:
        Merged dictionary.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _load_yaml_config(config_dir: Path) -> dict[str, Any]:
    """Load settings.yaml, then apply local.yaml on top of it.

    local.yaml holds machine-specific values (API keys, proxy credentials)
    and is not meant to be committed.

    Args:
        config_dir: Configuration directory path.

    Returns:
        Merged configuration dictionary.
    """
    config: dict[str, Any] = {}

    base_path = config_dir / "settings.yaml"
    if base_path.exists():
        with open(base_path, encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}

    local_path = config_dir / "local.yaml"
    if local_path.exists():
        with open(local_path, encoding="utf-8") as f:
            config = _deep_merge(config, yaml.safe_load(f) or {})

    return config


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Apply environment variable overrides.

    Environment variables should be prefixed with PHISHSCAN_ and use
    double underscores for nested keys.

    Example:
        PHISHSCAN_CONCURRENCY__MAX_PROXY_SCANS=3

    Args:
        config: Configuration dictionary.

    Returns:
        Configuration with environment overrides.
    """
    prefix = "PHISHSCAN_"

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        key_path = key[len(prefix) :].lower().split("__")
        if len(key_path) < 2:
            # PHISHSCAN_CONFIG_DIR and friends are not settings
            continue

        current = config
        for part in key_path[:-1]:
            if part not in current or not isinstance(current[part], dict):
                current[part] = {}
            current = current[part]

        final_key = key_path[-1]
        try:
            if value.lower() in ("true", "false"):
                current[final_key] = value.lower() == "true"
            elif "." in value:
                current[final_key] = float(value)
            else:
                current[final_key] = int(value)
        except ValueError:
            current[final_key] = value

    return config


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get application settings.

    Settings are loaded from:
    1. Default values
    2. YAML configuration files
    3. Environment variables (highest priority)

    Returns:
        Settings instance.
    """
    config_dir = Path(os.environ.get("PHISHSCAN_CONFIG_DIR", "config"))

    config = _load_yaml_config(config_dir)
    config = _apply_env_overrides(config)

    return Settings(**config)


def get_project_root() -> Path:
    """Get the project root directory.

    Returns:
        Project root path.
    """
    # Assuming this file is at phishscan/utils/config.py
    return Path(__file__).parent.parent.parent


def ensure_directories() -> None:
    """Ensure log and output directories exist."""
    settings = get_settings()
    root = get_project_root()

    for dir_path in (root / settings.general.logs_dir, root / settings.general.output_dir):
        dir_path.mkdir(parents=True, exist_ok=True)
