"""
Pytest fixtures and configuration for phishscan tests.

=============================================================================
Test Classification
=============================================================================

Primary Markers:
- @pytest.mark.unit: Single class/function, no external dependencies
  - Fast (<1s per test)
  - Browser fully replaced by FakeAutomation
  - DEFAULT: Tests without marker are auto-classified as unit

- @pytest.mark.integration: Multiple components wired together
  - Orchestrator + session manager + page runner against FakeAutomation
  - Can run anywhere

- @pytest.mark.e2e: Real Chromium via Playwright
  - DEFAULT EXCLUDED unless PHISHSCAN_RUN_E2E=1

=============================================================================
Mock Strategy
=============================================================================

- Browser: FakeAutomation implements the BrowserAutomation capability set
  in memory; navigation behaviour is scripted per test via on_navigate
- Delays: navigation delays and relaunch cooldown are zeroed
- File I/O: Use tmp_path fixture
- Network: Prohibited in unit tests
"""

import asyncio
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

# Set test environment before importing anything else
os.environ["PHISHSCAN_CONFIG_DIR"] = str(Path(__file__).parent.parent / "config")
os.environ["PHISHSCAN_GENERAL__LOG_LEVEL"] = "DEBUG"

from phishscan.crawler.browser_provider import LaunchOptions, RequestPredicate, WaitCondition
from phishscan.utils.config import (
    ConcurrencyConfig,
    NavigationConfig,
    SessionConfig,
    Settings,
)


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "unit: fast tests with no external dependencies")
    config.addinivalue_line("markers", "integration: components wired against a fake browser")
    config.addinivalue_line("markers", "e2e: tests that launch a real browser")


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark unmarked tests as unit; skip e2e unless explicitly enabled."""
    run_e2e = os.environ.get("PHISHSCAN_RUN_E2E") == "1"
    skip_e2e = pytest.mark.skip(reason="e2e tests need PHISHSCAN_RUN_E2E=1")

    for item in items:
        markers = {m.name for m in item.iter_markers()}
        if not markers & {"unit", "integration", "e2e"}:
            item.add_marker(pytest.mark.unit)
        if "e2e" in markers and not run_e2e:
            item.add_marker(skip_e2e)


# =============================================================================
# Fake browser automation
# =============================================================================


class FakePage:
    """In-memory page context handle."""

    def __init__(self, session: str, index: int) -> None:
        self.session = session
        self.index = index
        self.closed = False
        self.user_agent: str | None = None
        self.viewport: tuple[int, int] | None = None
        self.headers: dict[str, str] = {}
        self.javascript_enabled: bool | None = None
        self.request_filter: RequestPredicate | None = None
        self.certificate_errors_suppressed = False
        self.scripts: list[str] = []

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        self.scripts.append(expression)
        return {}


# on_navigate(page, url, wait_until) runs inside navigate(); raise to fail it
NavigateHook = Callable[[FakePage, str, WaitCondition], Any]


class FakeAutomation:
    """BrowserAutomation double that records every call.

    Attributes:
        on_navigate: Scripted navigation behaviour (sync or async); None succeeds.
        launch_error: Raised by every launch() while set.
        dead_sessions: Session handles whose new_page_context() reports a closed connection.
        navigate_delay: Seconds each navigate() call takes.
    """

    def __init__(self) -> None:
        self.on_navigate: NavigateHook | None = None
        self.launch_error: Exception | None = None
        self.dead_sessions: set[str] = set()
        self.navigate_delay = 0.0

        self.launches: list[LaunchOptions] = []
        self.closed_sessions: list[str] = []
        self.pages: list[FakePage] = []
        self.navigations: list[tuple[str, WaitCondition, str]] = []
        self.open_pages = 0
        self.max_open_pages = 0
        self.user_agent_error: Exception | None = None
        self.shutdown_called = False

    @property
    def name(self) -> str:
        return "fake"

    @property
    def launch_count(self) -> int:
        return len(self.launches)

    async def launch(self, options: LaunchOptions) -> str:
        if self.launch_error is not None:
            raise self.launch_error
        self.launches.append(options)
        return f"browser-{len(self.launches)}"

    async def close(self, session: str) -> None:
        self.closed_sessions.append(session)

    async def new_page_context(self, session: str) -> FakePage:
        await asyncio.sleep(0)
        if session in self.dead_sessions:
            raise RuntimeError("Protocol error (Target.createTarget): Connection closed.")
        page = FakePage(session, len(self.pages))
        self.pages.append(page)
        self.open_pages += 1
        self.max_open_pages = max(self.max_open_pages, self.open_pages)
        return page

    async def set_user_agent(self, page: FakePage, user_agent: str) -> None:
        if self.user_agent_error is not None:
            raise self.user_agent_error
        page.user_agent = user_agent

    async def set_viewport(self, page: FakePage, width: int, height: int) -> None:
        page.viewport = (width, height)

    async def set_extra_headers(self, page: FakePage, headers: dict[str, str]) -> None:
        page.headers.update(headers)

    async def set_javascript_enabled(self, page: FakePage, enabled: bool) -> None:
        page.javascript_enabled = enabled

    async def set_request_filter(self, page: FakePage, should_abort: RequestPredicate) -> None:
        page.request_filter = should_abort

    async def suppress_certificate_errors(self, page: FakePage) -> None:
        page.certificate_errors_suppressed = True

    async def navigate(
        self,
        page: FakePage,
        url: str,
        wait_until: WaitCondition,
        timeout: float,
    ) -> None:
        self.navigations.append((url, wait_until, page.session))
        if self.navigate_delay:
            await asyncio.sleep(self.navigate_delay)
        if self.on_navigate is not None:
            result = self.on_navigate(page, url, wait_until)
            if asyncio.iscoroutine(result):
                await result

    async def close_page_context(self, page: FakePage) -> None:
        page.closed = True
        self.open_pages -= 1

    async def shutdown(self) -> None:
        self.shutdown_called = True

    def urls_navigated(self) -> list[str]:
        """Distinct attempt URLs in order (the networkidle retry is folded in)."""
        return [url for url, wait_until, _ in self.navigations if wait_until == WaitCondition.DOM_READY]


class FakeExtractor:
    """FeatureExtractor double returning a fixed feature map."""

    def __init__(self, features: dict[str, Any] | None = None) -> None:
        self.features = features if features is not None else {"totalNodes": 42, "formCount": 1}
        self.error: Exception | None = None
        self.calls: list[tuple[str, str]] = []

    async def extract(self, page: Any, url: str, user_agent: str) -> dict[str, Any]:
        self.calls.append((url, user_agent))
        if self.error is not None:
            raise self.error
        return dict(self.features)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def fake_automation() -> FakeAutomation:
    return FakeAutomation()


@pytest.fixture
def fake_extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture
def fast_navigation() -> NavigationConfig:
    """Navigation policy with every delay zeroed."""
    return NavigationConfig(
        navigation_timeout=5.0,
        pre_navigation_delay=0.0,
        page_open_delay=0.0,
        settle_delay_min=0.0,
        settle_delay_jitter=0.0,
    )


@pytest.fixture
def fast_settings(fast_navigation: NavigationConfig) -> Settings:
    """Settings with zero delays, zero relaunch cooldown and small bounds."""
    return Settings(
        navigation=fast_navigation,
        session=SessionConfig(relaunch_cooldown=0.0),
        concurrency=ConcurrencyConfig(max_concurrent_scans=4, max_proxy_scans=2),
    )


@pytest.fixture
def fixed_user_agent() -> Callable[[], str]:
    return lambda: "Mozilla/5.0 (TestAgent)"
