"""
Single navigation attempt against a shared browser session.

PageRunner opens an isolated page context, applies the navigation policy,
navigates with a two-tier wait (DOM ready, then network idle), runs the
feature extractor and releases the page context on every exit path.
Failures are raised as tagged ScanErrors; retrying is the orchestrator's job.
"""

from __future__ import annotations

import asyncio
import random

from phishscan.crawler.attempt_planner import AttemptSpec
from phishscan.crawler.browser_provider import BrowserAutomation, PageHandle, WaitCondition
from phishscan.crawler.errors import (
    ExtractionFailed,
    NavigationFailed,
    NavigationTimeout,
    ScanError,
    SessionRelaunchFailed,
)
from phishscan.crawler.failure_classifier import FailureClassifier
from phishscan.crawler.session import BrowserSession, SessionManager
from phishscan.extractor.dom_features import FeatureExtractor, FeatureMap
from phishscan.utils.config import BrowserConfig, NavigationConfig
from phishscan.utils.logging import get_logger

logger = get_logger(__name__)


class PageRunner:
    """Runs one AttemptSpec and returns the page's feature map.

    Args:
        extractor: Feature extractor invoked on the loaded page.
        classifier: Tags raw errors with their failure class.
        navigation: Navigation policy (timeouts, delays, request filter).
        browser: Viewport and language settings.
    """

    def __init__(
        self,
        extractor: FeatureExtractor,
        classifier: FailureClassifier | None = None,
        *,
        navigation: NavigationConfig | None = None,
        browser: BrowserConfig | None = None,
    ) -> None:
        self._extractor = extractor
        self._classifier = classifier or FailureClassifier()
        self._nav = navigation or NavigationConfig()
        self._browser = browser or BrowserConfig()
        self._blocked_types = frozenset(self._nav.blocked_resource_types)
        self._blocked_extensions = tuple(ext.lower() for ext in self._nav.blocked_extensions)

    def should_abort(self, resource_type: str, url: str) -> bool:
        """Request filter: drop non-essential resources, allow everything else."""
        if resource_type in self._blocked_types:
            return True
        if self._nav.block_archive_extensions:
            return url.lower().endswith(self._blocked_extensions)
        return False

    async def run(
        self,
        sessions: SessionManager,
        attempt: AttemptSpec,
        user_agent: str,
    ) -> FeatureMap:
        """Run one attempt.

        Args:
            sessions: Manager of the session this attempt's route uses.
            attempt: What to navigate to and how.
            user_agent: User agent fixed for the whole task.

        Returns:
            Feature map of the loaded page.

        Raises:
            ScanError: Tagged failure (message includes the URL).
            SessionRelaunchFailed: If the session can no longer be started.
        """
        url = attempt.target_url

        try:
            session, page = await sessions.open_page()
        except SessionRelaunchFailed:
            raise
        except Exception as e:
            error = self._classifier.tag(
                NavigationFailed(f"Failed to open page context for {url}: {e}", url=url),
                url,
            )
            error.generation = sessions.generation
            raise error from e

        try:
            return await self._run_on_page(session, page, attempt, user_agent)
        except ScanError as e:
            tagged = self._classifier.tag(e, url)
            tagged.generation = session.generation
            raise tagged
        except Exception as e:
            tagged = self._classifier.tag(NavigationFailed(f"{e} at {url}", url=url), url)
            tagged.generation = session.generation
            raise tagged from e
        finally:
            await session.release_page(page)

    async def _run_on_page(
        self,
        session: BrowserSession,
        page: PageHandle,
        attempt: AttemptSpec,
        user_agent: str,
    ) -> FeatureMap:
        automation = session.automation
        url = attempt.target_url

        if self._nav.page_open_delay > 0:
            await asyncio.sleep(self._nav.page_open_delay)

        await self._apply_policy(automation, page, user_agent)

        if attempt.tls_bypass and url.startswith("https://"):
            await automation.suppress_certificate_errors(page)

        if self._nav.pre_navigation_delay > 0:
            await asyncio.sleep(self._nav.pre_navigation_delay)

        await self._navigate(automation, page, url)

        try:
            features = await asyncio.wait_for(
                self._extractor.extract(page, url, user_agent),
                timeout=self._nav.extraction_timeout,
            )
        except TimeoutError as e:
            raise ExtractionFailed(
                f"Feature extraction timed out after {self._nav.extraction_timeout}s for {url}",
                url=url,
            ) from e
        except Exception as e:
            raise ExtractionFailed(f"Feature extraction failed for {url}: {e}", url=url) from e

        settle = self._nav.settle_delay_min + random.uniform(0, self._nav.settle_delay_jitter)
        if settle > 0:
            await asyncio.sleep(settle)

        logger.debug(
            "Attempt succeeded",
            url=url[:80],
            tls_bypass=attempt.tls_bypass,
            via_proxy=attempt.route_via_proxy,
            feature_count=len(features),
        )
        return features

    async def _apply_policy(
        self,
        automation: BrowserAutomation,
        page: PageHandle,
        user_agent: str,
    ) -> None:
        try:
            await automation.set_user_agent(page, user_agent)
        except Exception as e:
            logger.warning("Failed to set user agent", error=str(e))

        await automation.set_viewport(page, self._browser.viewport_width, self._browser.viewport_height)
        await automation.set_extra_headers(page, {"Accept-Language": self._browser.accept_language})
        await automation.set_javascript_enabled(page, True)
        await automation.set_request_filter(page, self.should_abort)

    async def _navigate(
        self,
        automation: BrowserAutomation,
        page: PageHandle,
        url: str,
    ) -> None:
        timeout = self._nav.navigation_timeout
        try:
            await automation.navigate(
                page, url, WaitCondition(self._nav.primary_wait_until), timeout
            )
            return
        except Exception as e:
            logger.debug("Primary navigation failed, retrying", url=url[:80], error=str(e))

        try:
            await automation.navigate(
                page, url, WaitCondition(self._nav.fallback_wait_until), timeout
            )
        except TimeoutError as e:
            raise NavigationTimeout(
                f"Navigation timed out (fallback too) for {url}: {e}", url=url
            ) from e
        except Exception as e:
            raise NavigationFailed(
                f"Navigation failed (fallback too) for {url}: {e}", url=url
            ) from e
