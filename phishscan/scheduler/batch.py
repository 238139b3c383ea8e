"""
Batch scanner.

Runs a list of ScanTasks through a shared ScanOrchestrator with two nested
concurrency bounds:

- max_concurrent_scans: tasks in flight (outer semaphore)
- max_proxy_scans: proxy-routed attempts in flight (inner semaphore,
  acquired inside a task slot and released first)

The scanner owns the browser sessions: they are started once before the
first task and closed once after the last one, also when a relaunch failure
aborts the batch.
"""

import asyncio
from collections.abc import Callable, Iterable

from phishscan.crawler.attempt_planner import AttemptPlanner
from phishscan.crawler.browser_provider import BrowserAutomation, LaunchOptions, ProxyEndpoint
from phishscan.crawler.errors import SessionRelaunchFailed
from phishscan.crawler.failure_classifier import FailureClassifier
from phishscan.crawler.page_runner import PageRunner
from phishscan.crawler.session import SessionManager
from phishscan.crawler.user_agent import random_user_agent
from phishscan.extractor.dom_features import DomFeatureExtractor, FeatureExtractor
from phishscan.scheduler.models import (
    ErrorRecord,
    ScanFailure,
    ScanOutcome,
    ScanTask,
    to_record,
)
from phishscan.scheduler.orchestrator import ScanOrchestrator, ScanPolicy
from phishscan.utils.config import Settings, get_settings
from phishscan.utils.logging import get_logger

logger = get_logger(__name__)


class BatchScanner:
    """Scans a batch of URLs and collects one outcome per URL.

    Example:
        scanner = BatchScanner()
        outcomes = await scanner.scan([ScanTask("https://example.com", 0)])
        rows = scanner.records()

    Args:
        settings: Settings to use; defaults to get_settings().
        automation: Browser backend; defaults to a PlaywrightProvider owned
            (and shut down) by this scanner.
        extractor: Feature extractor; defaults to DomFeatureExtractor.
        user_agent_factory: Picks the user agent for each task.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        automation: BrowserAutomation | None = None,
        extractor: FeatureExtractor | None = None,
        user_agent_factory: Callable[[], str] = random_user_agent,
    ) -> None:
        self._settings = settings or get_settings()
        self._owns_automation = automation is None
        if automation is None:
            from phishscan.crawler.playwright_provider import PlaywrightProvider

            automation = PlaywrightProvider()
        self._automation = automation
        self._extractor = extractor or DomFeatureExtractor()
        self._user_agent_factory = user_agent_factory

        self._tasks: dict[str, ScanTask] = {}
        self._outcomes: dict[str, ScanOutcome] = {}
        self._errors: list[ErrorRecord] = []

    @property
    def outcomes(self) -> dict[str, ScanOutcome]:
        return self._outcomes

    @property
    def errors(self) -> list[ErrorRecord]:
        return self._errors

    def records(self) -> list[dict]:
        """Output rows for every finished task, in input order."""
        return [
            to_record(task, self._outcomes[url])
            for url, task in self._tasks.items()
            if url in self._outcomes
        ]

    def _build_sessions(self) -> tuple[SessionManager, SessionManager | None]:
        settings = self._settings
        cooldown = settings.session.relaunch_cooldown

        direct = SessionManager(
            self._automation,
            LaunchOptions.from_config(settings.browser),
            relaunch_cooldown=cooldown,
            name="direct",
        )

        endpoint = ProxyEndpoint.from_config(settings.proxy)
        if endpoint is None:
            return direct, None

        proxy = SessionManager(
            self._automation,
            LaunchOptions.from_config(settings.browser, proxy=endpoint),
            relaunch_cooldown=cooldown,
            name="proxy",
        )
        return direct, proxy

    def _build_orchestrator(
        self,
        direct: SessionManager,
        proxy: SessionManager | None,
        proxy_semaphore: asyncio.Semaphore,
    ) -> ScanOrchestrator:
        settings = self._settings
        classifier = FailureClassifier.with_extra_rules(
            fatal_session=settings.classifier.extra_fatal_session,
            proxy_eligible=settings.classifier.extra_proxy_eligible,
        )
        runner = PageRunner(
            self._extractor,
            classifier,
            navigation=settings.navigation,
            browser=settings.browser,
        )
        return ScanOrchestrator(
            AttemptPlanner(settings.proxy),
            runner,
            direct,
            proxy_sessions=proxy,
            proxy_semaphore=proxy_semaphore,
            policy=ScanPolicy.from_settings(settings),
            user_agent_factory=self._user_agent_factory,
        )

    async def scan(self, tasks: Iterable[ScanTask]) -> dict[str, ScanOutcome]:
        """Scan every task; return outcomes keyed by URL.

        Duplicate URLs are scanned once, with the last task's label. Each call
        starts from empty outcomes and errors; records() reflects the latest call.

        Raises:
            SessionRelaunchFailed: If a browser session could not be restarted.
                Sessions are closed before it propagates.
        """
        self._tasks = {}
        self._outcomes = {}
        self._errors = []
        for task in tasks:
            # Re-insert so a duplicate moves to its last input position
            self._tasks.pop(task.url, None)
            self._tasks[task.url] = task

        concurrency = self._settings.concurrency
        task_semaphore = asyncio.Semaphore(concurrency.max_concurrent_scans)
        proxy_semaphore = asyncio.Semaphore(concurrency.max_proxy_scans)

        direct, proxy = self._build_sessions()
        orchestrator = self._build_orchestrator(direct, proxy, proxy_semaphore)
        total = len(self._tasks)

        logger.info(
            "Batch scan started",
            tasks=total,
            max_concurrent_scans=concurrency.max_concurrent_scans,
            max_proxy_scans=concurrency.max_proxy_scans,
            proxy_mode=self._settings.proxy.mode,
        )

        try:
            await direct.start()
            if proxy is not None:
                await proxy.start()

            async def run_one(task: ScanTask) -> None:
                async with task_semaphore:
                    try:
                        outcome = await orchestrator.scan(task)
                    except SessionRelaunchFailed:
                        raise
                    except Exception as e:
                        logger.exception("Task aborted", url=task.url[:120])
                        outcome = ScanFailure(messages=[f"{e}"])
                self._record(task, outcome)
                logger.info("Task finished", completed=len(self._outcomes), total=total)

            results = await asyncio.gather(
                *(run_one(task) for task in self._tasks.values()),
                return_exceptions=True,
            )
        finally:
            await self._close(direct, proxy)

        for result in results:
            if isinstance(result, SessionRelaunchFailed):
                logger.error("Batch aborted", error=str(result), completed=len(self._outcomes))
                raise result
            if isinstance(result, BaseException):
                raise result

        logger.info(
            "Batch scan finished",
            tasks=total,
            succeeded=total - len(self._errors),
            failed=len(self._errors),
        )
        return self._outcomes

    def _record(self, task: ScanTask, outcome: ScanOutcome) -> None:
        self._outcomes[task.url] = outcome
        if isinstance(outcome, ScanFailure):
            self._errors.append(ErrorRecord(url=task.url, message=outcome.message))

    async def _close(self, direct: SessionManager, proxy: SessionManager | None) -> None:
        for sessions in (direct, proxy):
            if sessions is None:
                continue
            try:
                await sessions.close()
            except Exception as e:
                logger.warning("Session close failed", session=sessions.name, error=str(e))

        if self._owns_automation:
            await self._automation.shutdown()


async def scan_urls(
    tasks: Iterable[ScanTask],
    settings: Settings | None = None,
    *,
    automation: BrowserAutomation | None = None,
    extractor: FeatureExtractor | None = None,
) -> tuple[list[dict], list[ErrorRecord]]:
    """Scan a batch and return its output rows and error records.

    Args:
        tasks: Tasks to scan.
        settings: Settings to use; defaults to get_settings().
        automation: Browser backend; defaults to Playwright.
        extractor: Feature extractor; defaults to DomFeatureExtractor.

    Returns:
        (records, errors) where records holds one row per distinct URL.
    """
    scanner = BatchScanner(settings, automation=automation, extractor=extractor)
    await scanner.scan(tasks)
    return scanner.records(), scanner.errors
