"""
Shared browser session lifecycle.

One browser process is shared by every concurrently running scan task. Any
task may find it dead and request a relaunch. SessionManager makes that safe:

- Each BrowserSession carries a generation number. A relaunch retires the
  current generation at once, so no task opens a page context on it after
  the relaunch has begun.
- Tasks asking for a page while a relaunch is in progress wait until the new
  generation is ready.
- A retired session is only closed once its in-flight page contexts have
  been released (generation-gated teardown).
- Concurrent relaunch requests for the same stale generation collapse into
  a single launch.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from phishscan.crawler.browser_provider import BrowserAutomation, LaunchOptions, PageHandle
from phishscan.crawler.errors import SessionRelaunchFailed
from phishscan.utils.logging import get_logger

logger = get_logger(__name__)


class BrowserSession:
    """One browser process handle plus the page contexts open on it.

    Args:
        automation: Backend that owns the handle.
        handle: Opaque session handle returned by automation.launch().
        generation: Monotonic generation number assigned by SessionManager.
        name: Manager name, for logs.
    """

    def __init__(
        self,
        automation: BrowserAutomation,
        handle: Any,
        generation: int,
        name: str = "direct",
    ) -> None:
        self._automation = automation
        self._handle = handle
        self._generation = generation
        self._name = name
        self._in_flight = 0
        self._retired = False
        self._closed = False

    @property
    def automation(self) -> BrowserAutomation:
        return self._automation

    @property
    def handle(self) -> Any:
        return self._handle

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def is_retired(self) -> bool:
        return self._retired

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def open_page(self) -> PageHandle:
        """Open an isolated page context on this session.

        The in-flight count is taken before the first await, so a retire()
        that happens while the context is being created still waits for it.

        Raises:
            RuntimeError: If the session has been retired.
        """
        if self._retired:
            raise RuntimeError(f"Session generation {self._generation} is retired")

        self._in_flight += 1
        try:
            return await self._automation.new_page_context(self._handle)
        except BaseException:
            await self._release_slot()
            raise

    async def release_page(self, page: PageHandle) -> None:
        """Close a page context opened by open_page(). Never raises."""
        try:
            await self._automation.close_page_context(page)
        except Exception as e:
            logger.debug(
                "Page context close failed",
                session=self._name,
                generation=self._generation,
                error=str(e),
            )
        await self._release_slot()

    def retire(self) -> None:
        """Stop handing out page contexts from this session."""
        self._retired = True

    async def close_when_drained(self) -> None:
        """Retire, and close now if nothing is in flight (else on last release)."""
        self.retire()
        if self._in_flight == 0:
            await self._close()

    async def _release_slot(self) -> None:
        self._in_flight -= 1
        if self._retired and self._in_flight == 0:
            await self._close()

    async def _close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._automation.close(self._handle)
        except Exception as e:
            # The process is often already dead when a generation is retired
            logger.debug(
                "Browser close failed",
                session=self._name,
                generation=self._generation,
                error=str(e),
            )


class SessionManager:
    """Owns the current BrowserSession and serializes relaunches.

    Example:
        sessions = SessionManager(automation, LaunchOptions(), relaunch_cooldown=3.0)
        await sessions.start()
        session, page = await sessions.open_page()
        try:
            ...
        finally:
            await session.release_page(page)
        await sessions.close()

    Args:
        automation: Browser automation backend.
        launch_options: Options used for every launch of this manager.
        relaunch_cooldown: Seconds paid before a relaunch completes.
        name: Label for logs ("direct", "proxy").
    """

    def __init__(
        self,
        automation: BrowserAutomation,
        launch_options: LaunchOptions,
        *,
        relaunch_cooldown: float = 3.0,
        name: str = "direct",
    ) -> None:
        self._automation = automation
        self._launch_options = launch_options
        self._cooldown = relaunch_cooldown
        self._name = name

        self._current: BrowserSession | None = None
        self._generation = 0
        self._lock = asyncio.Lock()
        self._ready = asyncio.Event()
        self._failure: SessionRelaunchFailed | None = None
        self._closed = False
        self._relaunch_count = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def relaunch_count(self) -> int:
        return self._relaunch_count

    @property
    def current(self) -> BrowserSession | None:
        return self._current

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set() and self._failure is None

    async def start(self) -> BrowserSession:
        """Launch the first generation. Idempotent."""
        async with self._lock:
            if self._current is not None and not self._current.is_retired:
                return self._current
            handle = await self._automation.launch(self._launch_options)
            self._install(handle)
            logger.info("Browser session started", session=self._name, generation=self._generation)
            assert self._current is not None
            return self._current

    async def open_page(self) -> tuple[BrowserSession, PageHandle]:
        """Open a page context on the current generation.

        Waits while a relaunch is in progress. Returns the session too, so
        the caller can release the page on the generation it came from.

        Raises:
            SessionRelaunchFailed: If the last relaunch failed.
            RuntimeError: If the manager was never started or is closed.
        """
        while True:
            if self._closed:
                raise RuntimeError(f"Session manager '{self._name}' is closed")
            if self._current is None:
                raise RuntimeError(f"Session manager '{self._name}' not started")

            await self._ready.wait()
            if self._failure is not None:
                raise self._failure

            session = self._current
            if session is None or session.is_retired:
                # Relaunch began between wake-up and now
                continue
            return session, await session.open_page()

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[tuple[BrowserSession, PageHandle]]:
        """Open a page context and release it on exit.

        Yields:
            (session, page) where session is the generation the page lives on.
        """
        session, page = await self.open_page()
        try:
            yield session, page
        finally:
            await session.release_page(page)

    async def relaunch(self, stale_generation: int) -> BrowserSession:
        """Replace the session of stale_generation with a fresh process.

        If another task already replaced that generation, returns the current
        session without launching again.

        Raises:
            SessionRelaunchFailed: If the browser cannot be started again.
        """
        async with self._lock:
            if self._failure is not None:
                raise self._failure
            if self._closed:
                raise RuntimeError(f"Session manager '{self._name}' is closed")
            if self._generation != stale_generation and self._current is not None:
                logger.debug(
                    "Relaunch already done",
                    session=self._name,
                    stale_generation=stale_generation,
                    generation=self._generation,
                )
                return self._current

            self._ready.clear()
            old = self._current
            if old is not None:
                old.retire()

            logger.warning(
                "Relaunching browser session",
                session=self._name,
                stale_generation=stale_generation,
                cooldown=self._cooldown,
            )

            try:
                await asyncio.sleep(self._cooldown)
                handle = await self._automation.launch(self._launch_options)
            except Exception as e:
                self._failure = SessionRelaunchFailed(
                    f"Browser relaunch failed for '{self._name}' session: {e}"
                )
                self._ready.set()  # wake waiters so they observe the failure
                logger.error("Browser relaunch failed", session=self._name, error=str(e))
                raise self._failure from e

            self._install(handle)
            self._relaunch_count += 1
            logger.info("Browser session relaunched", session=self._name, generation=self._generation)

        if old is not None:
            await old.close_when_drained()
        assert self._current is not None
        return self._current

    async def close(self) -> None:
        """Close the current session once its in-flight page contexts are released."""
        async with self._lock:
            self._closed = True
            session = self._current
            self._ready.set()
        if session is not None:
            await session.close_when_drained()
            logger.info("Browser session closed", session=self._name, generation=session.generation)

    def _install(self, handle: Any) -> None:
        self._generation += 1
        self._current = BrowserSession(
            self._automation, handle, self._generation, name=self._name
        )
        self._ready.set()
