"""
Tests for the shared browser session lifecycle.

## Test Perspectives Table

| Case ID | Input / Precondition | Perspective (Equivalence / Boundary) | Expected Result | Notes |
|---------|---------------------|---------------------------------------|-----------------|-------|
| TC-SM-N-01 | start() twice | Equivalence – idempotent | One launch, generation 1 | start |
| TC-SM-A-01 | open_page() before start | Abnormal – not started | RuntimeError | Guard |
| TC-SM-N-02 | acquire() | Equivalence – normal | Page released on exit | Context manager |
| TC-SM-N-03 | relaunch(current) | Equivalence – normal | New generation, old closed | relaunch |
| TC-SM-N-04 | relaunch with page in flight | Equivalence – drain | Old closed only after release | Gated teardown |
| TC-SM-N-05 | Two concurrent relaunch(1) | Equivalence – dedup | Exactly one launch | Collapse |
| TC-SM-B-01 | relaunch(stale) after replaced | Boundary – stale | No launch, no cooldown | Dedup |
| TC-SM-N-06 | open_page() during relaunch | Equivalence – wait | Page on new generation | Waiters |
| TC-SM-A-02 | launch fails during relaunch | Abnormal – relaunch failure | SessionRelaunchFailed, waiters raise | Batch fatal |
| TC-SM-A-03 | open_page() on retired session | Abnormal – retired | RuntimeError | BrowserSession |
| TC-SM-N-07 | close() | Equivalence – normal | Current closed, open_page fails | close |
"""

import asyncio

import pytest

pytestmark = pytest.mark.unit

from phishscan.crawler.browser_provider import LaunchOptions
from phishscan.crawler.errors import SessionRelaunchFailed
from phishscan.crawler.session import BrowserSession, SessionManager


def make_manager(automation, cooldown: float = 0.0) -> SessionManager:
    return SessionManager(automation, LaunchOptions(), relaunch_cooldown=cooldown)


class TestStartAndOpen:
    """Tests for start(), open_page() and acquire()."""

    @pytest.mark.asyncio
    async def test_start_idempotent(self, fake_automation):
        """start() launches once (TC-SM-N-01)."""
        # Given: A fresh manager
        sessions = make_manager(fake_automation)

        # When: Starting twice
        first = await sessions.start()
        second = await sessions.start()

        # Then: Same session, one launch
        assert first is second
        assert fake_automation.launch_count == 1
        assert sessions.generation == 1
        assert sessions.is_ready

    @pytest.mark.asyncio
    async def test_open_before_start(self, fake_automation):
        """open_page() requires start() (TC-SM-A-01)."""
        sessions = make_manager(fake_automation)

        with pytest.raises(RuntimeError, match="not started"):
            await sessions.open_page()

    @pytest.mark.asyncio
    async def test_acquire_releases(self, fake_automation):
        """acquire() closes the page context on exit (TC-SM-N-02)."""
        # Given: A started manager
        sessions = make_manager(fake_automation)
        await sessions.start()

        # When: Using a page inside acquire()
        async with sessions.acquire() as (session, page):
            assert session.in_flight == 1
            assert page.closed is False

        # Then: Released
        assert page.closed is True
        assert session.in_flight == 0
        assert fake_automation.open_pages == 0


class TestRelaunch:
    """Tests for SessionManager.relaunch()."""

    @pytest.mark.asyncio
    async def test_relaunch_replaces_session(self, fake_automation):
        """relaunch() installs a new generation and closes the old one (TC-SM-N-03)."""
        # Given: A started manager at generation 1
        sessions = make_manager(fake_automation)
        old = await sessions.start()

        # When: Relaunching generation 1
        new = await sessions.relaunch(1)

        # Then: Generation 2, old retired and closed
        assert new is not old
        assert new.generation == 2
        assert old.is_retired and old.is_closed
        assert fake_automation.closed_sessions == ["browser-1"]
        assert sessions.relaunch_count == 1

    @pytest.mark.asyncio
    async def test_teardown_waits_for_in_flight(self, fake_automation):
        """The old process is closed only after its pages drain (TC-SM-N-04)."""
        # Given: A page open on generation 1
        sessions = make_manager(fake_automation)
        await sessions.start()
        old, page = await sessions.open_page()

        # When: Relaunching while the page is in flight
        await sessions.relaunch(1)

        # Then: Old session retired but still open
        assert old.is_retired
        assert not old.is_closed
        assert fake_automation.closed_sessions == []

        # When: The page is released
        await old.release_page(page)

        # Then: The old process is closed
        assert old.is_closed
        assert fake_automation.closed_sessions == ["browser-1"]

    @pytest.mark.asyncio
    async def test_concurrent_relaunch_collapses(self, fake_automation):
        """Concurrent relaunches of one generation launch once (TC-SM-N-05)."""
        # Given: A started manager with a short cooldown
        sessions = make_manager(fake_automation, cooldown=0.01)
        await sessions.start()

        # When: Three tasks observe the same dead generation
        results = await asyncio.gather(*(sessions.relaunch(1) for _ in range(3)))

        # Then: One extra launch, everyone gets generation 2
        assert fake_automation.launch_count == 2
        assert {s.generation for s in results} == {2}
        assert sessions.relaunch_count == 1

    @pytest.mark.asyncio
    async def test_stale_relaunch_is_noop(self, fake_automation):
        """A relaunch for an already-replaced generation returns at once (TC-SM-B-01)."""
        # Given: Generation 1 already replaced, long cooldown configured
        sessions = make_manager(fake_automation, cooldown=0.0)
        await sessions.start()
        await sessions.relaunch(1)
        sessions._cooldown = 10.0

        # When: A late task asks to relaunch generation 1
        current = await asyncio.wait_for(sessions.relaunch(1), timeout=1.0)

        # Then: Nothing launched, no cooldown paid
        assert current.generation == 2
        assert fake_automation.launch_count == 2

    @pytest.mark.asyncio
    async def test_open_page_waits_for_relaunch(self, fake_automation):
        """open_page() during a relaunch gets a page on the new generation (TC-SM-N-06)."""
        # Given: A relaunch in progress
        sessions = make_manager(fake_automation, cooldown=0.05)
        await sessions.start()
        relaunch = asyncio.create_task(sessions.relaunch(1))
        await asyncio.sleep(0)
        assert not sessions.is_ready

        # When: Another task opens a page
        session, page = await sessions.open_page()

        # Then: It waited for generation 2
        assert session.generation == 2
        assert page.session == "browser-2"
        await relaunch
        await session.release_page(page)

    @pytest.mark.asyncio
    async def test_relaunch_failure_is_fatal(self, fake_automation):
        """A failed relaunch raises and poisons later page opens (TC-SM-A-02)."""
        # Given: Launch will fail from now on
        sessions = make_manager(fake_automation)
        await sessions.start()
        fake_automation.launch_error = RuntimeError("Executable doesn't exist")

        # When/Then: relaunch raises SessionRelaunchFailed
        with pytest.raises(SessionRelaunchFailed, match="Executable doesn't exist"):
            await sessions.relaunch(1)

        # Then: Waiters wake and observe the failure
        assert not sessions.is_ready
        with pytest.raises(SessionRelaunchFailed):
            await sessions.open_page()
        with pytest.raises(SessionRelaunchFailed):
            await sessions.relaunch(1)

    @pytest.mark.asyncio
    async def test_retired_session_refuses_pages(self, fake_automation):
        """A retired BrowserSession hands out no page contexts (TC-SM-A-03)."""
        session = BrowserSession(fake_automation, "browser-x", generation=7)
        session.retire()

        with pytest.raises(RuntimeError, match="retired"):
            await session.open_page()
        assert session.in_flight == 0


class TestClose:
    """Tests for SessionManager.close()."""

    @pytest.mark.asyncio
    async def test_close(self, fake_automation):
        """close() closes the current process (TC-SM-N-07)."""
        # Given: A started manager
        sessions = make_manager(fake_automation)
        await sessions.start()

        # When: Closing
        await sessions.close()

        # Then: Process closed, further opens rejected
        assert fake_automation.closed_sessions == ["browser-1"]
        with pytest.raises(RuntimeError, match="closed"):
            await sessions.open_page()
