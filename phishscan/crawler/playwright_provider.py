"""
Playwright-based browser automation backend for phishscan.

Implements the BrowserAutomation capability set on Chromium:
- One Browser per session, one BrowserContext per page context (isolation)
- A CDP session per page context as the control channel (user agent,
  script execution, certificate-error suppression)
- Route-based request filtering

Playwright reports a crashed browser and a merely closed page with the same
"Target page, context or browser has been closed" error. Calls that touch the
browser run under _disconnect_guard, which re-raises as BrowserDisconnected
("Connection closed: ...") only when the browser itself is gone, so the
failure classifier treats it as a dead session.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, CDPSession, Page, Playwright, Route

from phishscan.crawler.browser_provider import (
    LaunchOptions,
    RequestPredicate,
    WaitCondition,
)
from phishscan.utils.logging import get_logger

logger = get_logger(__name__)


class BrowserDisconnected(RuntimeError):
    """The browser process behind a session is gone."""


def _is_connected(browser: "Browser") -> bool:
    try:
        return browser.is_connected()
    except Exception:
        return False


@contextmanager
def _disconnect_guard(browser: "Browser | None") -> Iterator[None]:
    """Re-raise Playwright errors as BrowserDisconnected when the browser is gone."""
    try:
        yield
    except PlaywrightError as e:
        if browser is None or _is_connected(browser):
            raise
        raise BrowserDisconnected(f"Connection closed: browser disconnected ({e})") from e


@dataclass
class PlaywrightPage:
    """
    Page context handle: a dedicated BrowserContext with a single Page.

    Attributes:
        context: Isolated browser context owning the page.
        page: The page the scan navigates.
        cdp: Control channel attached to the page.
        browser: Browser the context was created on.
    """
    context: "BrowserContext"
    page: "Page"
    cdp: "CDPSession"
    browser: "Browser | None" = None

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        """Evaluate JavaScript in the page."""
        with _disconnect_guard(self.browser):
            return await self.page.evaluate(expression, arg)

    def is_closed(self) -> bool:
        return self.page.is_closed()


class PlaywrightProvider:
    """
    BrowserAutomation implementation using Playwright's Chromium.

    The Playwright driver is started lazily on first launch and stopped by
    shutdown(); browsers launched in between share it.
    """

    def __init__(self) -> None:
        """Initialize Playwright provider."""
        self._playwright: "Playwright | None" = None
        self._protocol_timeout_ms: dict[int, float] = {}

    @property
    def name(self) -> str:
        return "playwright"

    async def _ensure_playwright(self) -> "Playwright":
        """Ensure Playwright is initialized."""
        if self._playwright is None:
            from playwright.async_api import async_playwright

            self._playwright = await async_playwright().start()
            logger.info("Playwright initialized")
        return self._playwright

    async def launch(self, options: LaunchOptions) -> "Browser":
        playwright = await self._ensure_playwright()

        launch_kwargs: dict[str, Any] = {
            "headless": options.headless,
            "args": list(options.args),
        }
        if options.proxy is not None:
            launch_kwargs["proxy"] = options.proxy.to_dict()

        browser = await playwright.chromium.launch(**launch_kwargs)
        self._protocol_timeout_ms[id(browser)] = options.protocol_timeout * 1000
        logger.info("Browser launched", **options.to_dict())
        return browser

    async def close(self, session: "Browser") -> None:
        self._protocol_timeout_ms.pop(id(session), None)
        await session.close()
        logger.info("Browser closed")

    async def new_page_context(self, session: "Browser") -> PlaywrightPage:
        with _disconnect_guard(session):
            context = await session.new_context()
            try:
                timeout_ms = self._protocol_timeout_ms.get(id(session))
                if timeout_ms:
                    context.set_default_timeout(timeout_ms)
                page = await context.new_page()
                cdp = await context.new_cdp_session(page)
            except Exception:
                await context.close()
                raise
        return PlaywrightPage(context=context, page=page, cdp=cdp, browser=session)

    async def set_user_agent(self, page: PlaywrightPage, user_agent: str) -> None:
        if page.is_closed():
            raise RuntimeError("Page closed before user agent assignment")
        with _disconnect_guard(page.browser):
            await page.cdp.send("Network.setUserAgentOverride", {"userAgent": user_agent})

    async def set_viewport(self, page: PlaywrightPage, width: int, height: int) -> None:
        with _disconnect_guard(page.browser):
            await page.page.set_viewport_size({"width": width, "height": height})

    async def set_extra_headers(self, page: PlaywrightPage, headers: dict[str, str]) -> None:
        with _disconnect_guard(page.browser):
            await page.page.set_extra_http_headers(headers)

    async def set_javascript_enabled(self, page: PlaywrightPage, enabled: bool) -> None:
        with _disconnect_guard(page.browser):
            await page.cdp.send("Emulation.setScriptExecutionDisabled", {"value": not enabled})

    async def set_request_filter(
        self,
        page: PlaywrightPage,
        should_abort: RequestPredicate,
    ) -> None:
        async def handle_route(route: "Route") -> None:
            request = route.request
            try:
                if should_abort(request.resource_type, request.url):
                    await route.abort()
                else:
                    await route.continue_()
            except Exception as e:
                # Page torn down while the request was in flight
                logger.debug("Route handling failed", url=request.url[:80], error=str(e))

        with _disconnect_guard(page.browser):
            await page.page.route("**/*", handle_route)

    async def suppress_certificate_errors(self, page: PlaywrightPage) -> None:
        with _disconnect_guard(page.browser):
            await page.cdp.send("Security.setIgnoreCertificateErrors", {"ignore": True})

    async def navigate(
        self,
        page: PlaywrightPage,
        url: str,
        wait_until: WaitCondition,
        timeout: float,
    ) -> None:
        try:
            with _disconnect_guard(page.browser):
                await page.page.goto(
                    url,
                    wait_until=WaitCondition(wait_until).value,
                    timeout=int(timeout * 1000),
                )
        except PlaywrightTimeoutError as e:
            raise TimeoutError(str(e)) from e

    async def close_page_context(self, page: PlaywrightPage) -> None:
        try:
            await page.cdp.detach()
        except Exception as e:
            logger.debug("CDP detach failed", error=str(e))
        await page.context.close()

    async def shutdown(self) -> None:
        """Stop the Playwright driver."""
        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.debug("Playwright stop failed", error=str(e))
            self._playwright = None
            logger.info("Playwright provider closed")
