"""
Browser automation abstraction layer for phishscan.

The scan engine never talks to a browser library directly. It uses the
capability set below, so the orchestration logic can be exercised against a
fake in tests and the Playwright backend can be swapped without touching it.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from phishscan.utils.config import BrowserConfig, ProxyConfig


class WaitCondition(str, Enum):
    """Navigation completion condition."""
    DOM_READY = "domcontentloaded"
    LOAD = "load"
    NETWORK_IDLE = "networkidle"


# (resource_type, url) -> True to abort the request
RequestPredicate = Callable[[str, str], bool]


@dataclass(frozen=True)
class ProxyEndpoint:
    """
    Network egress the browser process is launched behind.

    Attributes:
        server: Proxy URL or host:port.
        username: Optional credential.
        password: Optional credential.
    """
    server: str
    username: str | None = None
    password: str | None = None

    @classmethod
    def from_config(cls, config: ProxyConfig) -> "ProxyEndpoint | None":
        """Endpoint for "server" proxy mode, None for every other mode."""
        if config.mode != "server" or not config.server:
            return None
        return cls(server=config.server, username=config.username, password=config.password)

    def to_dict(self) -> dict[str, str]:
        """Convert to Playwright's proxy option shape."""
        result = {"server": self.server}
        if self.username:
            result["username"] = self.username
        if self.password:
            result["password"] = self.password
        return result


@dataclass
class LaunchOptions:
    """
    Options for launching a browser process.

    Attributes:
        headless: Run without a visible window.
        args: Extra command-line switches.
        protocol_timeout: Default timeout for control-channel calls, in seconds.
        proxy: Egress endpoint, None for direct traffic.
    """
    headless: bool = True
    args: list[str] = field(default_factory=list)
    protocol_timeout: float = 180.0
    proxy: ProxyEndpoint | None = None

    @classmethod
    def from_config(
        cls,
        config: BrowserConfig,
        proxy: ProxyEndpoint | None = None,
    ) -> "LaunchOptions":
        return cls(
            headless=config.headless,
            args=list(config.launch_args),
            protocol_timeout=config.protocol_timeout,
            proxy=proxy,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging (credentials omitted)."""
        return {
            "headless": self.headless,
            "args": self.args,
            "protocol_timeout": self.protocol_timeout,
            "proxy": self.proxy.server if self.proxy else None,
        }


@runtime_checkable
class PageHandle(Protocol):
    """An isolated page context the feature extractor can run scripts in."""

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        """Evaluate a JavaScript expression or function in the page."""
        ...


@runtime_checkable
class BrowserAutomation(Protocol):
    """
    Capability set of a browser automation backend.

    Session handles and page handles are opaque to callers. Timeouts raise
    the builtin TimeoutError so callers need no backend-specific imports.
    """

    @property
    def name(self) -> str:
        """Unique name of the backend."""
        ...

    async def launch(self, options: LaunchOptions) -> Any:
        """Start a browser process and return its session handle."""
        ...

    async def close(self, session: Any) -> None:
        """Terminate a browser process."""
        ...

    async def new_page_context(self, session: Any) -> PageHandle:
        """Open an isolated page context (own cookies, cache, control channel)."""
        ...

    async def set_user_agent(self, page: PageHandle, user_agent: str) -> None:
        ...

    async def set_viewport(self, page: PageHandle, width: int, height: int) -> None:
        ...

    async def set_extra_headers(self, page: PageHandle, headers: dict[str, str]) -> None:
        ...

    async def set_javascript_enabled(self, page: PageHandle, enabled: bool) -> None:
        ...

    async def set_request_filter(self, page: PageHandle, should_abort: RequestPredicate) -> None:
        """Abort every request for which should_abort returns True."""
        ...

    async def suppress_certificate_errors(self, page: PageHandle) -> None:
        """Ignore TLS certificate validation errors for this page context only."""
        ...

    async def navigate(
        self,
        page: PageHandle,
        url: str,
        wait_until: WaitCondition,
        timeout: float,
    ) -> None:
        """Navigate and wait for the condition; raise TimeoutError after timeout seconds."""
        ...

    async def close_page_context(self, page: PageHandle) -> None:
        """Release the page context and its control channel."""
        ...

    async def shutdown(self) -> None:
        """Release backend-wide resources (driver process)."""
        ...
