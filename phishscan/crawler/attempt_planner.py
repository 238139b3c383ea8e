"""
Attempt planning for a single URL.

A URL is tried as up to four direct attempts (URL variant x TLS bypass) and,
when escalation is needed, one proxy-routed attempt per original variant.
Plans are pure functions of the URL and the proxy configuration: no
randomness, so the same URL always yields the same ordered plan.
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import quote, urlsplit

from phishscan.utils.config import ProxyConfig


@dataclass(frozen=True)
class AttemptSpec:
    """
    One concrete navigation try.

    Attributes:
        target_url: URL handed to the browser (gateway-rewritten for gateway proxy attempts).
        tls_bypass: Ignore certificate errors for this attempt's page context.
        route_via_proxy: Attempt egresses through the proxy transport.
        source_url: URL variant this attempt stands for, when target_url is rewritten.
    """

    target_url: str
    tls_bypass: bool = False
    route_via_proxy: bool = False
    source_url: str | None = None

    @property
    def final_url(self) -> str:
        """URL reported as finalUrlTried when this attempt succeeds."""
        return self.source_url or self.target_url

    @property
    def label(self) -> str:
        """Prefix used for this attempt's line in a failure message."""
        if self.route_via_proxy:
            return "Proxy (fallback)"
        return "SSL Bypass" if self.tls_bypass else "Try"


def strip_www(url: str) -> str:
    """Remove leading ``www.`` labels from the host right after the scheme.

    Only the host is touched, never the path or query. Repeated prefixes
    (``www.www.``) are all removed, so stripping is idempotent, and URLs
    without the prefix come back unchanged.
    """
    host = urlsplit(url).netloc
    if not host.startswith("www."):
        return url

    stripped = host
    while stripped.startswith("www.") and len(stripped) > 4:
        stripped = stripped[4:]
    start = url.index("//") + 2
    return url[:start] + stripped + url[start + len(host):]


class AttemptPlanner:
    """Derives the direct and proxy attempt lists for a URL.

    Args:
        proxy: Proxy transport configuration. Mode "none" yields no proxy attempts.
    """

    def __init__(self, proxy: ProxyConfig | None = None) -> None:
        self._proxy = proxy or ProxyConfig()

    @property
    def proxy_enabled(self) -> bool:
        return self._proxy.mode != "none"

    def versions(self, url: str) -> list[str]:
        """Original and www-stripped variants, duplicates kept."""
        return [url, strip_www(url)]

    def plan_direct(self, url: str) -> list[AttemptSpec]:
        """Four direct attempts: both variants without bypass, then both with."""
        return [
            AttemptSpec(target_url=variant, tls_bypass=bypass)
            for bypass in (False, True)
            for variant in self.versions(url)
        ]

    def plan_proxy(self, url: str) -> list[AttemptSpec]:
        """Proxy attempts, one per entry of the original versions list.

        The versions list has four entries (two variants x two bypass modes);
        proxy attempts never bypass TLS, so variants repeat.
        """
        if not self.proxy_enabled:
            return []

        return [
            self._wrap_for_proxy(attempt.target_url)
            for attempt in self.plan_direct(url)
        ]

    def _wrap_for_proxy(self, url: str) -> AttemptSpec:
        if self._proxy.mode == "gateway":
            gateway = self._proxy.gateway_url
            target = f"{gateway}?api_key={quote(self._proxy.api_key or '', safe='')}&url={quote(url, safe='')}"
            return AttemptSpec(
                target_url=target,
                tls_bypass=False,
                route_via_proxy=True,
                source_url=url,
            )

        # server mode: the URL is unchanged, egress is set on the proxy session
        return AttemptSpec(target_url=url, tls_bypass=False, route_via_proxy=True)
