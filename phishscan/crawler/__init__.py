"""
phishscan Crawler Module.

Provides attempt planning, failure classification, the shared browser
session lifecycle and single-attempt page execution.
"""

from phishscan.crawler.attempt_planner import (
    AttemptPlanner,
    AttemptSpec,
    strip_www,
)

from phishscan.crawler.browser_provider import (
    BrowserAutomation,
    LaunchOptions,
    PageHandle,
    ProxyEndpoint,
    RequestPredicate,
    WaitCondition,
)

from phishscan.crawler.errors import (
    ExtractionFailed,
    FailureClass,
    NavigationFailed,
    NavigationTimeout,
    OrdinaryFailure,
    ProxyEligibleTransient,
    ProxyExhausted,
    ScanError,
    SessionFatal,
    SessionRelaunchFailed,
)

from phishscan.crawler.failure_classifier import (
    DEFAULT_RULES,
    FailureClassifier,
    is_name_not_resolved,
)

from phishscan.crawler.page_runner import PageRunner

from phishscan.crawler.playwright_provider import (
    BrowserDisconnected,
    PlaywrightPage,
    PlaywrightProvider,
)

from phishscan.crawler.session import (
    BrowserSession,
    SessionManager,
)

from phishscan.crawler.user_agent import random_user_agent

__all__ = [
    # attempt_planner
    "AttemptPlanner",
    "AttemptSpec",
    "strip_www",
    # browser_provider
    "BrowserAutomation",
    "LaunchOptions",
    "PageHandle",
    "ProxyEndpoint",
    "RequestPredicate",
    "WaitCondition",
    # errors
    "ExtractionFailed",
    "FailureClass",
    "NavigationFailed",
    "NavigationTimeout",
    "OrdinaryFailure",
    "ProxyEligibleTransient",
    "ProxyExhausted",
    "ScanError",
    "SessionFatal",
    "SessionRelaunchFailed",
    # failure_classifier
    "DEFAULT_RULES",
    "FailureClassifier",
    "is_name_not_resolved",
    # page_runner
    "PageRunner",
    # playwright_provider
    "BrowserDisconnected",
    "PlaywrightPage",
    "PlaywrightProvider",
    # session
    "BrowserSession",
    "SessionManager",
    # user_agent
    "random_user_agent",
]
