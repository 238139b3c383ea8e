"""
Error taxonomy for URL scanning.

Each navigation attempt either returns a feature map or raises one of the
ScanError subclasses below. The failure_class attribute decides what the
orchestrator does next:

- FATAL_SESSION: the shared browser is unusable, relaunch before the next attempt
- PROXY_ELIGIBLE: a proxy is known to remediate this, escalate after direct attempts
- ORDINARY: record the message, no escalation
"""

from enum import Enum
from typing import Any


class FailureClass(str, Enum):
    """Disjoint classification of an attempt failure."""

    FATAL_SESSION = "fatal_session"
    PROXY_ELIGIBLE = "proxy_eligible"
    ORDINARY = "ordinary"


class ScanError(Exception):
    """
    Base exception for a failed scan attempt.

    Carries the URL the attempt targeted and, once tagged, the failure class
    the orchestrator acts on.
    """

    default_class: FailureClass = FailureClass.ORDINARY

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        failure_class: FailureClass | None = None,
    ):
        """
        Initialize scan error.

        Args:
            message: Human-readable error message (already includes the URL).
            url: URL the failing attempt targeted.
            failure_class: Classification; defaults to the subclass default.
        """
        super().__init__(message)
        self.message = message
        self.url = url
        self.failure_class = failure_class or self.default_class
        # Session generation the attempt ran on, set by the page runner
        self.generation: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dict suitable for structured logging."""
        return {
            "error_type": type(self).__name__,
            "error": self.message,
            "url": self.url,
            "failure_class": self.failure_class.value,
        }


class NavigationTimeout(ScanError):
    """Both the primary and the fallback navigation timed out."""


class NavigationFailed(ScanError):
    """Navigation failed for a reason other than timeout (DNS, TLS, refused...)."""


class ExtractionFailed(ScanError):
    """The page loaded but the feature extractor raised."""


class SessionFatal(ScanError):
    """The browser process or its control channel is gone."""

    default_class = FailureClass.FATAL_SESSION


class ProxyEligibleTransient(ScanError):
    """A transient network failure that a proxy is known to remediate."""

    default_class = FailureClass.PROXY_ELIGIBLE


class OrdinaryFailure(ScanError):
    """Any failure that is neither fatal nor proxy-eligible."""


class ProxyExhausted(ScanError):
    """Every proxy-routed attempt for a URL failed."""


class SessionRelaunchFailed(Exception):
    """The shared browser could not be restarted.

    Unlike ScanError this is fatal to the whole batch: no further direct
    attempts are possible without a browser.
    """
