"""
Failure classification for scan attempts.

Maps a raised error onto a FailureClass by matching its message against an
ordered table of known substrings. The table is plain data so the policy can
be tested and extended without touching orchestration code. Unrecognized
errors classify as ORDINARY; a missed transient error only costs retry
coverage, never correctness.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from phishscan.crawler.errors import (
    FailureClass,
    NavigationTimeout,
    OrdinaryFailure,
    ProxyEligibleTransient,
    ScanError,
    SessionFatal,
)

# First match wins, so fatal-session markers are checked before network errors.
DEFAULT_RULES: tuple[tuple[str, FailureClass], ...] = (
    # Browser process / control channel gone
    ("Connection closed", FailureClass.FATAL_SESSION),
    ("Target closed", FailureClass.FATAL_SESSION),
    ("Browser has been closed", FailureClass.FATAL_SESSION),
    ("browser has disconnected", FailureClass.FATAL_SESSION),
    # Network failures a proxy can route around
    ("net::ERR_BLOCKED_BY_CLIENT", FailureClass.PROXY_ELIGIBLE),
    ("net::ERR_CONNECTION_REFUSED", FailureClass.PROXY_ELIGIBLE),
    ("net::ERR_CONNECTION_TIMED_OUT", FailureClass.PROXY_ELIGIBLE),
    ("net::ERR_CONNECTION_RESET", FailureClass.PROXY_ELIGIBLE),
    ("net::ERR_CONNECTION_CLOSED", FailureClass.PROXY_ELIGIBLE),
    ("ERR_SSL_VERSION_OR_CIPHER_MISMATCH", FailureClass.PROXY_ELIGIBLE),
    ("net::ERR_SSL_PROTOCOL_ERROR", FailureClass.PROXY_ELIGIBLE),
    ("net::ERR_SSL_UNRECOGNIZED_NAME_ALERT", FailureClass.PROXY_ELIGIBLE),
    ("net::ERR_HTTP2_PROTOCOL_ERROR", FailureClass.PROXY_ELIGIBLE),
    ("net::ERR_NAME_NOT_RESOLVED", FailureClass.PROXY_ELIGIBLE),
    ("ERR_NETWORK_CHANGED", FailureClass.PROXY_ELIGIBLE),
)

NAME_NOT_RESOLVED = "ERR_NAME_NOT_RESOLVED"

_CLASS_TO_ERROR: dict[FailureClass, type[ScanError]] = {
    FailureClass.FATAL_SESSION: SessionFatal,
    FailureClass.PROXY_ELIGIBLE: ProxyEligibleTransient,
    FailureClass.ORDINARY: OrdinaryFailure,
}


class FailureClassifier:
    """Classifies attempt errors with a closed, ordered substring table.

    Example:
        classifier = FailureClassifier()
        classifier.classify(RuntimeError("net::ERR_CONNECTION_RESET at https://x"))
        # FailureClass.PROXY_ELIGIBLE
    """

    def __init__(self, rules: Sequence[tuple[str, FailureClass]] = DEFAULT_RULES) -> None:
        self._rules: tuple[tuple[str, FailureClass], ...] = tuple(rules)

    @classmethod
    def with_extra_rules(
        cls,
        *,
        fatal_session: Iterable[str] = (),
        proxy_eligible: Iterable[str] = (),
    ) -> FailureClassifier:
        """Build a classifier from the defaults plus configured substrings.

        Extra fatal markers go before the defaults' network rules so they keep
        their precedence over proxy-eligible matches.
        """
        fatal = [(s, FailureClass.FATAL_SESSION) for s in fatal_session]
        proxy = [(s, FailureClass.PROXY_ELIGIBLE) for s in proxy_eligible]
        return cls(tuple(fatal) + DEFAULT_RULES + tuple(proxy))

    @property
    def rules(self) -> tuple[tuple[str, FailureClass], ...]:
        return self._rules

    def classify_message(self, message: str) -> FailureClass:
        """Classify a raw error message."""
        for needle, failure_class in self._rules:
            if needle in message:
                return failure_class
        return FailureClass.ORDINARY

    def classify(self, error: BaseException) -> FailureClass:
        """Classify an error raised during an attempt.

        Already-tagged ScanErrors keep their class unless it is the generic
        ORDINARY default, in which case the message is re-checked against the
        table (a NavigationFailed wrapping ERR_CONNECTION_RESET is still
        proxy-eligible).
        """
        if isinstance(error, ScanError) and error.failure_class != FailureClass.ORDINARY:
            return error.failure_class
        return self.classify_message(str(error))

    def tag(self, error: BaseException, url: str | None = None) -> ScanError:
        """Wrap a raw automation-layer error into the typed taxonomy.

        Typed errors (NavigationTimeout, ExtractionFailed, ...) keep their type
        and get their failure_class filled from the table; anything else
        becomes the ScanError subclass matching its class.
        """
        failure_class = self.classify(error)
        if isinstance(error, ScanError):
            error.failure_class = failure_class
            if error.url is None:
                error.url = url
            return error

        error_type = _CLASS_TO_ERROR[failure_class]
        if isinstance(error, TimeoutError) and failure_class == FailureClass.ORDINARY:
            error_type = NavigationTimeout
        tagged = error_type(str(error), url=url, failure_class=failure_class)
        tagged.__cause__ = error
        return tagged


def is_name_not_resolved(message: str) -> bool:
    """Whether an attempt message reports an unresolvable host."""
    return NAME_NOT_RESOLVED in message
