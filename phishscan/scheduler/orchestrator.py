"""
Per-URL scan orchestration.

ScanOrchestrator drives one ScanTask through its attempt plan:

    Planning -> TryingDirect(i) -> [TryingProxy(i)] -> Succeeded | Failed

Direct attempts run strictly in plan order and the first success wins. Each
failure is classified: a fatal-session failure relaunches the shared browser
before the next attempt, a proxy-eligible failure marks the task for proxy
escalation once the direct attempts are exhausted. Per-task errors never
escape scan(); only SessionRelaunchFailed does, since it is fatal to the
whole batch.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from dataclasses import dataclass, field

from phishscan.crawler.attempt_planner import AttemptPlanner, AttemptSpec
from phishscan.crawler.errors import (
    FailureClass,
    ProxyExhausted,
    ScanError,
    SessionRelaunchFailed,
)
from phishscan.crawler.failure_classifier import is_name_not_resolved
from phishscan.crawler.page_runner import PageRunner
from phishscan.crawler.session import SessionManager
from phishscan.crawler.user_agent import random_user_agent
from phishscan.scheduler.models import ScanFailure, ScanOutcome, ScanSuccess, ScanTask
from phishscan.utils.config import Settings
from phishscan.utils.logging import LogContext, get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ScanPolicy:
    """
    Escalation policy applied to attempt failures.

    Attributes:
        relaunch_on: Failure classes that relaunch the session before the next attempt.
        escalate_on: Failure classes that mark the task for proxy escalation.
        escalate_to_proxy: Run proxy attempts at all when a task is marked.
        skip_bypass_on_unresolved: Skip TLS-bypass attempts when every
            non-bypass attempt failed because the host did not resolve.
    """

    relaunch_on: frozenset[FailureClass] = field(
        default_factory=lambda: frozenset({FailureClass.FATAL_SESSION})
    )
    escalate_on: frozenset[FailureClass] = field(
        default_factory=lambda: frozenset({FailureClass.PROXY_ELIGIBLE})
    )
    escalate_to_proxy: bool = True
    skip_bypass_on_unresolved: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> ScanPolicy:
        return cls(skip_bypass_on_unresolved=settings.scan.skip_bypass_on_unresolved)


@dataclass
class _TaskState:
    user_agent: str
    messages: list[str] = field(default_factory=list)
    proxy_needed: bool = False
    unresolved: list[bool] = field(default_factory=list)


class ScanOrchestrator:
    """Runs the attempt plan of one task at a time; safe to share across tasks.

    Args:
        planner: Builds direct and proxy attempt lists.
        runner: Executes a single attempt.
        direct_sessions: Session manager for direct traffic.
        proxy_sessions: Session manager dedicated to proxy egress ("server"
            proxy mode). None routes proxy attempts through direct_sessions.
        proxy_semaphore: Bounds proxy-routed attempts across all tasks.
        policy: Escalation policy.
        user_agent_factory: Picks the user agent for a task.
    """

    def __init__(
        self,
        planner: AttemptPlanner,
        runner: PageRunner,
        direct_sessions: SessionManager,
        *,
        proxy_sessions: SessionManager | None = None,
        proxy_semaphore: asyncio.Semaphore | None = None,
        policy: ScanPolicy | None = None,
        user_agent_factory: Callable[[], str] = random_user_agent,
    ) -> None:
        self._planner = planner
        self._runner = runner
        self._direct = direct_sessions
        self._proxy = proxy_sessions
        self._proxy_semaphore = proxy_semaphore
        self._policy = policy or ScanPolicy()
        self._user_agent_factory = user_agent_factory

    @property
    def policy(self) -> ScanPolicy:
        return self._policy

    async def scan(self, task: ScanTask) -> ScanOutcome:
        """Scan one URL.

        Returns:
            ScanSuccess for the first attempt that worked, else ScanFailure
            with one message per attempt tried.

        Raises:
            SessionRelaunchFailed: If the shared browser cannot be restarted.
        """
        with LogContext(url=task.url[:120]):
            state = _TaskState(user_agent=self._user_agent_factory())

            outcome = await self._try_direct(task, state)
            if outcome is not None:
                return outcome

            if state.proxy_needed and self._should_escalate():
                outcome = await self._try_proxy(task, state)
                if outcome is not None:
                    return outcome

            logger.warning("Scan failed", attempts=len(state.messages))
            return ScanFailure(messages=state.messages)

    def _should_escalate(self) -> bool:
        return self._policy.escalate_to_proxy and self._planner.proxy_enabled

    async def _try_direct(self, task: ScanTask, state: _TaskState) -> ScanSuccess | None:
        for attempt in self._planner.plan_direct(task.url):
            if attempt.tls_bypass and self._skip_bypass(state):
                logger.info("Host did not resolve, skipping TLS bypass attempts")
                break

            features = await self._attempt(self._direct, attempt, state)
            if features is not None:
                logger.info(
                    "Scan succeeded",
                    attempts=len(state.messages) + 1,
                    tls_bypass=attempt.tls_bypass,
                )
                return ScanSuccess(
                    features=features,
                    final_url=attempt.final_url,
                    tls_bypass_used=attempt.tls_bypass,
                    used_proxy=False,
                    user_agent=state.user_agent,
                )
        return None

    async def _try_proxy(self, task: ScanTask, state: _TaskState) -> ScanSuccess | None:
        sessions = self._proxy or self._direct
        attempts = self._planner.plan_proxy(task.url)
        logger.info("Escalating to proxy", proxy_attempts=len(attempts))

        for attempt in attempts:
            async with self._proxy_slot():
                features, error = await self._run(sessions, attempt, state)
            if error is not None:
                # The proxy slot is released before any relaunch cooldown
                await self._recover(sessions, error)
            if features is not None:
                logger.info("Scan succeeded via proxy", attempts=len(state.messages) + 1)
                return ScanSuccess(
                    features=features,
                    final_url=attempt.final_url,
                    tls_bypass_used=False,
                    used_proxy=True,
                    user_agent=state.user_agent,
                )

        exhausted = ProxyExhausted(
            f"All {len(attempts)} proxy attempts failed for {task.url}", url=task.url
        )
        logger.warning("Proxy escalation exhausted", **exhausted.to_dict())
        return None

    def _proxy_slot(self) -> contextlib.AbstractAsyncContextManager:
        if self._proxy_semaphore is None:
            return contextlib.nullcontext()
        return self._proxy_semaphore

    def _skip_bypass(self, state: _TaskState) -> bool:
        return (
            self._policy.skip_bypass_on_unresolved
            and bool(state.unresolved)
            and all(state.unresolved)
        )

    async def _attempt(
        self,
        sessions: SessionManager,
        attempt: AttemptSpec,
        state: _TaskState,
    ):
        """Run one attempt; return features, or None after recording the failure."""
        features, error = await self._run(sessions, attempt, state)
        if error is not None:
            await self._recover(sessions, error)
        return features

    async def _run(
        self,
        sessions: SessionManager,
        attempt: AttemptSpec,
        state: _TaskState,
    ) -> tuple[dict | None, ScanError | None]:
        try:
            return await self._runner.run(sessions, attempt, state.user_agent), None
        except SessionRelaunchFailed:
            raise
        except ScanError as e:
            error = e
        except Exception as e:
            logger.exception("Unexpected attempt failure", target=attempt.target_url[:80])
            error = ScanError(f"{e} at {attempt.target_url}", url=attempt.target_url)

        state.messages.append(f"{attempt.label}: {error.message}")
        if not attempt.tls_bypass and not attempt.route_via_proxy:
            state.unresolved.append(is_name_not_resolved(error.message))

        logger.debug(
            "Attempt failed",
            label=attempt.label,
            failure_class=error.failure_class.value,
            error=error.message[:200],
        )

        if error.failure_class in self._policy.escalate_on:
            state.proxy_needed = True
        return None, error

    async def _recover(self, sessions: SessionManager, error: ScanError) -> None:
        if error.failure_class in self._policy.relaunch_on:
            stale = error.generation if error.generation is not None else sessions.generation
            await sessions.relaunch(stale)
