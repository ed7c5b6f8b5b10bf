"""AdmissionGate -- sliding-window quotas per identity and operation class."""

from __future__ import annotations

import glob
import inspect
import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from casebrief.exceptions import QuotaExceededError
from casebrief.models.rate_limit import (
    AdmissionOutcome,
    AdmissionResult,
    Identity,
    OperationClass,
    RateLimitHeaders,
    RateLimitPolicy,
    RateLimitWindow,
    default_rate_limit_policy,
)
from casebrief.protocols.counter_store import CounterStore

logger = logging.getLogger(__name__)

DEGRADED_RETRY_SECONDS = 60

PROCEDURE_CLASSES: dict[str, OperationClass] = {
    "letters.generate": OperationClass.GENERATION,
    "analysis.analyze": OperationClass.ANALYSIS,
    "documents.upload": OperationClass.UPLOAD,
    "knowledge.upload": OperationClass.UPLOAD,
}


def classify_operation(procedure: str, identity: Identity | None = None) -> OperationClass:
    """Map a procedure name to the operation class whose quota it consumes.

    Procedures without a dedicated quota count as general traffic for
    authenticated callers and as unauthenticated traffic otherwise.
    """
    op = PROCEDURE_CLASSES.get(procedure)
    if op is not None:
        return op
    if identity is not None and not identity.is_authenticated:
        return OperationClass.UNAUTHENTICATED
    return OperationClass.GENERAL


def rate_limit_headers(result: AdmissionResult) -> RateLimitHeaders:
    """Response headers describing the quota state of an admission check."""
    return result.headers()


class AdmissionGate:
    """Decides whether a request may proceed before any generation cost.

    Usage::

        gate = AdmissionGate(InMemoryCounterStore())
        result = gate.check(resolve_identity(user_id), OperationClass.GENERATION)
        if not result.allowed:
            return 429, result.headers()

    The counter store is injected.  When it cannot be reached the gate
    fails open: the request is allowed with a ``DEGRADED`` outcome, zero
    limit and remaining, and a logged warning.
    """

    __slots__ = ("_clock", "_policy", "_store")

    def __init__(
        self,
        store: CounterStore,
        policy: RateLimitPolicy | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._policy = policy or default_rate_limit_policy()
        self._clock = clock

    @property
    def policy(self) -> RateLimitPolicy:
        return self._policy

    @property
    def store(self) -> CounterStore:
        return self._store

    def __repr__(self) -> str:
        return f"{type(self).__name__}(store={self._store!r})"

    def key_for(self, identity: Identity, operation_class: OperationClass) -> str:
        return f"{self._policy.rule_for(operation_class).prefix}:{identity.key}"

    # -- Result builders --

    def _degraded(self, identity: Identity, operation_class: OperationClass, exc: BaseException) -> AdmissionResult:
        logger.warning(
            "Rate limit store unavailable for %s (%s); allowing request: %s",
            identity, operation_class.value, exc,
        )
        reset = datetime.fromtimestamp(self._clock(), UTC) + timedelta(seconds=DEGRADED_RETRY_SECONDS)
        return AdmissionResult(
            outcome=AdmissionOutcome.DEGRADED,
            operation_class=operation_class,
            identity=identity.key,
            limit=0,
            remaining=0,
            reset_time=reset,
        )

    @staticmethod
    def _from_window(
        identity: Identity, operation_class: OperationClass, window: RateLimitWindow,
    ) -> AdmissionResult:
        if window.admitted:
            outcome = AdmissionOutcome.ALLOWED
        else:
            outcome = AdmissionOutcome.REJECTED
            logger.warning(
                "Rate limit exceeded for %s (%s): %d/%d, resets at %s",
                identity, operation_class.value, window.count, window.limit,
                window.reset_time.isoformat(),
            )
        return AdmissionResult(
            outcome=outcome,
            operation_class=operation_class,
            identity=identity.key,
            limit=window.limit,
            remaining=window.remaining,
            reset_time=window.reset_time,
        )

    # -- Checks --

    def check(self, identity: Identity, operation_class: OperationClass) -> AdmissionResult:
        """Count one request against the identity's quota for ``operation_class``."""
        rule = self._policy.rule_for(operation_class)
        key = self.key_for(identity, operation_class)
        try:
            window = self._store.hit(key, rule.limit, rule.window_seconds)
        except Exception as exc:
            return self._degraded(identity, operation_class, exc)
        if inspect.isawaitable(window):
            if inspect.iscoroutine(window):
                window.close()
            msg = "Counter store is async; use acheck() instead"
            raise TypeError(msg)
        return self._from_window(identity, operation_class, window)

    async def acheck(self, identity: Identity, operation_class: OperationClass) -> AdmissionResult:
        """Async variant of ``check``; accepts sync or async counter stores."""
        rule = self._policy.rule_for(operation_class)
        key = self.key_for(identity, operation_class)
        try:
            window: Any = self._store.hit(key, rule.limit, rule.window_seconds)
            if inspect.isawaitable(window):
                window = await window
        except Exception as exc:
            return self._degraded(identity, operation_class, exc)
        return self._from_window(identity, operation_class, window)

    def admit(self, identity: Identity, operation_class: OperationClass) -> AdmissionResult:
        """Like ``check`` but raises ``QuotaExceededError`` on rejection."""
        result = self.check(identity, operation_class)
        if not result.allowed:
            raise QuotaExceededError(result)
        return result

    async def aadmit(self, identity: Identity, operation_class: OperationClass) -> AdmissionResult:
        result = await self.acheck(identity, operation_class)
        if not result.allowed:
            raise QuotaExceededError(result)
        return result

    def check_procedure(self, identity: Identity, procedure: str) -> AdmissionResult:
        """Classify ``procedure`` and check it."""
        return self.check(identity, classify_operation(procedure, identity))

    # -- Administration --

    def usage(self, identity: Identity) -> dict[OperationClass, RateLimitWindow | None]:
        """Current window per operation class, without counting a request.

        Classes whose window could not be read map to ``None``.
        """
        snapshot: dict[OperationClass, RateLimitWindow | None] = {}
        for op in OperationClass:
            rule = self._policy.rule_for(op)
            try:
                snapshot[op] = self._store.peek(self.key_for(identity, op), rule.limit, rule.window_seconds)
            except Exception:
                logger.warning("Could not read %s usage for %s", op.value, identity, exc_info=True)
                snapshot[op] = None
        return snapshot

    def reset_identity(self, identity: Identity) -> int:
        """Clear every window held by ``identity``. Returns the number removed.

        A store failure is logged and ends the reset; windows cleared before
        the failure are still counted.
        """
        removed = 0
        escaped = glob.escape(identity.key)
        for rule in self._policy.rules.values():
            try:
                removed += self._store.reset(f"{rule.prefix}:{escaped}")
            except Exception:
                logger.warning("Could not reset rate limits for %s", identity, exc_info=True)
                return removed
        logger.info("Reset %d rate limit window(s) for %s", removed, identity)
        return removed
