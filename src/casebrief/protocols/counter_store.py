"""Protocol definition for shared rate-limit counter stores."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from casebrief.models.rate_limit import RateLimitWindow


@runtime_checkable
class CounterStore(Protocol):
    """Shared store holding sliding-window counters.

    Implementations must make ``hit`` atomic: the read of the current
    window and the increment happen as one operation, even when many
    identities and operation classes are checked concurrently.  Any
    failure to reach the store is raised as ``CounterStoreError``.
    """

    def hit(self, key: str, limit: int, window_seconds: float) -> RateLimitWindow:
        """Record one request against ``key`` if it fits in the window.

        Parameters:
            key: Fully qualified counter key (prefix + identity).
            limit: Maximum requests allowed in the trailing window.
            window_seconds: Length of the trailing window.

        Returns:
            The window state after the check.  ``admitted`` is False when
            the limit was already reached; a rejected request is not counted.
        """
        ...

    def peek(self, key: str, limit: int, window_seconds: float) -> RateLimitWindow:
        """Return the current window state without recording a request."""
        ...

    def reset(self, pattern: str) -> int:
        """Delete every counter whose key matches a glob ``pattern``.

        Returns:
            The number of counters removed.
        """
        ...
