"""Shared callback-firing utility used by the orchestrator and service layers."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any

ProgressCallback = Callable[[str, int, str], None]


def fire_callbacks(
    callbacks: Sequence[Any],
    method: str,
    *args: Any,
    logger: logging.Logger | None = None,
    log_level: int = logging.WARNING,
    **kwargs: Any,
) -> None:
    """Fire a method on all callbacks, swallowing exceptions.

    Parameters:
        callbacks: Sequence of callback objects to notify.
        method: Name of the method to call on each callback.
        *args: Positional arguments forwarded to the callback method.
        logger: Optional logger for recording failures.
        log_level: Log level for failure messages (default ``WARNING``).
        **kwargs: Keyword arguments forwarded to the callback method.
    """
    for cb in callbacks:
        fn = getattr(cb, method, None)
        if fn is None or not callable(fn):
            continue
        try:
            fn(*args, **kwargs)
        except Exception:
            if logger:
                logger.log(log_level, "Callback %r.%s failed", cb, method, exc_info=True)


def report_progress(
    on_progress: ProgressCallback | None,
    stage_name: str,
    percent: int,
    message: str,
    *,
    logger: logging.Logger | None = None,
) -> None:
    """Invoke a plain progress function, logging instead of raising on failure."""
    if on_progress is None:
        return
    try:
        on_progress(stage_name, percent, message)
    except Exception:
        if logger:
            logger.warning("Progress callback failed at %s (%d%%)", stage_name, percent, exc_info=True)
