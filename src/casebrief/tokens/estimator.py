"""Token estimation implementations."""

from __future__ import annotations

import functools
import math
from typing import Any

CHARS_PER_TOKEN = 4
"""Characters assumed per token by the heuristic estimator."""

TRUNCATION_SLACK_CHARS = 100
"""Characters given up below the character ceiling before the marker is appended."""

TRUNCATION_MARKER = "\n\n... [Content truncated due to length] ..."
"""Appended to every truncated text so downstream consumers can detect the cut."""


def estimate_tokens(text: str) -> int:
    """Estimate the token count of ``text`` as ``ceil(len(text) / 4)``."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


MIN_TRUNCATION_TOKENS = estimate_tokens(TRUNCATION_MARKER)
"""Smallest cap that can still hold the truncation marker on its own."""


def is_truncated(text: str) -> bool:
    """Return True if ``text`` carries the truncation marker."""
    return text.endswith(TRUNCATION_MARKER)


def truncate_to_tokens(text: str, max_tokens: int) -> str:
    """Truncate ``text`` to fit within ``max_tokens`` estimated tokens.

    Text already within the limit is returned unchanged (the same object).
    Otherwise the first ``max_tokens * 4 - 100`` characters are kept and
    :data:`TRUNCATION_MARKER` is appended.

    Raises:
        ValueError: If truncation is needed but ``max_tokens`` is too small
            to hold the marker itself.
    """
    if estimate_tokens(text) <= max_tokens:
        return text
    if max_tokens < MIN_TRUNCATION_TOKENS:
        msg = (
            f"max_tokens ({max_tokens}) is below the truncation marker size "
            f"({MIN_TRUNCATION_TOKENS} tokens)"
        )
        raise ValueError(msg)
    max_chars = max_tokens * CHARS_PER_TOKEN
    keep = max(0, max_chars - TRUNCATION_SLACK_CHARS)
    return text[:keep] + TRUNCATION_MARKER


class CharRatioEstimator:
    """Heuristic estimator assuming four characters per token.

    Fast and dependency-free; budget math built on it is advisory, which is
    why the context assembler applies a second whole-body truncation pass.

    Implements the Tokenizer protocol via structural subtyping.
    """

    __slots__ = ()

    def count_tokens(self, text: str) -> int:
        """Estimate the number of tokens in a text string."""
        return estimate_tokens(text)

    def truncate_to_tokens(self, text: str, max_tokens: int) -> str:
        """Truncate text to fit within a token limit, appending the marker."""
        return truncate_to_tokens(text, max_tokens)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(chars_per_token={CHARS_PER_TOKEN})"


class TiktokenEstimator:
    """Token estimator backed by OpenAI's tiktoken library.

    Default encoding is cl100k_base, close enough to Claude tokenization for
    budget purposes.  Truncation keeps the same marker contract as
    :class:`CharRatioEstimator` so it can be swapped in without changing the
    assembler.

    The tiktoken import is deferred to ``__init__`` so that importing this
    module does not trigger BPE data loading.  An ``encoding`` object with
    ``encode``/``decode`` methods may be passed directly instead.
    """

    __slots__ = ("_cache", "_encoding", "_marker_tokens", "_max_cache_size")

    def __init__(
        self,
        encoding_name: str = "cl100k_base",
        max_cache_size: int = 10_000,
        encoding: Any = None,
    ) -> None:
        if encoding is None:
            try:
                import tiktoken
            except ImportError:
                msg = (
                    "tiktoken is required for TiktokenEstimator. "
                    "Install it with: pip install casebrief[tiktoken]"
                )
                raise ImportError(msg) from None
            encoding = tiktoken.get_encoding(encoding_name)

        self._encoding = encoding
        self._max_cache_size = max_cache_size
        self._cache: dict[str, int] = {}
        self._marker_tokens = len(self._encoding.encode(TRUNCATION_MARKER))

    def count_tokens(self, text: str) -> int:
        """Count the number of tokens in a text string."""
        if text in self._cache:
            return self._cache[text]
        count = len(self._encoding.encode(text))
        # Only cache strings under 10k chars to avoid memory bloat
        if len(text) < 10_000:
            if len(self._cache) >= self._max_cache_size:
                self._cache.clear()
            self._cache[text] = count
        return count

    def truncate_to_tokens(self, text: str, max_tokens: int) -> str:
        """Truncate text to fit within a token limit, appending the marker."""
        tokens = self._encoding.encode(text)
        if len(tokens) <= max_tokens:
            return text
        if max_tokens < self._marker_tokens:
            msg = (
                f"max_tokens ({max_tokens}) is below the truncation marker size "
                f"({self._marker_tokens} tokens)"
            )
            raise ValueError(msg)
        kept = self._encoding.decode(tokens[: max_tokens - self._marker_tokens])
        return kept + TRUNCATION_MARKER

    def __repr__(self) -> str:
        name = getattr(self._encoding, "name", type(self._encoding).__name__)
        return f"{type(self).__name__}(encoding={name!r})"


@functools.cache
def get_default_estimator() -> CharRatioEstimator:
    """Get or create the default CharRatioEstimator singleton.

    Call ``get_default_estimator.cache_clear()`` to reset the singleton
    (useful in tests).
    """
    return CharRatioEstimator()
