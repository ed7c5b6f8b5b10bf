"""Tokenizer protocol for token estimation abstraction."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class Tokenizer(Protocol):
    """Protocol for token estimation.

    The default implementation is a 4-characters-per-token heuristic, but
    users can provide any tokenizer (e.g., tiktoken, HuggingFace tokenizers)
    as long as truncation keeps the marker contract described below.
    """

    def count_tokens(self, text: str) -> int:
        """Estimate the number of tokens in a text string.

        Parameters:
            text: The input text to measure.

        Returns:
            The estimated token count.
        """
        ...

    def truncate_to_tokens(self, text: str, max_tokens: int) -> str:
        """Truncate text so that it fits within ``max_tokens`` tokens.

        If the original text is already within the limit, the very same
        string is returned.  Otherwise a prefix of the text is kept and a
        fixed truncation marker is appended so that callers can detect
        the cut deterministically.

        Parameters:
            text: The input text to truncate.
            max_tokens: The maximum number of tokens allowed in the
                returned string.

        Returns:
            A string whose token count is less than or equal to
            ``max_tokens``.
        """
        ...
