"""Protocol definitions for casebrief's pluggable collaborators."""

from .counter_store import CounterStore
from .generation import AsyncGenerationBackend, GenerationBackend
from .tokenizer import Tokenizer

__all__ = [
    "AsyncGenerationBackend",
    "CounterStore",
    "GenerationBackend",
    "Tokenizer",
]
