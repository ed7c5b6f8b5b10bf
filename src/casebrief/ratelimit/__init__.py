"""Admission control: identity resolution, counter stores and the gate."""

from .gate import PROCEDURE_CLASSES, AdmissionGate, classify_operation, rate_limit_headers
from .identity import client_address, resolve_identity
from .redis_store import RedisCounterStore
from .store import InMemoryCounterStore

__all__ = [
    "PROCEDURE_CLASSES",
    "AdmissionGate",
    "InMemoryCounterStore",
    "RedisCounterStore",
    "classify_operation",
    "client_address",
    "rate_limit_headers",
    "resolve_identity",
]
