"""Process bootstrap: builds the injected collaborators from the environment.

Environment variables:

- ``CASEBRIEF_TOTAL_TOKENS``: prompt budget (default 150000).
- ``CASEBRIEF_BACKEND_LIMIT``: backend context window (default 200000).
- ``ANTHROPIC_API_KEY``: key for the Anthropic backends.
- ``CASEBRIEF_REDIS_URL``: shared counter store; unset means an in-process store.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping

from casebrief.context.assembler import AssemblerSettings, ContextAssembler
from casebrief.generation.backend import AnthropicBackend, AsyncAnthropicBackend
from casebrief.models.budget import DEFAULT_BACKEND_LIMIT, TokenBudget
from casebrief.models.budget_defaults import DEFAULT_TOTAL_TOKENS, default_evidence_budget
from casebrief.models.pipeline import OrchestratorSettings
from casebrief.models.rate_limit import RateLimitPolicy
from casebrief.protocols.counter_store import CounterStore
from casebrief.protocols.generation import AsyncGenerationBackend, GenerationBackend
from casebrief.protocols.tokenizer import Tokenizer
from casebrief.ratelimit.gate import AdmissionGate
from casebrief.ratelimit.redis_store import RedisCounterStore
from casebrief.ratelimit.store import InMemoryCounterStore
from casebrief.service import CaseBriefService

logger = logging.getLogger(__name__)

TOTAL_TOKENS_ENV = "CASEBRIEF_TOTAL_TOKENS"
BACKEND_LIMIT_ENV = "CASEBRIEF_BACKEND_LIMIT"
API_KEY_ENV = "ANTHROPIC_API_KEY"
REDIS_URL_ENV = "CASEBRIEF_REDIS_URL"


def _int_setting(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        msg = f"{name} must be an integer, got {raw!r}"
        raise ValueError(msg) from None
    if value <= 0:
        msg = f"{name} must be positive, got {value}"
        raise ValueError(msg)
    return value


def budget_from_env(environ: Mapping[str, str] | None = None) -> TokenBudget:
    """Default evidence budget sized by ``CASEBRIEF_TOTAL_TOKENS``."""
    environ = os.environ if environ is None else environ
    total = _int_setting(environ, TOTAL_TOKENS_ENV, DEFAULT_TOTAL_TOKENS)
    limit = _int_setting(environ, BACKEND_LIMIT_ENV, DEFAULT_BACKEND_LIMIT)
    return default_evidence_budget(total, backend_limit=limit)


def build_backend(
    environ: Mapping[str, str] | None = None, *, use_async: bool = False,
) -> AnthropicBackend | AsyncAnthropicBackend:
    """Anthropic backend configured from ``ANTHROPIC_API_KEY``."""
    environ = os.environ if environ is None else environ
    api_key = environ.get(API_KEY_ENV) or None
    if api_key is None:
        logger.warning("%s is not set; the Anthropic SDK will look for credentials itself", API_KEY_ENV)
    if use_async:
        return AsyncAnthropicBackend(api_key=api_key)
    return AnthropicBackend(api_key=api_key)


def build_store(environ: Mapping[str, str] | None = None) -> CounterStore:
    """Counter store for the admission gate.

    Uses Redis when ``CASEBRIEF_REDIS_URL`` is set, so quotas hold across
    worker processes; otherwise the in-process store, which only enforces
    quotas within this process.
    """
    environ = os.environ if environ is None else environ
    url = environ.get(REDIS_URL_ENV, "").strip()
    if url:
        logger.info("Using the Redis counter store from %s", REDIS_URL_ENV)
        return RedisCounterStore.from_url(url)
    logger.info("%s is not set; using the in-process store", REDIS_URL_ENV)
    return InMemoryCounterStore()


def build_service(
    *,
    backend: GenerationBackend | AsyncGenerationBackend | None = None,
    store: CounterStore | None = None,
    policy: RateLimitPolicy | None = None,
    tokenizer: Tokenizer | None = None,
    assembler_settings: AssemblerSettings | None = None,
    settings: OrchestratorSettings | None = None,
    environ: Mapping[str, str] | None = None,
    use_async: bool = False,
) -> CaseBriefService:
    """Wire a ``CaseBriefService``.

    Every collaborator can be supplied; missing ones are built from the
    environment (see :func:`build_store` for the counter store).
    """
    if store is None:
        store = build_store(environ)
    assembler = ContextAssembler(budget_from_env(environ), tokenizer, assembler_settings)
    return CaseBriefService(
        AdmissionGate(store, policy),
        backend if backend is not None else build_backend(environ, use_async=use_async),
        assembler,
        settings=settings,
    )
