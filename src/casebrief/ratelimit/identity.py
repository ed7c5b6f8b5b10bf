"""Identity resolution for rate limiting."""

from __future__ import annotations

from collections.abc import Mapping

from casebrief.models.rate_limit import UNKNOWN_IDENTITY, Identity

FORWARDED_FOR_HEADER = "x-forwarded-for"
REAL_IP_HEADER = "x-real-ip"


def _header(headers: Mapping[str, str], name: str) -> str:
    for key, value in headers.items():
        if key.lower() == name:
            return value or ""
    return ""


def client_address(headers: Mapping[str, str] | None = None, remote_addr: str | None = None) -> str:
    """Best-effort client address.

    Walks the first entry of ``X-Forwarded-For``, then ``X-Real-IP``, then
    the transport-level ``remote_addr``; returns ``"unknown"`` when none is
    set.
    """
    headers = headers or {}
    candidates = (
        _header(headers, FORWARDED_FOR_HEADER).split(",")[0],
        _header(headers, REAL_IP_HEADER),
        remote_addr or "",
    )
    for candidate in candidates:
        if candidate.strip():
            return candidate.strip()
    return UNKNOWN_IDENTITY


def resolve_identity(
    user_id: str | None = None,
    headers: Mapping[str, str] | None = None,
    remote_addr: str | None = None,
) -> Identity:
    """Resolve the rate-limit identity of a request.

    The authenticated caller id wins; otherwise the client address is used.
    The same identity must be used for quota lookups and for logging.
    """
    if user_id and user_id.strip():
        return Identity(kind="user", value=user_id.strip())
    return Identity(kind="ip", value=client_address(headers, remote_addr))
