# backend/leadverify/verifier/base.py
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Protocol

LOG = logging.getLogger("leadverify.verifier")

INTERNAL_STATUSES = ("ok", "invalid", "risky", "accept_all", "disposable", "unknown")

_STATUS_MAP = {
    "ok": "ok",
    "valid": "ok",
    "invalid": "invalid",
    "email_disabled": "invalid",
    "dead_server": "invalid",
    "invalid_mx": "invalid",
    "invalid_syntax": "invalid",
    "syntax_error": "invalid",
    "disposable": "disposable",
    "temporary": "disposable",
    "catch_all": "accept_all",
    "accept_all": "accept_all",
    "risky": "risky",
    "role": "risky",
    "complainer": "risky",
    "spamtrap": "risky",
}


def map_provider_status(raw_status: Optional[str]) -> str:
    """Provider status string -> one of INTERNAL_STATUSES."""
    return _STATUS_MAP.get((raw_status or "").strip().lower(), "unknown")


@dataclass
class VerificationResult:
    email: str
    status: str
    provider: str
    raw_response: Dict[str, Any] = field(default_factory=dict)


class EmailVerificationProvider(Protocol):
    name: str

    async def verify(self, email: str) -> VerificationResult:
        ...


async def verify_emails_bulk(
    provider: EmailVerificationProvider,
    emails: Iterable[str],
    delay_seconds: float = 0.2,
    on_progress: Optional[Callable[[int, int], Awaitable[None]]] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Dict[str, VerificationResult]:
    """
    Verify each distinct email once, in order, pausing ``delay_seconds``
    between provider calls.
    """
    unique = list(dict.fromkeys(e for e in emails if e))
    results: Dict[str, VerificationResult] = {}
    total = len(unique)

    for i, email in enumerate(unique, start=1):
        results[email] = await provider.verify(email)
        if on_progress is not None:
            await on_progress(i, total)
        if i < total and delay_seconds > 0:
            await sleep(delay_seconds)

    return results
