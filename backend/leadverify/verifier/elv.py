# backend/leadverify/verifier/elv.py
# EmailListVerify single-address API client.
import asyncio
import logging
from typing import Awaitable, Callable, Optional

import httpx

from leadverify.config import settings
from leadverify.errors import ProviderError
from .base import VerificationResult, map_provider_status

LOG = logging.getLogger("leadverify.verifier.elv")

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class EmailListVerifyProvider:
    name = "emaillistverify"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff: float = 0.5,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.api_key = api_key if api_key is not None else settings.ELV_API_KEY
        self.base_url = (base_url or settings.ELV_API_URL).rstrip("/")
        self.max_retries = max_retries or settings.PROVIDER_MAX_RETRIES
        self.backoff = backoff
        self._sleep = sleep
        self._client = client or httpx.AsyncClient(timeout=timeout or settings.PROVIDER_TIMEOUT_SECONDS)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def aclose(self):
        await self._client.aclose()

    async def verify(self, email: str) -> VerificationResult:
        if not self.api_key:
            raise ProviderError("ELV_API_KEY is not configured")

        url = f"{self.base_url}/verifyEmail"
        params = {"secret": self.api_key, "email": email}
        last_error = None

        for attempt in range(1, self.max_retries + 1):
            try:
                resp = await self._client.get(url, params=params)
            except httpx.TransportError as e:
                last_error = f"{type(e).__name__}: {e}"
                LOG.warning("ELV request failed (attempt %d/%d) email=%s: %s",
                            attempt, self.max_retries, email, last_error)
                if attempt < self.max_retries:
                    await self._sleep(self.backoff * attempt)
                continue

            if resp.status_code in RETRYABLE_STATUS:
                last_error = f"HTTP {resp.status_code}"
                LOG.warning("ELV returned %d (attempt %d/%d) email=%s",
                            resp.status_code, attempt, self.max_retries, email)
                if attempt < self.max_retries:
                    await self._sleep(self.backoff * attempt)
                continue

            if resp.status_code >= 400:
                raise ProviderError(f"EmailListVerify rejected request: HTTP {resp.status_code}")

            return self._parse(email, resp)

        raise ProviderError(f"EmailListVerify unavailable after {self.max_retries} attempts: {last_error}")

    def _parse(self, email: str, resp: httpx.Response) -> VerificationResult:
        # the endpoint answers either plain text ("ok") or a JSON object
        if "json" in resp.headers.get("content-type", ""):
            data = resp.json()
            raw_status = data.get("status") if isinstance(data, dict) else None
            raw = data if isinstance(data, dict) else {"response": data}
        else:
            raw_status = resp.text.strip()
            raw = {"status": raw_status}

        return VerificationResult(
            email=email,
            status=map_provider_status(raw_status),
            provider=self.name,
            raw_response=raw,
        )
