"""
Gemini Provider — Google Gemini API implementation.

Uses the google.genai SDK. Client is lazily initialized, so the API and
worker start without a key and only fail on an actual generation call.

Features:
- Bounded per-call timeout (asyncio.wait_for)
- Call-site retry with 2 ** attempt backoff, transient errors only
- Model fallback: the final retry goes to gemini-2.5-flash
- Circuit breaker: after consecutive failures, fail fast for 60s
"""

from __future__ import annotations

import asyncio
import time
from typing import Optional

from google import genai
from google.genai import types

from claimrisk.config import settings
from claimrisk.errors import CircuitOpenError, ProviderError, TransientProviderError
from claimrisk.llm import LLMProvider
from claimrisk.logging import get_logger

logger = get_logger("llm.gemini")

FALLBACK_MODEL = "gemini-2.5-flash"

# Total calls per generate(), the last one on FALLBACK_MODEL
MAX_CALL_ATTEMPTS = 3
RETRY_BASE_DELAY = 1.0

# Circuit breaker settings
_CB_FAILURE_THRESHOLD = 3   # Open after this many consecutive failures
_CB_RECOVERY_TIMEOUT = 60   # Seconds before trying again (half-open)

_TRANSIENT_MARKERS = (
    "429", "500", "502", "503", "504", "rate", "quota", "timeout",
    "timed out", "connection", "unavailable", "overloaded",
)


def is_transient(error: BaseException) -> bool:
    if isinstance(error, (asyncio.TimeoutError, TransientProviderError)):
        return True
    text = str(error).lower()
    return any(k in text for k in _TRANSIENT_MARKERS)


class CircuitBreaker:
    """Simple circuit breaker: closed → open → half-open → closed."""

    def __init__(
        self,
        failure_threshold: int = _CB_FAILURE_THRESHOLD,
        recovery_timeout: float = _CB_RECOVERY_TIMEOUT,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._failures = 0
        self._last_failure_time: float = 0
        self._state = "closed"  # closed | open | half-open

    @property
    def state(self) -> str:
        if self._state == "open":
            if time.monotonic() - self._last_failure_time >= self.recovery_timeout:
                self._state = "half-open"
        return self._state

    def record_success(self) -> None:
        self._failures = 0
        self._state = "closed"

    def record_failure(self) -> None:
        self._failures += 1
        self._last_failure_time = time.monotonic()
        if self._failures >= self.failure_threshold:
            self._state = "open"
            logger.warning(
                "Circuit breaker OPEN after %d consecutive provider failures, "
                "failing fast for %ds",
                self._failures, self.recovery_timeout,
            )

    @property
    def is_open(self) -> bool:
        return self.state == "open"


class GeminiProvider(LLMProvider):
    """Google Gemini provider with timeout, retry, fallback and circuit breaker."""

    name = "gemini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self._api_key = api_key or settings.GEMINI_API_KEY
        self._model = model or settings.GEMINI_MODEL
        self._timeout = timeout or settings.PROVIDER_TIMEOUT
        self._client: Optional[genai.Client] = None
        self.circuit_breaker = CircuitBreaker()
        self.last_model: Optional[str] = None

    def _get_client(self) -> genai.Client:
        if self._client is None:
            if not self._api_key:
                raise ProviderError(
                    "GEMINI_API_KEY not set. Get one from "
                    "https://aistudio.google.com/apikey"
                )
            self._client = genai.Client(api_key=self._api_key)
        return self._client

    async def _call_model(
        self,
        prompt: str,
        config: types.GenerateContentConfig,
    ) -> str:
        """Call the primary model, retrying transient failures with backoff.

        At most MAX_CALL_ATTEMPTS calls are made and the last one goes to
        FALLBACK_MODEL. Non-transient errors are raised on the first call.
        """
        client = self._get_client()
        for attempt in range(MAX_CALL_ATTEMPTS):
            final = attempt == MAX_CALL_ATTEMPTS - 1
            model = FALLBACK_MODEL if final else self._model
            if final and model != self._model:
                logger.warning(
                    "Primary model %s kept failing, falling back to %s",
                    self._model, FALLBACK_MODEL,
                )
            try:
                response = await asyncio.wait_for(
                    client.aio.models.generate_content(
                        model=model,
                        contents=prompt,
                        config=config,
                    ),
                    timeout=self._timeout,
                )
            except Exception as e:
                if not is_transient(e):
                    raise ProviderError(f"{model} failed: {e}") from e
                if final:
                    raise TransientProviderError(
                        f"{model} failed after {attempt + 1} attempts: {e or type(e).__name__}"
                    ) from e
                logger.info(
                    "Transient provider error, retrying",
                    extra={"model": model, "attempts": attempt + 1, "error": str(e)},
                )
                await asyncio.sleep(RETRY_BASE_DELAY * 2 ** attempt)
                continue

            text = response.text
            if not text:
                raise ProviderError(f"Empty response from {model}")
            self.last_model = model
            return text

        raise TransientProviderError(f"{self._model} exhausted retries")

    async def generate(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        temperature: float = 0.2,
        json_mode: bool = False,
    ) -> str:
        # Fast-fail while the provider is known to be down
        if self.circuit_breaker.is_open:
            raise CircuitOpenError(
                "Provider circuit breaker is open after repeated failures"
            )

        config = types.GenerateContentConfig(
            temperature=temperature,
            system_instruction=system_instruction,
        )
        if json_mode:
            config.response_mime_type = "application/json"

        try:
            result = await self._call_model(prompt, config)
        except ProviderError as e:
            logger.error("Provider call failed: %s", e, extra={"model": self._model})
            self.circuit_breaker.record_failure()
            raise

        self.circuit_breaker.record_success()
        return result
