"""
ScreenShelf Backend - OpenAI Chat Completions Client
======================================================

What:  TextGenerationService for OpenAI-compatible /chat/completions endpoints.
How:   httpx.AsyncClient with bearer-token auth, tenacity retries (exponential
       backoff + jitter) for transient failures, and a circuit breaker that
       short-circuits calls after repeated failures.
Who:   Built once by the service registry; called by DescriptionGenerator.

Request shape:
    POST {OPENAI_BASE_URL}/chat/completions
    Authorization: Bearer <OPENAI_API_KEY>
    {
        "model": "gpt-4-turbo",
        "messages": [
            {"role": "system", "content": <instruction prompt>},
            {"role": "user", "content": <extracted text>}
        ],
        "max_tokens": 100
    }

Resilience Strategy:
    1. Retry transport errors, HTTP 429 and 5xx (LLM_RETRY_MAX_ATTEMPTS)
    2. Fail fast on other 4xx (bad key, bad request)
    3. Request timeout LLM_TIMEOUT seconds
    4. Circuit breaker opens after CB_FAILURE_THRESHOLD consecutive failures
"""

import logging
import time
import uuid
from typing import Any, Dict, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from app.config import Settings
from app.exceptions import CircuitBreakerOpenError, DescriptionGenerationFailure
from app.services.llm_base import TextGenerationService

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429}


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker Implementation
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Circuit breaker for the text-generation provider.

    State Machine:
        CLOSED (normal operation)
            → On failure: increment failure_count
            → When failure_count >= threshold: transition to OPEN

        OPEN (rejecting all requests)
            → All calls raise CircuitBreakerOpenError immediately
            → After recovery_timeout seconds: transition to HALF_OPEN

        HALF_OPEN (testing recovery)
            → Allow the next request through
            → On success: transition to CLOSED (reset failure_count)
            → On failure: transition back to OPEN (reset timer)

    Not thread-safe. Uvicorn's async workers share one event loop per
    process, so every state change happens on that loop.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Check if a request is allowed through.

        Raises:
            CircuitBreakerOpenError if OPEN and the recovery timeout hasn't elapsed.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info(
                    "Circuit breaker transitioning to HALF_OPEN after %.1fs",
                    elapsed,
                )
                self.state = self.HALF_OPEN
                return True
            remaining = int(self.recovery_timeout - elapsed)
            raise CircuitBreakerOpenError(recovery_time=remaining)

        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker transitioning to CLOSED (provider recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker returning to OPEN (test request failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker OPENING after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN


def is_retryable(exc: BaseException) -> bool:
    """Transport errors, 429 and every 5xx are worth another attempt."""
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status >= 500 or status in RETRYABLE_STATUS_CODES
    return False


# ══════════════════════════════════════════════════════════════════════════
# OpenAI Chat Service
# ══════════════════════════════════════════════════════════════════════════

class OpenAIChatService(TextGenerationService):
    """
    Chat-completions client.

    Error Handling Chain:
        API call fails → tenacity retries transient failures
        → All retries fail → record circuit breaker failure
        → DescriptionGenerationFailure raised to the caller
        → Threshold reached → future calls rejected instantly
        → Recovery timeout → one test call (HALF_OPEN)

    Args:
        settings: validated application settings
        client:   pre-built httpx.AsyncClient (tests pass one with a
                  MockTransport); the service creates and owns one otherwise
    """

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.model = settings.openai_model
        self.max_tokens = settings.openai_max_tokens
        self.max_attempts = settings.llm_retry_max_attempts
        self.min_wait = settings.llm_retry_min_wait
        self.max_wait = settings.llm_retry_max_wait
        self._headers = {
            "Authorization": f"Bearer {settings.openai_api_key}",
            "Content-Type": "application/json",
        }

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=settings.openai_base_url,
            timeout=httpx.Timeout(settings.llm_timeout, connect=10.0),
        )

        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )

        logger.info(
            "OpenAIChatService initialized with model=%s, "
            "circuit_breaker(threshold=%d, recovery=%ds)",
            self.model,
            settings.cb_failure_threshold,
            settings.cb_recovery_timeout,
        )

    async def complete(self, system_prompt: str, user_content: str) -> str:
        request_id = str(uuid.uuid4())[:8]

        # Raises CircuitBreakerOpenError if open
        self.circuit_breaker.can_execute()

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
            "max_tokens": self.max_tokens,
        }

        try:
            reply = await self._post_with_retry(payload, request_id)
        except DescriptionGenerationFailure:
            self.circuit_breaker.record_failure()
            raise
        except httpx.HTTPStatusError as e:
            self.circuit_breaker.record_failure()
            logger.error(
                "[%s] Chat completion rejected with HTTP %d",
                request_id,
                e.response.status_code,
            )
            raise DescriptionGenerationFailure(
                message="Text-generation provider rejected the request",
                context={"request_id": request_id, "status": e.response.status_code},
            ) from e
        except Exception as e:
            self.circuit_breaker.record_failure()
            logger.error(
                "[%s] Chat completion failed: %s",
                request_id,
                str(e),
                exc_info=True,
            )
            raise DescriptionGenerationFailure(
                context={
                    "request_id": request_id,
                    "attempts": self.max_attempts,
                    "error_type": type(e).__name__,
                },
            ) from e

        self.circuit_breaker.record_success()
        return reply

    async def _post_with_retry(self, payload: Dict[str, Any], request_id: str) -> str:
        """Retry only the HTTP call; the circuit breaker check stays outside."""
        reply = ""
        async for attempt in AsyncRetrying(
            retry=retry_if_exception(is_retryable),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential_jitter(
                initial=self.min_wait,
                max=self.max_wait,
                jitter=min(1.0, self.max_wait),
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                reply = await self._call_chat_completions(payload, request_id)
        return reply

    async def _call_chat_completions(self, payload: Dict[str, Any], request_id: str) -> str:
        start_time = time.perf_counter()

        try:
            response = await self._client.post(
                "/chat/completions",
                json=payload,
                headers=self._headers,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(
                "[%s] Chat completion call failed after %.0fms: %s",
                request_id,
                (time.perf_counter() - start_time) * 1000,
                str(e),
            )
            raise

        try:
            body = response.json()
        except ValueError as e:
            raise DescriptionGenerationFailure(
                message="Text-generation provider returned a non-JSON body",
                context={"request_id": request_id},
            ) from e

        reply = self._extract_reply(body, request_id)
        logger.info(
            "[%s] Chat completion finished in %.0fms, %d chars",
            request_id,
            (time.perf_counter() - start_time) * 1000,
            len(reply),
        )
        return reply

    @staticmethod
    def _extract_reply(body: Any, request_id: str) -> str:
        """Pull choices[0].message.content out of a completion body."""
        try:
            content = body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise DescriptionGenerationFailure(
                message="Text-generation provider returned no completion",
                context={"request_id": request_id},
            ) from e
        if content is None:
            return ""
        if not isinstance(content, str):
            raise DescriptionGenerationFailure(
                message="Text-generation provider returned non-text content",
                context={"request_id": request_id, "content_type": type(content).__name__},
            )
        return content.strip()

    async def health_check(self) -> bool:
        """List models: authenticated, no token cost."""
        try:
            response = await self._client.get("/models", headers=self._headers)
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning("Text-generation health check failed: %s", str(e))
            return False

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
