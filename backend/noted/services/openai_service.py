"""
Noted.AI Backend: OpenAI Chat Completion Service
================================================

What:  Concrete LLMService backed by the OpenAI async client.
Why:   Summaries, flashcards, assignment help and citations are all a single
       system+user chat turn against a plan-dependent model.
How:   Wraps `chat.completions.create` with tenacity retries for transient
       network/5xx failures and a circuit breaker for sustained outages.

Error translation:
    RateLimitError (429, incl. insufficient_quota) → LLMQuotaError, no retry,
                                                     caller switches to fallback
    NotFoundError (model_not_found)                → LLMServiceError "AI model
                                                     temporarily unavailable"
    APIConnectionError / APITimeoutError / 5xx     → retried, then LLMServiceError
    anything else from the SDK                     → LLMServiceError

Quota rejections do not count as circuit breaker failures: the provider is
reachable, it is just refusing this account.
"""

import logging
import time
import uuid
from typing import Optional

from openai import (
    APIConnectionError,
    APIError,
    AsyncOpenAI,
    InternalServerError,
    NotFoundError as OpenAINotFoundError,
    RateLimitError,
)
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from noted.config import settings
from noted.exceptions import CircuitBreakerOpenError, LLMQuotaError, LLMServiceError
from noted.services.llm_base import LLMService

logger = logging.getLogger(__name__)

MODEL_UNAVAILABLE_MESSAGE = "AI model temporarily unavailable. Please try again later."


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker Implementation
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Circuit breaker guarding the LLM provider.

    State Machine:
        CLOSED → (failure_threshold consecutive failures) → OPEN
        OPEN → (recovery_timeout elapsed) → HALF_OPEN
        HALF_OPEN → success → CLOSED / failure → OPEN

    Not shared across worker processes; each uvicorn worker keeps its own.
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
        Returns True when a call may proceed.

        Raises:
            CircuitBreakerOpenError while OPEN and the recovery timeout has not elapsed.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info("Circuit breaker transitioning to HALF_OPEN after %.1fs", elapsed)
                self.state = self.HALF_OPEN
                return True
            remaining = int(self.recovery_timeout - elapsed)
            raise CircuitBreakerOpenError(recovery_time=remaining)

        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker transitioning to CLOSED (service recovered)")
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


# ══════════════════════════════════════════════════════════════════════════
# OpenAI Service
# ══════════════════════════════════════════════════════════════════════════

class OpenAIService(LLMService):
    """
    OpenAI implementation of LLMService.

    Constructed once by the app factory and shared by every request, so the
    circuit breaker state spans requests. Tests pass a fake `client`.
    """

    def __init__(self, api_key: Optional[str] = None, client: Optional[AsyncOpenAI] = None):
        self._configured = settings.openai_configured if api_key is None else bool(api_key)
        if client is not None:
            self.client = client
        elif self._configured:
            # SDK-level retries are disabled; tenacity owns the retry policy
            self.client = AsyncOpenAI(
                api_key=api_key or settings.openai_api_key,
                timeout=settings.openai_timeout,
                max_retries=0,
            )
        else:
            self.client = None

        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )

        logger.info(
            "OpenAIService initialized (configured=%s, circuit_breaker threshold=%d recovery=%ds)",
            self._configured,
            settings.cb_failure_threshold,
            settings.cb_recovery_timeout,
        )

    @property
    def configured(self) -> bool:
        return self._configured and self.client is not None

    async def complete(
        self,
        *,
        model: str,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        if not self.configured:
            raise LLMServiceError(message="AI provider is not configured")

        request_id = str(uuid.uuid4())[:8]
        self.circuit_breaker.can_execute()

        logger.info("[%s] OpenAI completion requested (model=%s)", request_id, model)

        try:
            result = await self._call_openai_with_retry(
                request_id=request_id,
                model=model,
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except RateLimitError as e:
            code = getattr(e, "code", None) or "rate_limited"
            logger.warning("[%s] OpenAI quota/rate rejection (%s)", request_id, code)
            raise LLMQuotaError(
                message="AI provider quota exhausted",
                context={"request_id": request_id, "provider_code": code},
            )
        except OpenAINotFoundError as e:
            logger.error("[%s] OpenAI model not found (%s): %s", request_id, model, str(e))
            raise LLMServiceError(
                message=MODEL_UNAVAILABLE_MESSAGE,
                context={"request_id": request_id, "model": model},
            )
        except (APIConnectionError, InternalServerError) as e:
            self.circuit_breaker.record_failure()
            logger.error(
                "[%s] OpenAI retries exhausted after %d attempts: %s",
                request_id,
                settings.retry_max_attempts,
                str(e),
            )
            raise LLMServiceError(
                message="AI generation failed after multiple attempts. Please try again later.",
                retry_after=self.circuit_breaker.recovery_timeout,
                context={"request_id": request_id, "attempts": settings.retry_max_attempts},
            )
        except APIError as e:
            self.circuit_breaker.record_failure()
            logger.error("[%s] OpenAI API error: %s", request_id, str(e), exc_info=True)
            raise LLMServiceError(
                context={"request_id": request_id, "error_type": type(e).__name__},
            )

        self.circuit_breaker.record_success()
        return result

    @retry(
        retry=retry_if_exception_type((APIConnectionError, InternalServerError)),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _call_openai_with_retry(
        self,
        *,
        request_id: str,
        model: str,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        """
        One chat completion call; tenacity re-invokes it on transient errors.

        Kept separate from complete() so the circuit breaker check and error
        translation run once per request, not once per attempt.
        """
        start_time = time.time()
        try:
            completion = await self.client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except Exception as e:
            logger.warning(
                "[%s] OpenAI call failed after %.0fms: %s",
                request_id,
                (time.time() - start_time) * 1000,
                str(e),
            )
            raise

        content = completion.choices[0].message.content or ""
        usage = getattr(completion, "usage", None)
        logger.info(
            "[%s] OpenAI completion finished in %.0fms (%s tokens)",
            request_id,
            (time.time() - start_time) * 1000,
            getattr(usage, "total_tokens", "?"),
        )
        return content

    async def health_check(self) -> str:
        """Cheap status report; does not call the provider."""
        if not self.configured:
            return "fallback"
        if self.circuit_breaker.state == CircuitBreaker.OPEN:
            return "circuit_open"
        return "available"
