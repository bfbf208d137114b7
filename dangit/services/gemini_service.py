"""
DANGIT Backend — Google Gemini Model Client
=============================================

What:  LLMService implementation backed by google-generativeai.
How:   Screenshots go to the vision model with the image inlined as a
       {"mime_type", "data"} part; links and notes go to the cheaper text
       model. Every call is wrapped by tenacity retries and a circuit breaker.

Resilience:
    1. Tenacity retry, exponential backoff with jitter
    2. Circuit breaker: after N exhausted calls, fail instantly until the
       recovery timeout passes, then let one test call through
    3. Per-call timeout via request_options

Failures surface as LLMServiceError / CircuitBreakerOpenError; the extractor
turns both into fallback metadata, so users never see them from the pipeline.
"""

import logging
import time
import uuid
from typing import Any, Dict, List, Optional

import google.generativeai as genai
from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    stop_after_attempt,
    wait_exponential_jitter,
)

from dangit.config import Settings
from dangit.exceptions import CircuitBreakerOpenError, LLMServiceError
from dangit.services.llm_base import ImagePart, LLMService

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    CLOSED → OPEN → HALF_OPEN state machine.

        CLOSED:    calls pass; each failure increments failure_count, and
                   reaching the threshold opens the circuit
        OPEN:      calls raise CircuitBreakerOpenError until
                   recovery_timeout seconds have passed
        HALF_OPEN: one test call passes; success closes, failure reopens

    Not thread-safe. One instance lives on the app context and is shared by
    every request of a single uvicorn worker process.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        # Consecutive exhausted calls; any success resets it to zero
        self.failure_count = 0
        self.state = self.CLOSED
        # Start of the OPEN cool-down; None while CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Returns True when a call may proceed.

        Raises:
            CircuitBreakerOpenError: circuit is OPEN and still cooling down.
        """
        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            # Still cooling down: fail fast and tell the caller how long to wait
            if elapsed < self.recovery_timeout:
                raise CircuitBreakerOpenError(recovery_time=int(self.recovery_timeout - elapsed))
            logger.info("Circuit breaker HALF_OPEN after %.1fs", elapsed)
            self.state = self.HALF_OPEN
        return True

    def record_success(self) -> None:
        """Any success, including the HALF_OPEN test call, fully closes the circuit."""
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker CLOSED (model provider recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        """Called once per exhausted call (after retries), not once per attempt."""
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker back to OPEN (test call failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker OPEN after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN


# ══════════════════════════════════════════════════════════════════════════
# Gemini client
# ══════════════════════════════════════════════════════════════════════════

class GeminiService(LLMService):
    """
    Gemini implementation of LLMService.

    Model objects are cached per (model name, system instruction) since the
    SDK binds the system instruction at construction time.
    """

    def __init__(self, config: Settings):
        self.config = config
        if config.gemini_api_key:
            genai.configure(api_key=config.gemini_api_key)

        self._models: Dict[tuple, Any] = {}
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=config.cb_failure_threshold,
            recovery_timeout=config.cb_recovery_timeout,
        )

        logger.info(
            "GeminiService initialized (vision=%s, text=%s, breaker threshold=%d recovery=%ds)",
            config.gemini_vision_model,
            config.gemini_text_model,
            config.cb_failure_threshold,
            config.cb_recovery_timeout,
        )

    def _model(self, name: str, system: Optional[str]) -> Any:
        # GenerativeModel construction is cheap but not free; reuse per key
        key = (name, system)
        if key not in self._models:
            self._models[key] = genai.GenerativeModel(name, system_instruction=system)
        return self._models[key]

    async def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        image: Optional[ImagePart] = None,
        temperature: float = 0.3,
        max_output_tokens: int = 600,
    ) -> str:
        """
        One logical model call (possibly several attempts).

        Who:     ContentExtractor.
        What:    Picks the vision model when an image is attached, otherwise
                 the text model, and returns the reply text stripped.

        Raises:
            CircuitBreakerOpenError: circuit OPEN; no attempt was made.
            LLMServiceError: retries exhausted or an unexpected SDK error.
        """
        # Short id ties the retry, failure and timing lines of one call together
        call_id = str(uuid.uuid4())[:8]

        # Raises CircuitBreakerOpenError without touching the network
        self.circuit_breaker.can_execute()

        model_name = self.config.gemini_vision_model if image else self.config.gemini_text_model
        # Text first, then the inline image part the SDK expects
        parts: List[Any] = [prompt]
        if image is not None:
            parts.append({"mime_type": image.mime_type, "data": image.data})

        logger.info("[%s] Gemini %s call (image=%s)", call_id, model_name, image is not None)

        try:
            text = await self._call_with_retry(
                model_name,
                system,
                parts,
                {"temperature": temperature, "max_output_tokens": max_output_tokens},
                call_id,
            )
        except RetryError as e:
            # Every attempt failed: one breaker failure for the whole call
            self.circuit_breaker.record_failure()
            last = e.last_attempt.exception() if e.last_attempt else None
            logger.error("[%s] Gemini retries exhausted: %s", call_id, last)
            raise LLMServiceError(
                message="AI analysis failed after multiple attempts. Please try again later.",
                retry_after=self.circuit_breaker.recovery_timeout,
                context={"call_id": call_id, "attempts": self.config.retry_max_attempts},
            )
        except Exception as e:
            self.circuit_breaker.record_failure()
            logger.error("[%s] Gemini call failed: %s", call_id, e, exc_info=True)
            raise LLMServiceError(
                message="An unexpected error occurred during AI analysis.",
                context={"call_id": call_id, "error_type": type(e).__name__},
            )

        self.circuit_breaker.record_success()
        return text

    async def _call_with_retry(
        self,
        model_name: str,
        system: Optional[str],
        parts: List[Any],
        generation_config: Dict[str, Any],
        call_id: str,
    ) -> str:
        # Attempt count and backoff bounds come from settings
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.retry_max_attempts),
            wait=wait_exponential_jitter(
                initial=self.config.retry_min_wait,
                max=self.config.retry_max_wait,
                jitter=1,
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
        )
        async for attempt in retrying:
            with attempt:
                return await self._call_once(model_name, system, parts, generation_config, call_id)
        # AsyncRetrying either returns from the block or raises RetryError
        raise LLMServiceError(context={"call_id": call_id})

    async def _call_once(
        self,
        model_name: str,
        system: Optional[str],
        parts: List[Any],
        generation_config: Dict[str, Any],
        call_id: str,
    ) -> str:
        start_time = time.time()
        try:
            # Native async SDK call; request_options carries the per-attempt timeout
            response = await self._model(model_name, system).generate_content_async(
                parts,
                generation_config=generation_config,
                request_options={"timeout": self.config.llm_timeout},
            )
            text = (response.text or "").strip()
        except Exception as e:
            # Re-raised so tenacity decides whether another attempt follows
            logger.warning(
                "[%s] Gemini attempt failed after %.0fms: %s",
                call_id,
                (time.time() - start_time) * 1000,
                e,
            )
            raise

        logger.info(
            "[%s] Gemini replied in %.0fms (%d chars)",
            call_id,
            (time.time() - start_time) * 1000,
            len(text),
        )
        return text

    async def health_check(self) -> bool:
        """list_models costs no tokens and proves the key and network work."""
        if not self.config.gemini_api_key:
            return False
        try:
            names = [m.name for m in genai.list_models()]
        except Exception as e:
            logger.warning("Gemini health check failed: %s", e)
            return False
        for model in (self.config.gemini_text_model, self.config.gemini_vision_model):
            if f"models/{model}" not in names:
                logger.warning("Configured model %s not listed by the provider", model)
        return True
