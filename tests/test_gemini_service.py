"""
DANGIT Backend — Gemini Service Unit Tests (Mocked)
=====================================================

What:  GeminiService with the google-generativeai module patched out.
Why:   Tests must not make real model calls (cost, network, keys).

What we test:
    ✅ Circuit breaker state machine
    ✅ Vision model + inline image for screenshots, text model otherwise
    ✅ Retries exhausted → LLMServiceError and a recorded failure
    ✅ Open circuit rejects calls without touching the SDK
    ❌ Real API calls
"""

import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from dangit.config import Settings
from dangit.exceptions import CircuitBreakerOpenError, LLMServiceError
from dangit.services.gemini_service import CircuitBreaker, GeminiService
from dangit.services.llm_base import ImagePart


@pytest.fixture
def gemini_settings():
    return Settings(
        gemini_api_key="test-key-not-real",
        gemini_vision_model="vision-model",
        gemini_text_model="text-model",
        retry_max_attempts=2,
        retry_min_wait=1,
        retry_max_wait=5,
        cb_failure_threshold=2,
        cb_recovery_timeout=30,
    )


def mock_model(text="ok"):
    response = MagicMock()
    response.text = text
    model = MagicMock()
    model.generate_content_async = AsyncMock(return_value=response)
    return model


class TestCircuitBreaker:

    def test_initial_state_is_closed(self):
        cb = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        assert cb.state == "closed"
        assert cb.failure_count == 0

    def test_stays_closed_under_threshold(self):
        cb = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        for _ in range(4):
            cb.record_failure()
        assert cb.state == "closed"
        assert cb.can_execute() is True

    def test_open_circuit_rejects_calls(self):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=60)
        cb.record_failure()

        with pytest.raises(CircuitBreakerOpenError) as exc_info:
            cb.can_execute()
        assert 0 < exc_info.value.recovery_time <= 60

    def test_half_open_after_recovery_timeout(self):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=0)
        cb.record_failure()
        time.sleep(0.01)

        assert cb.can_execute() is True
        assert cb.state == "half_open"

    def test_half_open_failure_reopens(self):
        cb = CircuitBreaker(failure_threshold=3, recovery_timeout=0)
        for _ in range(3):
            cb.record_failure()
        time.sleep(0.01)
        cb.can_execute()

        cb.record_failure()
        assert cb.state == "open"

    def test_success_resets(self):
        cb = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        cb.record_failure()
        cb.record_failure()

        cb.record_success()
        assert cb.failure_count == 0
        assert cb.state == "closed"


class TestGeminiServiceMocked:

    @pytest.mark.asyncio
    async def test_image_goes_to_vision_model(self, gemini_settings):
        with patch("dangit.services.gemini_service.genai") as mock_genai:
            model = mock_model('{"title": "x"}')
            mock_genai.GenerativeModel.return_value = model
            service = GeminiService(gemini_settings)

            text = await service.generate(
                "describe",
                system="sys",
                image=ImagePart(data=b"\x89PNG", mime_type="image/png"),
            )

            assert text == '{"title": "x"}'
            mock_genai.configure.assert_called_once_with(api_key="test-key-not-real")
            mock_genai.GenerativeModel.assert_called_once_with("vision-model", system_instruction="sys")
            parts = model.generate_content_async.await_args.args[0]
            assert parts[0] == "describe"
            assert parts[1] == {"mime_type": "image/png", "data": b"\x89PNG"}

    @pytest.mark.asyncio
    async def test_text_goes_to_text_model_and_is_cached(self, gemini_settings):
        with patch("dangit.services.gemini_service.genai") as mock_genai:
            mock_genai.GenerativeModel.return_value = mock_model("reply")
            service = GeminiService(gemini_settings)

            await service.generate("one", system="sys", temperature=0.4, max_output_tokens=600)
            await service.generate("two", system="sys")

            mock_genai.GenerativeModel.assert_called_once_with("text-model", system_instruction="sys")
            kwargs = mock_genai.GenerativeModel.return_value.generate_content_async.await_args_list[0].kwargs
            assert kwargs["generation_config"] == {"temperature": 0.4, "max_output_tokens": 600}

    @pytest.mark.asyncio
    async def test_retries_exhausted_raise_llm_error(self, gemini_settings):
        with patch("dangit.services.gemini_service.genai") as mock_genai, \
             patch("dangit.services.gemini_service.wait_exponential_jitter", return_value=lambda _: 0):
            model = MagicMock()
            model.generate_content_async = AsyncMock(side_effect=RuntimeError("quota exceeded"))
            mock_genai.GenerativeModel.return_value = model
            service = GeminiService(gemini_settings)

            with pytest.raises(LLMServiceError) as exc_info:
                await service.generate("prompt")

            assert model.generate_content_async.await_count == 2
            assert exc_info.value.retry_after == 30
            assert service.circuit_breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_open_circuit_skips_sdk(self, gemini_settings):
        with patch("dangit.services.gemini_service.genai") as mock_genai:
            service = GeminiService(gemini_settings)
            for _ in range(gemini_settings.cb_failure_threshold):
                service.circuit_breaker.record_failure()

            with pytest.raises(CircuitBreakerOpenError):
                await service.generate("prompt")
            mock_genai.GenerativeModel.assert_not_called()

    @pytest.mark.asyncio
    async def test_health_check_without_key(self):
        with patch("dangit.services.gemini_service.genai") as mock_genai:
            service = GeminiService(Settings(gemini_api_key=""))
            assert await service.health_check() is False
            mock_genai.list_models.assert_not_called()

    @pytest.mark.asyncio
    async def test_health_check_lists_models(self, gemini_settings):
        with patch("dangit.services.gemini_service.genai") as mock_genai:
            listed = MagicMock()
            listed.name = "models/text-model"
            mock_genai.list_models.return_value = [listed]
            service = GeminiService(gemini_settings)

            assert await service.health_check() is True
