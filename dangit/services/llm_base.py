"""
DANGIT Backend — Abstract Language Model Interface
====================================================

What:  The contract the content extractor depends on.
Why:   The extractor only needs "prompt in, text out". Keeping the provider
       behind this interface lets tests inject a scripted fake and keeps the
       Gemini specifics (model names, inline image parts) in one module.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ImagePart:
    """Raw image bytes sent alongside a prompt."""
    data: bytes
    mime_type: str = "image/png"


class LLMService(ABC):
    """
    Abstract interface for text generation.

    Contract:
        - generate() returns the model's raw reply text (may be fenced JSON,
          may be chatty); parsing is the caller's job
        - implementations handle their own retries and wrap provider errors
          in LLMServiceError / CircuitBreakerOpenError
    """

    @abstractmethod
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
        Run one single-turn generation.

        Args:
            prompt:            User prompt text.
            system:            Optional system instruction.
            image:             When set, a vision-capable model is used and the
                               image is sent inline after the prompt.
            temperature:       Sampling temperature.
            max_output_tokens: Reply length cap.

        Raises:
            LLMServiceError: provider failed after all retries.
            CircuitBreakerOpenError: too many recent failures.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Lightweight reachability test for the health endpoint."""
        ...
