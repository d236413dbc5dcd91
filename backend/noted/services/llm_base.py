"""
Noted.AI Backend: Abstract LLM Service Interface
================================================

What:  Contract for chat-completion providers used by the AI features.
Why:   AIService depends on this interface, not on the OpenAI SDK, so tests
       can inject a fake and another provider can be dropped in later.
How:   Concrete implementations inherit from LLMService and implement complete().
"""

from abc import ABC, abstractmethod


class LLMService(ABC):
    """
    Abstract interface for a chat-completion provider.

    Contract:
        - complete() returns the assistant's text for one system+user turn
        - Quota / rate rejections raise LLMQuotaError (caller serves fallback)
        - Every other provider failure raises LLMServiceError or
          CircuitBreakerOpenError; SDK exceptions never leak out
    """

    @property
    @abstractmethod
    def configured(self) -> bool:
        """True when a usable credential is present; False forces fallback mode."""
        ...

    @abstractmethod
    async def complete(
        self,
        *,
        model: str,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        """
        Run one completion and return the assistant message content.

        Raises:
            LLMQuotaError: Provider reported insufficient quota or rate limiting.
            LLMServiceError: Unknown model, or failure after all retries.
            CircuitBreakerOpenError: Too many recent consecutive failures.
        """
        ...

    @abstractmethod
    async def health_check(self) -> str:
        """Return one of: available, fallback, circuit_open."""
        ...
