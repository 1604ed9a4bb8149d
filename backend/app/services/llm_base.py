"""
ScreenShelf Backend - Abstract Text-Generation Interface
==========================================================

What:  Abstract base class for chat-style text-generation providers.
How:   Concrete implementations inherit from TextGenerationService and
       implement complete(). The DescriptionGenerator depends only on this
       interface, so tests can substitute a canned implementation.
Who:   Called by DescriptionGenerator for every upload.
"""

from abc import ABC, abstractmethod


class TextGenerationService(ABC):
    """
    Contract:
        - complete() sends one system prompt plus one user message and
          returns the model's reply text
        - Implementations handle their own retries and timeouts
        - Every provider-specific failure surfaces as
          DescriptionGenerationFailure (or its CircuitBreakerOpenError subclass)

    Implementations:
        - OpenAIChatService: OpenAI-compatible /chat/completions over httpx
    """

    @abstractmethod
    async def complete(self, system_prompt: str, user_content: str) -> str:
        """
        Run one chat completion.

        Args:
            system_prompt: Instruction message (role "system")
            user_content:  Content to operate on (role "user")

        Returns:
            The reply text, stripped. May be empty.

        Raises:
            DescriptionGenerationFailure: provider failed after retries, or
                returned a body without a reply.
            CircuitBreakerOpenError: too many recent failures.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Lightweight connectivity test. Returns True if the provider is reachable."""
        ...

    async def aclose(self) -> None:
        """Release network resources. Called on application shutdown."""
        return None
