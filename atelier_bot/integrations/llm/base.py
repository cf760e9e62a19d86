"""
LLM provider interface.

Only used to reword clarifying questions; order interpretation never
calls it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class LLMResponse:
    """Completion returned by a provider."""

    content: str
    tokens_used: int | None = None
    model: str | None = None


class BaseLLM(ABC):
    """Chat completion provider."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Short provider id used in logs."""

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        system_prompt: str | None = None,
        temperature: float = 0.3,
        max_tokens: int = 256,
    ) -> LLMResponse:
        """
        One-shot completion.

        Args:
            prompt: user turn
            system_prompt: optional instructions sent before it
            temperature: sampling temperature (0-1)
            max_tokens: completion length cap

        Returns:
            LLMResponse with generated content
        """
