"""
LLM provider factory.
"""

import logging
from functools import lru_cache

from atelier_bot.config import settings
from atelier_bot.integrations.llm.base import BaseLLM, LLMResponse
from atelier_bot.integrations.llm.gigachat import GigaChatLLM

logger = logging.getLogger(__name__)


def get_llm_provider(provider: str | None = None) -> BaseLLM:
    """
    Get LLM provider instance.

    Args:
        provider: Provider name; settings.llm_provider when None

    Returns:
        LLM provider instance
    """
    provider = provider or settings.llm_provider

    if provider == "gigachat":
        return GigaChatLLM()
    raise ValueError(f"Unknown LLM provider: {provider}")


@lru_cache(maxsize=1)
def get_phrasing_llm() -> BaseLLM | None:
    """
    LLM used to reword questions, or None when phrasing is disabled.

    A misconfigured provider disables phrasing instead of failing the bot.
    """
    if not settings.llm_phrasing_enabled:
        return None
    try:
        return get_llm_provider()
    except ValueError as e:
        logger.warning(f"LLM phrasing disabled: {e}")
        return None


__all__ = [
    "BaseLLM",
    "LLMResponse",
    "GigaChatLLM",
    "get_llm_provider",
    "get_phrasing_llm",
]
