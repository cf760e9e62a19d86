"""
GigaChat LLM provider.
"""

import logging

from gigachat import GigaChat
from gigachat.models import Chat, Messages, MessagesRole

from atelier_bot.config import settings
from atelier_bot.integrations.llm.base import BaseLLM, LLMResponse

logger = logging.getLogger(__name__)


class GigaChatLLM(BaseLLM):
    """GigaChat provider using the async client."""

    def __init__(
        self,
        credentials: str | None = None,
        scope: str | None = None,
    ):
        self.credentials = credentials or settings.gigachat_credentials
        self.scope = scope or settings.gigachat_scope

        if not self.credentials:
            raise ValueError(
                "GigaChat credentials not provided. "
                "Set GIGACHAT_CREDENTIALS in .env file."
            )

    def _get_client(self) -> GigaChat:
        return GigaChat(
            credentials=self.credentials,
            scope=self.scope,
            verify_ssl_certs=False,
        )

    async def generate(
        self,
        prompt: str,
        system_prompt: str | None = None,
        temperature: float = 0.3,
        max_tokens: int = 256,
    ) -> LLMResponse:
        messages = []
        if system_prompt:
            messages.append(Messages(role=MessagesRole.SYSTEM, content=system_prompt))
        messages.append(Messages(role=MessagesRole.USER, content=prompt))

        async with self._get_client() as client:
            response = await client.achat(
                Chat(messages=messages, temperature=temperature, max_tokens=max_tokens)
            )

        logger.debug(f"GigaChat used {response.usage.total_tokens if response.usage else '?'} tokens")
        return LLMResponse(
            content=response.choices[0].message.content,
            tokens_used=response.usage.total_tokens if response.usage else None,
            model=response.model,
        )

    @property
    def name(self) -> str:
        return "gigachat"
