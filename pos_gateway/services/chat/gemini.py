"""
Gemini Menu Chat Service

Calls Google's Gemini ``generateContent`` REST endpoint with httpx.

Conversation layout sent to the model:
    1. user:  system prompt with the menu as JSON
    2. model: seeded greeting
    3. history turns (guest → user, anything else → model)
    4. user:  current message
"""

import logging
import time
from typing import Any, Optional

import httpx

from pos_gateway.core.config import get_settings
from pos_gateway.exceptions import ChatServiceError
from pos_gateway.services.chat.base import (
    GREETING,
    BaseChatService,
    ChatResult,
    ChatTurn,
    build_system_prompt,
    fallback_reply,
)

logger = logging.getLogger(__name__)


def build_contents(
    message: str,
    history: list[ChatTurn],
    menu_context: list[dict[str, Any]],
    lang: str = "ar",
) -> list[dict[str, Any]]:
    contents = [
        {"role": "user", "parts": [{"text": build_system_prompt(menu_context, lang)}]},
        {"role": "model", "parts": [{"text": GREETING}]},
    ]
    for turn in history:
        contents.append({
            "role": "user" if turn.role == "user" else "model",
            "parts": [{"text": turn.content}],
        })
    contents.append({"role": "user", "parts": [{"text": message}]})
    return contents


def extract_text(data: dict[str, Any]) -> Optional[str]:
    """First text part of the first candidate, if any."""
    try:
        return data["candidates"][0]["content"]["parts"][0]["text"] or None
    except (KeyError, IndexError, TypeError):
        return None


class GeminiChatService(BaseChatService):
    """
    Gemini implementation of the menu assistant.

    Example:
        >>> service = GeminiChatService(api_key="...")
        >>> result = await service.reply("Something spicy?", [], menu_context, "en")
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.gemini_api_key
        self.model = model or settings.gemini_model
        self.base_url = (base_url or settings.gemini_base_url).rstrip("/")
        self.max_output_tokens = settings.chat_max_output_tokens
        self.temperature = settings.chat_temperature
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

        if not self.api_key:
            logger.error("Gemini API key is not configured")

    @property
    def provider_name(self) -> str:
        return "gemini"

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def reply(
        self,
        message: str,
        history: list[ChatTurn],
        menu_context: list[dict[str, Any]],
        lang: str = "ar",
    ) -> ChatResult:
        if not self.is_configured:
            raise ChatServiceError("Service temporarily unavailable")

        start = time.perf_counter()
        url = f"{self.base_url}/models/{self.model}:generateContent"
        body = {
            "contents": build_contents(message, history, menu_context, lang),
            "generationConfig": {
                "maxOutputTokens": self.max_output_tokens,
                "temperature": self.temperature,
            },
        }

        try:
            response = await self._client.post(url, params={"key": self.api_key}, json=body)
        except httpx.HTTPError as e:
            logger.error(f"Gemini request failed: {e}")
            raise ChatServiceError("AI service temporarily unavailable", detail=str(e))

        if response.status_code >= 400:
            logger.error(f"Gemini API error: {response.status_code} {response.text[:500]}")
            raise ChatServiceError(
                "AI service temporarily unavailable",
                detail=f"HTTP {response.status_code}",
            )

        text = extract_text(response.json()) or fallback_reply(lang)
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(f"Gemini reply in {elapsed_ms:.0f}ms ({len(text)} chars)")

        return ChatResult(message=text, provider=self.provider_name, response_time_ms=elapsed_ms)

    async def close(self) -> None:
        await self._client.aclose()
