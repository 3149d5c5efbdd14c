"""
Menu Chat Service Factory

Usage:
    from pos_gateway.services.chat import get_chat_service

    # Returns MockChatService or GeminiChatService based on ENV_MODE
    chat = get_chat_service()
    result = await chat.reply("Something light?", [], menu_context, "en")

Environment Switching:
    - ENV_MODE=development → MockChatService (no API calls)
    - ENV_MODE=staging/production → GeminiChatService (GEMINI_API_KEY)
"""

import logging
from functools import lru_cache

from pos_gateway.core.config import get_settings
from pos_gateway.services.chat.assistant import MenuAssistant
from pos_gateway.services.chat.base import (
    BaseChatService,
    ChatResult,
    ChatTurn,
    build_menu_context,
    build_system_prompt,
)
from pos_gateway.services.chat.gemini import GeminiChatService
from pos_gateway.services.chat.mock import MockChatService
from pos_gateway.services.chat.session import ChatMessage, MenuChatSession, http_sender

logger = logging.getLogger(__name__)


@lru_cache()
def get_chat_service() -> BaseChatService:
    """
    Get the configured chat provider.

    An unconfigured Gemini key does not fail here: the endpoint answers
    503 until the key is set.
    """
    settings = get_settings()

    if settings.is_development:
        logger.info("Chat Service: Using MockChatService (development mode)")
        return MockChatService()

    logger.info(f"Chat Service: Using GeminiChatService ({settings.env_mode.value} mode)")
    return GeminiChatService()


def reset_chat_service() -> None:
    get_chat_service.cache_clear()
    logger.debug("Chat service cache cleared")


__all__ = [
    "get_chat_service",
    "reset_chat_service",
    "BaseChatService",
    "ChatResult",
    "ChatTurn",
    "ChatMessage",
    "MenuAssistant",
    "MenuChatSession",
    "MockChatService",
    "GeminiChatService",
    "build_menu_context",
    "build_system_prompt",
    "http_sender",
]
