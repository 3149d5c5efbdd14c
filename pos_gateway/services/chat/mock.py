"""
Mock Menu Chat Service

Answers without calling a language model. Used in development mode and
in tests so the chat endpoint works with no API key.

Behavior:
    - Suggests dishes whose name appears in the message, otherwise the
      first few dishes of the menu
    - Suggestions use the same ``[name|price|id]`` markup as the real model
"""

import logging
import time
from typing import Any

from pos_gateway.services.chat.base import BaseChatService, ChatResult, ChatTurn

logger = logging.getLogger(__name__)


class MockChatService(BaseChatService):
    """
    Canned menu assistant.

    Attributes:
        max_suggestions: How many dishes to suggest when nothing matches
    """

    def __init__(self, max_suggestions: int = 3):
        self.max_suggestions = max_suggestions

    @property
    def provider_name(self) -> str:
        return "mock"

    async def reply(
        self,
        message: str,
        history: list[ChatTurn],
        menu_context: list[dict[str, Any]],
        lang: str = "ar",
    ) -> ChatResult:
        start = time.perf_counter()
        name_key = "name_ar" if lang == "ar" else "name_en"
        text = message.lower()

        matched = [
            item for item in menu_context
            if any(
                (item.get(k) or "").lower() in text
                for k in ("name_ar", "name_en")
                if item.get(k)
            )
        ]
        suggestions = matched or menu_context[: self.max_suggestions]

        if not suggestions:
            reply = "القائمة غير متاحة حالياً." if lang == "ar" else "The menu is not available right now."
        else:
            lines = [f"[{item.get(name_key)}|{item.get('price')}|{item['id']}]" for item in suggestions]
            intro = "أقترح عليك:" if lang == "ar" else "I suggest:"
            reply = "\n".join([intro, *lines])

        logger.debug(f"Mock chat: {len(suggestions)} suggestions (history={len(history)})")
        return ChatResult(
            message=reply,
            provider=self.provider_name,
            response_time_ms=(time.perf_counter() - start) * 1000,
        )
