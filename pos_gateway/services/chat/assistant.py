"""
Menu assistant: loads the available menu and asks the chat provider.
"""

import logging
from typing import Optional

from pos_gateway.exceptions import ValidationError
from pos_gateway.schemas import MenuChatRequest
from pos_gateway.services.chat.base import BaseChatService, ChatResult, ChatTurn, build_menu_context
from pos_gateway.services.menu import MenuService

logger = logging.getLogger(__name__)


class MenuAssistant:
    def __init__(self, chat: BaseChatService, menu: MenuService):
        self.chat = chat
        self.menu = menu

    async def answer(self, request: MenuChatRequest) -> ChatResult:
        """
        Raises:
            ValidationError: The request carries no message
            ChatServiceError: The provider is unconfigured or failed
        """
        message: Optional[str] = request.message
        if not message:
            raise ValidationError("Message is required")

        items = await self.menu.chat_items()
        categories = await self.menu.active_categories()
        menu_context = build_menu_context(items, categories)

        history = [ChatTurn(role=m.role, content=m.content) for m in request.history]
        logger.info(
            f"Menu chat ({request.lang}): {len(history)} previous turns, "
            f"{len(menu_context)} dishes in context"
        )
        return await self.chat.reply(message, history, menu_context, request.lang)
