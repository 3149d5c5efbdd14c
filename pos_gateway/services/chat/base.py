"""
Menu Chat Service Abstract Base Class

Defines the interface contract for the language model behind the public
menu assistant. Both MockChatService and GeminiChatService implement it,
and both receive the same menu context and conversation.

Design Pattern: Strategy Pattern
    - Development answers from a canned assistant, no API key needed
    - Staging/production call the Gemini generateContent API
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

GREETING = "مرحباً! أنا مساعدك الذكي. كيف يمكنني مساعدتك اليوم؟"

FALLBACK_REPLY = {
    "ar": "عذراً، حدث خطأ.",
    "en": "Sorry, an error occurred.",
}


@dataclass
class ChatTurn:
    """One message of the conversation ("user" or "assistant")."""
    role: str
    content: str


@dataclass
class ChatResult:
    """
    Reply produced by a chat provider.

    Attributes:
        message: Assistant text; dish suggestions use ``[name|price|id]``
        provider: Provider that produced the reply
        response_time_ms: Time spent waiting on the provider
    """
    message: str
    provider: str
    response_time_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "success": True}


# =============================================================================
# PROMPT
# =============================================================================

def build_menu_context(
    menu_items: list[dict[str, Any]],
    categories: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    """Reduce menu rows to what the assistant needs, with the Arabic category name."""
    category_map = {c["id"]: c for c in categories}
    context = []
    for item in menu_items:
        category = category_map.get(item.get("category_id")) or {}
        context.append({
            "id": item["id"],
            "name_ar": item.get("name_ar"),
            "name_en": item.get("name_en"),
            "price": item.get("price"),
            "category_ar": category.get("name_ar") or "",
        })
    return context


def build_system_prompt(menu_context: list[dict[str, Any]], lang: str = "ar") -> str:
    reply_language = "أجب باللغة العربية" if lang == "ar" else "Respond in English"
    menu_json = json.dumps(menu_context, ensure_ascii=False, indent=2)
    return (
        "أنت مساعد ذكي لمطعم. مهمتك مساعدة العملاء في اختيار الأطباق.\n\n"
        "قائمة الأطباق المتاحة:\n"
        f"{menu_json}\n\n"
        "التعليمات:\n"
        "1. رحب بالعميل بشكل ودي\n"
        "2. اقترح أطباق من القائمة فقط\n"
        "3. عند اقتراح طبق، اكتبه بهذا الشكل: [اسم_الطبق|السعر|معرف_الطبق]\n"
        "4. كن مختصراً وودوداً\n"
        f"5. {reply_language}"
    )


class BaseChatService(ABC):
    """
    Abstract base class for menu chat providers.

    Raises from ``reply``:
        ChatServiceError: The provider is not configured or failed
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name (e.g. "mock", "gemini")."""
        pass

    @property
    def is_configured(self) -> bool:
        return True

    @abstractmethod
    async def reply(
        self,
        message: str,
        history: list[ChatTurn],
        menu_context: list[dict[str, Any]],
        lang: str = "ar",
    ) -> ChatResult:
        """
        Answer ``message`` given the previous turns and the available menu.

        Args:
            message: Current guest message
            history: Earlier turns, oldest first, not including ``message``
            menu_context: Output of ``build_menu_context``
            lang: "ar" or "en"
        """
        pass

    async def close(self) -> None:
        return None


def fallback_reply(lang: Optional[str]) -> str:
    return FALLBACK_REPLY["ar"] if lang == "ar" else FALLBACK_REPLY["en"]
