"""
Menu Chat Session

Client-side conversation state for the public menu assistant: the
message list, a loading flag and the last error. Requests go through a
``send`` coroutine, by default an HTTP POST to the gateway's
``/functions/menu-chat`` endpoint.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

import httpx

from pos_gateway.timeutils import utcnow

logger = logging.getLogger(__name__)

SendFunction = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]

UNEXPECTED_ERROR = "حدث خطأ غير متوقع"


@dataclass
class ChatMessage:
    role: str
    content: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = field(default_factory=utcnow)


def http_sender(base_url: str, timeout: float = 30.0) -> SendFunction:
    """Build a ``send`` coroutine that posts to a running gateway."""

    async def send(payload: dict[str, Any]) -> dict[str, Any]:
        async with httpx.AsyncClient(base_url=base_url, timeout=timeout) as client:
            response = await client.post("/functions/menu-chat", json=payload)
        data = response.json()
        if response.status_code >= 400 and not data.get("error"):
            raise RuntimeError(f"Failed to get response (HTTP {response.status_code})")
        return data

    return send


class MenuChatSession:
    """
    One guest's conversation with the menu assistant.

    Example:
        >>> session = MenuChatSession(http_sender("http://localhost:8001"), lang="en")
        >>> await session.send_message("Anything with chicken?")
        >>> session.messages[-1].content
    """

    def __init__(
        self,
        send: SendFunction,
        lang: str = "ar",
        menu_slug: Optional[str] = None,
    ):
        self._send = send
        self.lang = lang
        self.menu_slug = menu_slug
        self.messages: list[ChatMessage] = []
        self.is_loading = False
        self.error: Optional[str] = None

    async def send_message(self, text: str) -> Optional[ChatMessage]:
        """
        Send ``text`` and append the assistant's reply.

        Blank input, or a call while a previous one is in flight, is ignored.

        Returns:
            The assistant message, or None if nothing was sent or it failed
        """
        text = (text or "").strip()
        if not text or self.is_loading:
            return None

        self.error = None
        history = [{"role": m.role, "content": m.content} for m in self.messages]
        self.messages.append(ChatMessage(role="user", content=text))
        self.is_loading = True

        try:
            data = await self._send({
                "message": text,
                "history": history,
                "menu_slug": self.menu_slug,
                "lang": self.lang,
            })
            if data.get("error"):
                raise RuntimeError(data["error"])

            reply = ChatMessage(role="assistant", content=data.get("message") or "")
            self.messages.append(reply)
            return reply
        except Exception as e:
            self.error = str(e) or UNEXPECTED_ERROR
            logger.warning(f"Chat error: {self.error}")
            return None
        finally:
            self.is_loading = False

    def clear(self) -> None:
        self.messages = []
        self.error = None
