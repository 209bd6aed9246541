"""
LINE Messaging API client for replies, pushes and profile lookups.

Simple wrapper over the REST endpoints using httpx.
"""

import httpx
from typing import Any, Dict, List, Optional

from shirokuma.config import get_settings

LINE_API_BASE = "https://api.line.me/v2/bot"

# Platform limits
MAX_TEXT_LENGTH = 5000
MAX_MESSAGES_PER_REQUEST = 5


def split_text(text: str, limit: int = MAX_TEXT_LENGTH, max_parts: int = MAX_MESSAGES_PER_REQUEST) -> List[str]:
    """
    Split text into chunks the platform accepts, preferring line breaks.

    The last chunk is truncated if the text needs more than max_parts chunks.
    """
    chunks: List[str] = []
    remaining = text
    while remaining and len(chunks) < max_parts:
        if len(remaining) <= limit:
            chunks.append(remaining)
            remaining = ""
            break
        cut = remaining.rfind("\n", 0, limit)
        if cut <= 0:
            cut = limit
        chunks.append(remaining[:cut])
        remaining = remaining[cut:].lstrip("\n")

    if remaining and chunks:
        chunks[-1] = chunks[-1][: limit - 1] + "…"
    return chunks or [""]


def text_messages(text: str) -> List[Dict[str, Any]]:
    return [{"type": "text", "text": chunk} for chunk in split_text(text)]


class LineMessagingClient:
    """
    Client for the LINE Messaging API.

    One shared httpx client; call close() on shutdown.
    """

    def __init__(self, access_token: str, base_url: str = LINE_API_BASE, client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url
        self.client = client or httpx.AsyncClient(timeout=30.0)
        self._headers = {"Authorization": f"Bearer {access_token}"}

    async def reply_messages(self, reply_token: str, messages: List[Dict[str, Any]]) -> None:
        """Reply within the webhook response cycle (reply tokens are single-use)."""
        response = await self.client.post(
            f"{self.base_url}/message/reply",
            json={"replyToken": reply_token, "messages": messages[:MAX_MESSAGES_PER_REQUEST]},
            headers=self._headers
        )
        response.raise_for_status()

    async def reply_text(self, reply_token: str, text: str) -> None:
        await self.reply_messages(reply_token, text_messages(text))

    async def push_messages(self, user_id: str, messages: List[Dict[str, Any]]) -> None:
        """Push messages to a user outside the reply cycle."""
        response = await self.client.post(
            f"{self.base_url}/message/push",
            json={"to": user_id, "messages": messages[:MAX_MESSAGES_PER_REQUEST]},
            headers=self._headers
        )
        response.raise_for_status()

    async def push_text(self, user_id: str, text: str) -> None:
        await self.push_messages(user_id, text_messages(text))

    async def get_profile(self, user_id: str) -> Dict[str, Any]:
        """
        Fetch the user's profile.

        Returns:
            Dict with displayName, userId and optionally pictureUrl, statusMessage
        """
        response = await self.client.get(
            f"{self.base_url}/profile/{user_id}",
            headers=self._headers
        )
        response.raise_for_status()
        return response.json()

    async def close(self):
        """Close HTTP client."""
        await self.client.aclose()


# Global instance
_line_client: Optional[LineMessagingClient] = None


def get_line_client() -> LineMessagingClient:
    """Get or create LINE client singleton."""
    global _line_client
    if _line_client is None:
        settings = get_settings()
        _line_client = LineMessagingClient(settings.channel_access_token)
    return _line_client


async def close_line_client() -> None:
    global _line_client
    if _line_client is not None:
        await _line_client.close()
        _line_client = None
