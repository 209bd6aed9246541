"""
Best-effort forward of raw webhook events to a secondary webhook.

Failures are logged and swallowed; they never reach the user or block
the main pipeline.
"""

import httpx
from typing import Any, Dict, Optional

from shirokuma.logging_config import bot_logger as logger

FORWARD_TIMEOUT_SECONDS = 10.0


class EventForwarder:
    def __init__(self, url: str = "", client: Optional[httpx.AsyncClient] = None):
        self.url = url
        self.client = client or httpx.AsyncClient(timeout=FORWARD_TIMEOUT_SECONDS)

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    async def forward(self, event: Dict[str, Any]) -> bool:
        """Forward one event. Returns True on a 2xx response, never raises."""
        if not self.enabled:
            return False
        try:
            response = await self.client.post(self.url, json={"events": [event]})
            response.raise_for_status()
            return True
        except Exception as e:
            logger.warning(f"Secondary webhook forward failed: {e}")
            return False

    async def close(self):
        await self.client.aclose()
