"""Telegram Bot API forwarding adapter.

Uses the Bot API for delivery so forwarded messages can be routed via a bot
into a chat or channel the user account does not need to post in.
"""

from __future__ import annotations

import asyncio
import json
import logging
import urllib.error
import urllib.request
from typing import Any, Optional

LOGGER = logging.getLogger(__name__)


class TelegramBotForwarder:
    """Forwarder adapter that sends messages via the Telegram Bot API."""

    def __init__(self, bot_token: str, target: str, timeout: float = 10.0) -> None:
        self._bot_token = bot_token
        self._target = target
        self._timeout = timeout

    def _endpoint(self, method: str) -> str:
        # The Bot API endpoint is deterministic and derived from the token.
        return f"https://api.telegram.org/bot{self._bot_token}/{method}"

    def _call(self, method: str, payload: Optional[dict[str, Any]] = None) -> Any:
        data = json.dumps(payload or {}).encode("utf-8")
        request = urllib.request.Request(self._endpoint(method), data=data, method="POST")
        request.add_header("Content-Type", "application/json")
        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                body = json.loads(response.read().decode("utf-8"))
        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", errors="replace")
            raise RuntimeError(f"Bot API error {e.code}: {body}") from e
        if not body.get("ok", False):
            raise RuntimeError(f"Bot API error: {body.get('description', body)}")
        return body.get("result")

    def get_bot_id(self) -> int:
        """Return the bot's own user id, used to ignore its messages."""

        me = self._call("getMe")
        LOGGER.info("Authorized bot account: %s (ID: %s)", me.get("username"), me.get("id"))
        return int(me["id"])

    async def send(self, text: str) -> None:
        """Send ``text`` to the configured chat id or @channel."""

        payload = {
            "chat_id": self._target,
            "text": text,
            "disable_web_page_preview": True,
        }
        # urllib blocks, so the request runs in a worker thread.
        await asyncio.to_thread(self._call, "sendMessage", payload)
