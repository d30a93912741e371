"""Telegram user-account forwarding adapter.

Sends forwarded messages through the same Telethon client that listens, for
setups without a bot.
"""

from __future__ import annotations

from typing import Union


class TelegramClientForwarder:
    """Forwarder adapter that posts to the target as the logged-in user."""

    def __init__(self, client, target: Union[int, str]) -> None:
        self._client = client
        self._target = target

    async def send(self, text: str) -> None:
        """Send the message text to the target chat."""

        await self._client.send_message(self._target, text, link_preview=False)
