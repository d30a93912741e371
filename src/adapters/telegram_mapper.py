"""Telegram-to-core message mapping adapter.

This keeps Telethon-specific details out of the core pipeline.
"""

from __future__ import annotations

from typing import Optional

from telethon.tl.custom import Message
from telethon.tl.types import PeerUser

from core.models import MessageEvent


def _sender_id(message: Message) -> Optional[int]:
    sender_id = getattr(message, "sender_id", None)
    if sender_id is not None:
        return sender_id
    # Channel posts may only carry from_id.
    from_id = getattr(message, "from_id", None)
    if isinstance(from_id, PeerUser):
        return from_id.user_id
    return None


def build_event(message: Message) -> MessageEvent:
    """Build a core MessageEvent from a Telethon Message."""

    return MessageEvent(
        chat_id=message.chat_id,
        message_id=message.id,
        sender_id=_sender_id(message),
        date=getattr(message, "date", None),
        # raw_text is the message text (or media caption) without formatting entities.
        text=message.raw_text or "",
        outgoing=bool(getattr(message, "out", False)),
    )
