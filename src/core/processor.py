"""Core message processing pipeline.

This module is integration-agnostic. It only relies on ports for matching and
forwarding, enabling other listeners or delivery adapters without changes here.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Optional

from core.models import MessageEvent
from core.ports import ForwarderPort, MatcherProvider

LOGGER = logging.getLogger(__name__)


class MessageProcessor:
    """Matches inbound messages against the current rules and forwards hits."""

    def __init__(
        self,
        matchers: MatcherProvider,
        forwarder: ForwarderPort,
        ignored_sender_ids: Iterable[int] = (),
    ) -> None:
        self._matchers = matchers
        self._forwarder = forwarder
        self._ignored_sender_ids = set(ignored_sender_ids)

    async def handle(self, event: MessageEvent) -> bool:
        """Process one message; return True when it was forwarded."""

        if event.outgoing:
            return False

        # Our own bot posts into chats we may also listen to; skip it to avoid loops.
        if event.sender_id is not None and event.sender_id in self._ignored_sender_ids:
            LOGGER.debug("Ignoring message %s from bot %s", event.message_id, event.sender_id)
            return False

        # Media-only messages without captions are ignored
        if not event.text.strip():
            return False

        # One snapshot per message: a concurrent rule update cannot change the
        # rule set halfway through evaluation.
        matcher = self._matchers.get_current_matcher()
        if not matcher.match(event.text):
            return False

        await self._forwarder.send(event.text)
        LOGGER.info(
            "Forwarded message %s from chat %s (matched: %s)",
            event.message_id,
            event.chat_id,
            "; ".join(matcher.find_matches(event.text)),
        )
        return True

    async def run(self, queue: "asyncio.Queue[Optional[MessageEvent]]") -> None:
        """Drain ``queue`` in arrival order until a ``None`` sentinel arrives."""

        while True:
            event = await queue.get()
            try:
                if event is None:
                    return
                await self.handle(event)
            except Exception:
                LOGGER.exception("Error while processing message")
            finally:
                queue.task_done()
