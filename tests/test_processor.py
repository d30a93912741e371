from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Optional

from core.models import MessageEvent, Rule
from core.processor import MessageProcessor
from core.rules_engine import Matcher, build_matcher


class FakeMatchers:
    def __init__(self, matcher: Matcher) -> None:
        self.matcher = matcher
        self.calls = 0

    def get_current_matcher(self) -> Matcher:
        self.calls += 1
        return self.matcher


class FakeForwarder:
    def __init__(self, fail_on: Optional[str] = None) -> None:
        self.sent: list[str] = []
        self._fail_on = fail_on

    async def send(self, text: str) -> None:
        if text == self._fail_on:
            raise RuntimeError("delivery failed")
        self.sent.append(text)


def _event(text: str, *, message_id: int = 1, sender_id: Optional[int] = 42, outgoing: bool = False) -> MessageEvent:
    return MessageEvent(
        chat_id=-100123,
        message_id=message_id,
        sender_id=sender_id,
        date=datetime(2024, 1, 1, tzinfo=timezone.utc),
        text=text,
        outgoing=outgoing,
    )


def _processor(forwarder: FakeForwarder, ignored: tuple[int, ...] = ()) -> MessageProcessor:
    matcher = build_matcher([Rule(name="alert", keywords=("urgent", "alert"))])
    return MessageProcessor(FakeMatchers(matcher), forwarder, ignored_sender_ids=ignored)


def test_forwards_matching_message_verbatim() -> None:
    forwarder = FakeForwarder()

    forwarded = asyncio.run(_processor(forwarder).handle(_event("URGENT: Alert raised!")))

    assert forwarded
    assert forwarder.sent == ["URGENT: Alert raised!"]


def test_skips_non_matching_message() -> None:
    forwarder = FakeForwarder()

    assert not asyncio.run(_processor(forwarder).handle(_event("just urgent")))
    assert forwarder.sent == []


def test_skips_outgoing_messages() -> None:
    forwarder = FakeForwarder()

    assert not asyncio.run(_processor(forwarder).handle(_event("urgent alert", outgoing=True)))
    assert forwarder.sent == []


def test_skips_messages_from_ignored_senders() -> None:
    forwarder = FakeForwarder()
    processor = _processor(forwarder, ignored=(777,))

    assert not asyncio.run(processor.handle(_event("urgent alert", sender_id=777)))
    assert asyncio.run(processor.handle(_event("urgent alert", sender_id=None)))
    assert forwarder.sent == ["urgent alert"]


def test_skips_blank_text_without_reading_matcher() -> None:
    matchers = FakeMatchers(build_matcher([Rule(name="any", pattern=".*")]))
    forwarder = FakeForwarder()
    processor = MessageProcessor(matchers, forwarder)

    assert not asyncio.run(processor.handle(_event("   ")))
    assert matchers.calls == 0


def test_run_drains_queue_in_order_and_survives_failures() -> None:
    forwarder = FakeForwarder(fail_on="urgent alert 2")
    processor = _processor(forwarder)

    async def scenario() -> None:
        queue: asyncio.Queue = asyncio.Queue()
        for index in range(1, 4):
            queue.put_nowait(_event(f"urgent alert {index}", message_id=index))
        queue.put_nowait(_event("unrelated", message_id=4))
        queue.put_nowait(None)
        await asyncio.wait_for(processor.run(queue), timeout=5)
        assert queue.empty()

    asyncio.run(scenario())

    assert forwarder.sent == ["urgent alert 1", "urgent alert 3"]
