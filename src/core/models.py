"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any integration-specific types.
"""

from __future__ import annotations

import hashlib
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Optional, Tuple


@dataclass(frozen=True)
class Rule:
    """A named matching criterion: a regex pattern or a keyword conjunction.

    An empty ``id`` means the repository has not assigned one yet.
    """

    name: str
    pattern: Optional[str] = None
    keywords: Optional[Tuple[str, ...]] = None
    id: str = ""

    def ensure_id(self) -> "Rule":
        """Return this rule, or a copy carrying a freshly generated id."""

        return self if self.id else replace(self, id=new_rule_id())

    def to_record(self) -> dict[str, Any]:
        """Return the persisted layout, omitting absent fields."""

        record: dict[str, Any] = {"id": self.id, "name": self.name}
        if self.pattern:
            record["pattern"] = self.pattern
        if self.keywords:
            record["keywords"] = list(self.keywords)
        return record

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Rule":
        """Build a rule from a persisted or request record.

        Raises ValueError when a field has the wrong type, so a stray string
        in ``keywords`` is not split into single-letter keywords.
        """

        for field in ("id", "name", "pattern"):
            value = record.get(field)
            if value is not None and not isinstance(value, str):
                raise ValueError(f"rule field '{field}' must be a string")
        keywords = record.get("keywords") or None
        if keywords is not None and (
            not isinstance(keywords, list) or not all(isinstance(k, str) for k in keywords)
        ):
            raise ValueError("rule field 'keywords' must be a list of strings")
        return cls(
            id=record.get("id") or "",
            name=record.get("name") or "",
            pattern=record.get("pattern") or None,
            keywords=tuple(keywords) if keywords else None,
        )


def new_rule_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class MessageEvent:
    """Minimal inbound message used by the core processing pipeline."""

    chat_id: int
    message_id: int
    sender_id: Optional[int]
    date: Optional[datetime]
    text: str
    outgoing: bool = False


@dataclass(frozen=True)
class SessionData:
    """Secret and address material of an authenticated protocol session."""

    dc_id: int
    address: str
    auth_key: bytes

    @property
    def auth_key_id(self) -> bytes:
        # Key fingerprint: lower 64 bits of the SHA-1 digest.
        return hashlib.sha1(self.auth_key).digest()[12:20]

    @property
    def host(self) -> str:
        host, _, _ = self.address.rpartition(":")
        return host.strip("[]")

    @property
    def port(self) -> int:
        return int(self.address.rpartition(":")[2])
