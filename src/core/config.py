"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class MatcherConfig:
    """Normalization settings applied when matchers are built."""

    fold_diacritics: bool = True


@dataclass(frozen=True)
class RepositoryConfig:
    """Which rule repository backend to use and where it stores data.

    ``path`` is used by the json and sqlite backends; ``uri``, ``database``
    and ``collection`` by the mongo backend.
    """

    backend: str
    path: str
    uri: Optional[str] = None
    database: str = "tgforward"
    collection: str = "rules"


@dataclass(frozen=True)
class ForwardConfig:
    """Delivery settings for forwarded messages."""

    method: str
    target_chat_id: Optional[int]
    target_username: Optional[str]

    @property
    def target(self) -> str:
        """Return the Bot API / Telethon target: a chat id or an @username."""

        if self.target_chat_id:
            return str(self.target_chat_id)
        if self.target_username:
            return f"@{self.target_username.lstrip('@')}"
        raise ValueError("either target_chat_id or target_username is required")


@dataclass(frozen=True)
class ApiConfig:
    """HTTP rule-management API settings."""

    enabled: bool
    host: str
    port: int
    token: Optional[str]
