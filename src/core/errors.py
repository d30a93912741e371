"""Error kinds raised by the core engine.

Every error is recoverable at the call site: the engine never retries and
never leaves a partially applied change behind.
"""

from __future__ import annotations

from typing import Any, Optional


class RuleEngineError(Exception):
    """Base class for engine errors, with optional structured metadata."""

    def __init__(self, message: str, meta: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.meta = meta


class ValidationError(RuleEngineError):
    """A rule or rule set failed validation before any persistence attempt."""


class NotFoundError(RuleEngineError):
    """A lookup or removal targeted an id the repository does not hold."""


class PersistenceError(RuleEngineError):
    """The repository backend failed (I/O, storage engine, corrupt data)."""


class ConsistencyError(RuleEngineError):
    """A persisted rule set could not be rebuilt into a matcher.

    The previous matcher keeps serving until the next successful mutation, so
    stored and in-memory rules disagree until then.
    """


class CodecError(RuleEngineError):
    """Session encode/decode preconditions were violated."""
