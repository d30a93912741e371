"""Ports (interfaces) used by the core engine.

Ports define the minimal contracts for repository and forwarding adapters so
that the core can be reused with different backends.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Protocol, Sequence

from core.models import Rule
from core.rules_engine import Matcher


class RuleRepository(Protocol):
    """Durable rule store.

    Implementations raise PersistenceError on backend failures and
    NotFoundError for unknown ids. Rule order is preserved.
    """

    def list_rules(self) -> List[Rule]:
        ...

    def get_rule(self, rule_id: str) -> Rule:
        ...

    def replace_all(self, rules: Iterable[Rule]) -> List[Rule]:
        """Replace every stored rule, assigning ids to rules without one."""
        ...

    def add_rule(
        self,
        name: str,
        pattern: Optional[str] = None,
        keywords: Optional[Sequence[str]] = None,
    ) -> Rule:
        ...

    def update_rule(self, rule: Rule) -> Rule:
        ...

    def remove_rule(self, rule_id: str) -> None:
        ...


class MatcherProvider(Protocol):
    """Read access to the currently published matcher."""

    def get_current_matcher(self) -> Matcher:
        ...


class ForwarderPort(Protocol):
    """Delivery of a matched message to the target conversation."""

    async def send(self, text: str) -> None:
        ...
