"""In-memory rule repository adapter.

Useful for ephemeral deployments and tests; rules are lost on restart.
"""

from __future__ import annotations

import threading
from typing import Iterable, List, Optional, Sequence

from core.errors import NotFoundError
from core.models import Rule, new_rule_id


class MemoryRulesRepository:
    """List-backed store that satisfies the RuleRepository contract."""

    def __init__(self, rules: Iterable[Rule] = ()) -> None:
        self._lock = threading.RLock()
        self._rules: List[Rule] = [rule.ensure_id() for rule in rules]

    def list_rules(self) -> List[Rule]:
        with self._lock:
            return list(self._rules)

    def get_rule(self, rule_id: str) -> Rule:
        with self._lock:
            return self._rules[self._index_of(rule_id)]

    def replace_all(self, rules: Iterable[Rule]) -> List[Rule]:
        stored = [rule.ensure_id() for rule in rules]
        with self._lock:
            self._rules = stored
            return list(stored)

    def add_rule(
        self,
        name: str,
        pattern: Optional[str] = None,
        keywords: Optional[Sequence[str]] = None,
    ) -> Rule:
        rule = Rule(
            id=new_rule_id(),
            name=name,
            pattern=pattern or None,
            keywords=tuple(keywords) if keywords else None,
        )
        with self._lock:
            self._rules.append(rule)
        return rule

    def update_rule(self, rule: Rule) -> Rule:
        with self._lock:
            self._rules[self._index_of(rule.id)] = rule
        return rule

    def remove_rule(self, rule_id: str) -> None:
        with self._lock:
            del self._rules[self._index_of(rule_id)]

    def _index_of(self, rule_id: str) -> int:
        for index, rule in enumerate(self._rules):
            if rule.id == rule_id:
                return index
        raise NotFoundError(f"rule not found: {rule_id}", {"id": rule_id})

