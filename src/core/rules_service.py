"""Rule service: repository mutations plus matcher rebuilds.

The service owns the single reference to the current Matcher. Every mutation
follows the same order:
1) Validate the change (no repository access on failure)
2) Persist it through the repository
3) Rebuild a Matcher from the full stored rule list
4) Publish the new Matcher in one step

Readers therefore see either the pre-mutation or the post-mutation matcher,
never an intermediate one. Mutations are serialized by a writer lock; two
overlapping callers are applied in lock-acquisition order, with no fairness
guarantee, and the later one wins.
"""

from __future__ import annotations

import logging
import threading
from typing import Iterable, List, Optional, Sequence

from core.config import MatcherConfig
from core.errors import ConsistencyError, ValidationError
from core.models import Rule
from core.ports import RuleRepository
from core.rules_engine import Matcher, build_matcher, validate_rule

LOGGER = logging.getLogger(__name__)


def _draft(
    name: str,
    pattern: Optional[str],
    keywords: Optional[Sequence[str]],
    rule_id: str = "",
) -> Rule:
    return Rule(
        id=rule_id,
        name=(name or "").strip(),
        pattern=pattern or None,
        keywords=tuple(keywords) if keywords else None,
    )


class RuleService:
    """Validates, persists and publishes rule changes."""

    def __init__(self, repository: RuleRepository, config: Optional[MatcherConfig] = None) -> None:
        self._repository = repository
        self._config = config or MatcherConfig()
        self._write_lock = threading.Lock()
        self._read_lock = threading.Lock()
        # Stored rules must be valid at startup; a bad store fails fast here.
        self._current = build_matcher(
            repository.list_rules(),
            fold_diacritics=self._config.fold_diacritics,
        )
        LOGGER.info("Matcher initialized with %s rules", len(self._current))

    def get_current_matcher(self) -> Matcher:
        with self._read_lock:
            return self._current

    def get_rules(self) -> List[Rule]:
        return self._repository.list_rules()

    def get_rule(self, rule_id: str) -> Rule:
        return self._repository.get_rule(rule_id)

    def update_rules(self, rules: Iterable[Rule]) -> List[Rule]:
        """Replace the whole rule set after validating every rule."""

        rules = list(rules)
        if not rules:
            LOGGER.warning("Rejected empty rule set")
            raise ValidationError("at least one rule is required")

        seen_ids: set[str] = set()
        for index, rule in enumerate(rules):
            self._validate(rule, index)
            if rule.id:
                if rule.id in seen_ids:
                    raise ValidationError(f"duplicate rule id: {rule.id}", {"id": rule.id})
                seen_ids.add(rule.id)

        with self._write_lock:
            stored = self._repository.replace_all(rules)
            self._rebuild(stored)
        return stored

    def add_rule(
        self,
        name: str,
        pattern: Optional[str] = None,
        keywords: Optional[Sequence[str]] = None,
    ) -> Rule:
        draft = _draft(name, pattern, keywords)
        self._validate(draft)

        with self._write_lock:
            rule = self._repository.add_rule(draft.name, draft.pattern, draft.keywords)
            self._rebuild(self._repository.list_rules())
        return rule

    def update_rule(
        self,
        rule_id: str,
        name: str,
        pattern: Optional[str] = None,
        keywords: Optional[Sequence[str]] = None,
    ) -> Rule:
        """Replace one rule by id, keeping its position."""

        if not rule_id:
            raise ValidationError("rule id is required")
        draft = _draft(name, pattern, keywords, rule_id=rule_id)
        self._validate(draft)

        with self._write_lock:
            rule = self._repository.update_rule(draft)
            self._rebuild(self._repository.list_rules())
        return rule

    def remove_rule(self, rule_id: str) -> None:
        if not rule_id:
            raise ValidationError("rule id is required")

        with self._write_lock:
            self._repository.remove_rule(rule_id)
            self._rebuild(self._repository.list_rules())

    def _validate(self, rule: Rule, index: Optional[int] = None) -> None:
        try:
            validate_rule(rule, index=index, fold_diacritics=self._config.fold_diacritics)
        except ValidationError as exc:
            LOGGER.warning("Rejected rule change: %s", exc.message)
            raise

    def _rebuild(self, rules: Iterable[Rule]) -> None:
        # Caller holds the write lock, so the version counter cannot race.
        version = self._current.version + 1
        try:
            matcher = build_matcher(
                rules,
                fold_diacritics=self._config.fold_diacritics,
                version=version,
            )
        except ValidationError as exc:
            LOGGER.error(
                "Stored rules failed to compile; still serving matcher v%s: %s",
                self._current.version,
                exc.message,
            )
            raise ConsistencyError(
                f"rules were saved but could not be applied: {exc.message}",
                exc.meta,
            ) from exc

        with self._read_lock:
            self._current = matcher
        LOGGER.info("Published matcher v%s with %s rules", matcher.version, len(matcher))
