"""Flat-file JSON rule repository adapter.

The file holds ``{"rules": [{id, name, pattern?, keywords?}, ...]}``. Writes
go to a temporary file that replaces the original, and the in-memory copy is
only updated after the write succeeded, so a failed save leaves both the file
and the served rules unchanged.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from typing import Iterable, List, Optional, Sequence

from core.errors import NotFoundError, PersistenceError
from core.models import Rule, new_rule_id

LOGGER = logging.getLogger(__name__)


class JsonRulesRepository:
    """JSON file store that satisfies the RuleRepository contract."""

    def __init__(self, path: str) -> None:
        self._path = path
        self._lock = threading.RLock()
        self._rules: List[Rule] = []
        if os.path.exists(path):
            self._rules = self._load()
        else:
            self._save([])
            LOGGER.info("Created empty rules file at %s", path)

    def _load(self) -> List[Rule]:
        try:
            with open(self._path, "r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, ValueError) as exc:
            raise PersistenceError(f"failed to load rules from {self._path}: {exc}") from exc

        records = data.get("rules") if isinstance(data, dict) else None
        if not isinstance(records, list) or not all(isinstance(r, dict) for r in records):
            raise PersistenceError(f"rules file {self._path} must hold a 'rules' list of objects")
        try:
            loaded = [Rule.from_record(record) for record in records]
        except ValueError as exc:
            raise PersistenceError(f"invalid rule in {self._path}: {exc}") from exc

        rules = [rule.ensure_id() for rule in loaded]
        # Hand-written rules get their ids once; later loads must see the same ids.
        missing = sum(1 for rule in loaded if not rule.id)
        if missing:
            self._save(rules)
            LOGGER.info("Assigned ids to %s rules in %s", missing, self._path)
        return rules

    def _save(self, rules: List[Rule]) -> None:
        payload = {"rules": [rule.to_record() for rule in rules]}
        directory = os.path.dirname(os.path.abspath(self._path))
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".rules-", suffix=".json", dir=directory)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(payload, handle, indent=2, ensure_ascii=False)
                os.replace(tmp_path, self._path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise
        except OSError as exc:
            raise PersistenceError(f"failed to write rules file {self._path}: {exc}") from exc

    def list_rules(self) -> List[Rule]:
        with self._lock:
            return list(self._rules)

    def get_rule(self, rule_id: str) -> Rule:
        with self._lock:
            return self._rules[self._index_of(rule_id)]

    def replace_all(self, rules: Iterable[Rule]) -> List[Rule]:
        stored = [rule.ensure_id() for rule in rules]
        with self._lock:
            self._save(stored)
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
            updated = self._rules + [rule]
            self._save(updated)
            self._rules = updated
        return rule

    def update_rule(self, rule: Rule) -> Rule:
        with self._lock:
            index = self._index_of(rule.id)
            updated = list(self._rules)
            updated[index] = rule
            self._save(updated)
            self._rules = updated
        return rule

    def remove_rule(self, rule_id: str) -> None:
        with self._lock:
            index = self._index_of(rule_id)
            updated = self._rules[:index] + self._rules[index + 1 :]
            self._save(updated)
            self._rules = updated

    def _index_of(self, rule_id: str) -> int:
        for index, rule in enumerate(self._rules):
            if rule.id == rule_id:
                return index
        raise NotFoundError(f"rule not found: {rule_id}", {"id": rule_id})
