"""SQLite rule repository adapter.

Implements the core RuleRepository port using a simple SQLite database.
"""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from typing import Iterable, Iterator, List, Optional, Sequence

from core.errors import NotFoundError, PersistenceError
from core.models import Rule, new_rule_id


class SQLiteRulesRepository:
    """Thin SQLite wrapper that satisfies the RuleRepository contract."""

    def __init__(self, db_path: str, timeout: float = 5.0) -> None:
        self._db_path = db_path
        self._timeout = timeout

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection inside one transaction, mapping backend errors."""

        try:
            conn = sqlite3.connect(self._db_path, timeout=self._timeout)
        except sqlite3.Error as exc:
            raise PersistenceError(f"failed to open rules database: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        except sqlite3.Error as exc:
            raise PersistenceError(f"rules database error: {exc}") from exc
        finally:
            conn.close()

    def init_db(self) -> None:
        """Create the rules table if it does not exist.

        Fields:
        - id: repository-assigned identifier (PRIMARY KEY)
        - position: rule order; matchers evaluate rules in this order
        - name: human label
        - pattern: regex source, NULL for keyword rules
        - keywords: JSON array of keywords, NULL for pattern rules
        """

        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS rules (
                    id TEXT PRIMARY KEY,
                    position INTEGER NOT NULL,
                    name TEXT NOT NULL,
                    pattern TEXT,
                    keywords TEXT
                )
                """
            )

    def list_rules(self) -> List[Rule]:
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT id, name, pattern, keywords FROM rules ORDER BY position"
            ).fetchall()
        return [_row_to_rule(row) for row in rows]

    def get_rule(self, rule_id: str) -> Rule:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT id, name, pattern, keywords FROM rules WHERE id = ?",
                (rule_id,),
            ).fetchone()
        if row is None:
            raise NotFoundError(f"rule not found: {rule_id}", {"id": rule_id})
        return _row_to_rule(row)

    def replace_all(self, rules: Iterable[Rule]) -> List[Rule]:
        """Swap the full rule set in a single transaction."""

        stored = [rule.ensure_id() for rule in rules]
        with self._transaction() as conn:
            conn.execute("DELETE FROM rules")
            conn.executemany(
                """
                INSERT INTO rules (id, position, name, pattern, keywords)
                VALUES (?, ?, ?, ?, ?)
                """,
                [
                    (rule.id, position, rule.name, rule.pattern, _dump_keywords(rule.keywords))
                    for position, rule in enumerate(stored)
                ],
            )
        return stored

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
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO rules (id, position, name, pattern, keywords)
                VALUES (?, (SELECT COALESCE(MAX(position), -1) + 1 FROM rules), ?, ?, ?)
                """,
                (rule.id, rule.name, rule.pattern, _dump_keywords(rule.keywords)),
            )
        return rule

    def update_rule(self, rule: Rule) -> Rule:
        with self._transaction() as conn:
            cur = conn.execute(
                "UPDATE rules SET name = ?, pattern = ?, keywords = ? WHERE id = ?",
                (rule.name, rule.pattern, _dump_keywords(rule.keywords), rule.id),
            )
            updated = cur.rowcount
        if not updated:
            raise NotFoundError(f"rule not found: {rule.id}", {"id": rule.id})
        return rule

    def remove_rule(self, rule_id: str) -> None:
        with self._transaction() as conn:
            cur = conn.execute("DELETE FROM rules WHERE id = ?", (rule_id,))
            removed = cur.rowcount
        if not removed:
            raise NotFoundError(f"rule not found: {rule_id}", {"id": rule_id})


def _dump_keywords(keywords: Optional[Sequence[str]]) -> Optional[str]:
    return json.dumps(list(keywords), ensure_ascii=False) if keywords else None


def _row_to_rule(row: sqlite3.Row) -> Rule:
    try:
        keywords = json.loads(row["keywords"]) if row["keywords"] else None
        return Rule.from_record(
            {"id": row["id"], "name": row["name"], "pattern": row["pattern"], "keywords": keywords}
        )
    except ValueError as exc:
        raise PersistenceError(f"corrupt rule {row['id']}: {exc}") from exc
