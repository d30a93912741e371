"""MongoDB rule repository adapter.

Each rule is one document ``{_id, position, name, pattern?, keywords?}`` where
``_id`` is the rule id and ``position`` keeps rule order.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterable, Iterator, List, Optional, Sequence

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from core.errors import NotFoundError, PersistenceError
from core.models import Rule, new_rule_id


@contextmanager
def _mongo_errors(action: str) -> Iterator[None]:
    try:
        yield
    except PyMongoError as exc:
        raise PersistenceError(f"failed to {action}: {exc}") from exc


class MongoRulesRepository:
    """Document store that satisfies the RuleRepository contract."""

    def __init__(self, collection: Collection, client: Optional[MongoClient] = None) -> None:
        self._collection = collection
        self._client = client

    @classmethod
    def connect(
        cls,
        uri: str,
        database: str,
        collection: str = "rules",
        timeout_ms: int = 5000,
    ) -> "MongoRulesRepository":
        """Open a client for ``uri``; every call fails after ``timeout_ms``."""

        client: MongoClient = MongoClient(
            uri,
            serverSelectionTimeoutMS=timeout_ms,
            connectTimeoutMS=timeout_ms,
            socketTimeoutMS=timeout_ms,
        )
        return cls(client[database][collection], client=client)

    def init_db(self) -> None:
        """Create the name and position indexes if they do not exist."""

        with _mongo_errors("create rule indexes"):
            self._collection.create_index([("name", ASCENDING)])
            self._collection.create_index([("position", ASCENDING)])

    def close(self) -> None:
        if self._client is not None:
            self._client.close()

    def list_rules(self) -> List[Rule]:
        with _mongo_errors("list rules"):
            docs = list(self._collection.find({}, sort=[("position", ASCENDING)]))
        return [_doc_to_rule(doc) for doc in docs]

    def get_rule(self, rule_id: str) -> Rule:
        with _mongo_errors("read rule"):
            doc = self._collection.find_one({"_id": rule_id})
        if doc is None:
            raise NotFoundError(f"rule not found: {rule_id}", {"id": rule_id})
        return _doc_to_rule(doc)

    def replace_all(self, rules: Iterable[Rule]) -> List[Rule]:
        """Swap the full rule set.

        The new documents go into a staging collection that is then renamed
        over the live one, so a failed insert leaves the stored rules intact.
        """

        stored = [rule.ensure_id() for rule in rules]
        staging = self._collection.database[f"{self._collection.name}_staging"]
        with _mongo_errors("replace rules"):
            staging.drop()
            if stored:
                staging.insert_many([_rule_to_doc(rule, position) for position, rule in enumerate(stored)])
            else:
                # renameCollection needs an existing source collection.
                staging.database.create_collection(staging.name)
            staging.create_index([("name", ASCENDING)])
            staging.create_index([("position", ASCENDING)])
            staging.rename(self._collection.name, dropTarget=True)
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
        with _mongo_errors("insert rule"):
            last = self._collection.find_one({}, sort=[("position", DESCENDING)])
            position = last["position"] + 1 if last else 0
            self._collection.insert_one(_rule_to_doc(rule, position))
        return rule

    def update_rule(self, rule: Rule) -> Rule:
        record = rule.to_record()
        changes: dict[str, Any] = {"$set": {k: v for k, v in record.items() if k != "id"}}
        absent = [field for field in ("pattern", "keywords") if field not in record]
        if absent:
            changes["$unset"] = {field: "" for field in absent}
        with _mongo_errors("update rule"):
            result = self._collection.update_one({"_id": rule.id}, changes)
        if not result.matched_count:
            raise NotFoundError(f"rule not found: {rule.id}", {"id": rule.id})
        return rule

    def remove_rule(self, rule_id: str) -> None:
        with _mongo_errors("delete rule"):
            result = self._collection.delete_one({"_id": rule_id})
        if not result.deleted_count:
            raise NotFoundError(f"rule not found: {rule_id}", {"id": rule_id})


def _rule_to_doc(rule: Rule, position: int) -> dict[str, Any]:
    doc = rule.to_record()
    doc["_id"] = doc.pop("id")
    doc["position"] = position
    return doc


def _doc_to_rule(doc: dict[str, Any]) -> Rule:
    record = {key: value for key, value in doc.items() if key not in ("_id", "position")}
    record["id"] = doc.get("_id")
    try:
        return Rule.from_record(record)
    except ValueError as exc:
        raise PersistenceError(f"corrupt rule document {doc.get('_id')}: {exc}") from exc
