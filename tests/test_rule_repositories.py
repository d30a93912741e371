from __future__ import annotations

import json
import os
import sqlite3
from types import SimpleNamespace

import pytest
from pymongo.errors import PyMongoError

from adapters.json_rules_repository import JsonRulesRepository
from adapters.memory_rules_repository import MemoryRulesRepository
from adapters.mongo_rules_repository import MongoRulesRepository
from adapters.sqlite_rules_repository import SQLiteRulesRepository
from core.errors import NotFoundError, PersistenceError
from core.models import Rule


class FakeDatabase:
    """Just enough of a pymongo Database for the rules repository."""

    def __init__(self, fail_on: tuple[str, ...] = ()) -> None:
        self.data: dict[str, list[dict]] = {}
        self.indexes: dict[str, set[str]] = {}
        self.fail_on = fail_on

    def __getitem__(self, name: str) -> "FakeCollection":
        return FakeCollection(name, self)

    def create_collection(self, name: str) -> "FakeCollection":
        self.data.setdefault(name, [])
        return FakeCollection(name, self)


class FakeCollection:
    def __init__(self, name: str, database: FakeDatabase) -> None:
        self.name = name
        self.database = database

    def _check(self, operation: str) -> None:
        if operation in self.database.fail_on:
            raise PyMongoError(f"{operation} failed")

    @property
    def _docs(self) -> list[dict]:
        return self.database.data.setdefault(self.name, [])

    def create_index(self, keys) -> str:
        self._check("create_index")
        self.database.indexes.setdefault(self.name, set()).add(keys[0][0])
        return f"{keys[0][0]}_1"

    def drop(self) -> None:
        self.database.data.pop(self.name, None)
        self.database.indexes.pop(self.name, None)

    def rename(self, new_name: str, dropTarget: bool = False) -> None:
        self._check("rename")
        self.database.data[new_name] = self.database.data.pop(self.name)
        self.database.indexes[new_name] = self.database.indexes.pop(self.name, set())

    def insert_one(self, doc: dict) -> None:
        self._check("insert_one")
        self._docs.append(dict(doc))

    def insert_many(self, docs: list[dict]) -> None:
        self._check("insert_many")
        self._docs.extend(dict(doc) for doc in docs)

    def _matching(self, query: dict) -> list[dict]:
        return [doc for doc in self._docs if all(doc.get(k) == v for k, v in query.items())]

    def find(self, query: dict, sort=None) -> list[dict]:
        self._check("find")
        docs = self._matching(query)
        for key, direction in reversed(sort or []):
            docs.sort(key=lambda doc: doc[key], reverse=direction < 0)
        return [dict(doc) for doc in docs]

    def find_one(self, query: dict, sort=None):
        docs = self.find(query, sort=sort)
        return docs[0] if docs else None

    def update_one(self, query: dict, changes: dict) -> SimpleNamespace:
        self._check("update_one")
        docs = self._matching(query)
        for doc in docs[:1]:
            doc.update(changes.get("$set", {}))
            for field in changes.get("$unset", {}):
                doc.pop(field, None)
        return SimpleNamespace(matched_count=len(docs[:1]))

    def delete_one(self, query: dict) -> SimpleNamespace:
        self._check("delete_one")
        docs = self._matching(query)
        if docs:
            self._docs.remove(docs[0])
        return SimpleNamespace(deleted_count=len(docs[:1]))


def _mongo(database: "FakeDatabase | None" = None) -> MongoRulesRepository:
    repository = MongoRulesRepository((database or FakeDatabase())["rules"])
    repository.init_db()
    return repository


def _sqlite(tmp_path):
    repository = SQLiteRulesRepository(str(tmp_path / "rules.db"))
    repository.init_db()
    return repository


@pytest.fixture(params=["memory", "json", "sqlite", "mongo"])
def repository(request, tmp_path):
    if request.param == "json":
        return JsonRulesRepository(str(tmp_path / "rules.json"))
    if request.param == "sqlite":
        return _sqlite(tmp_path)
    if request.param == "mongo":
        return _mongo()
    return MemoryRulesRepository()


def test_starts_empty(repository) -> None:
    assert repository.list_rules() == []


def test_add_assigns_ids_and_keeps_order(repository) -> None:
    first = repository.add_rule("first", pattern="one")
    second = repository.add_rule("second", keywords=["two", "deux"])

    assert first.id and second.id and first.id != second.id
    assert repository.list_rules() == [first, second]
    assert repository.get_rule(second.id).keywords == ("two", "deux")


def test_replace_all_keeps_given_ids(repository) -> None:
    repository.add_rule("old", pattern="old")

    stored = repository.replace_all(
        [Rule(name="a", pattern="a", id="r1"), Rule(name="b", keywords=("b",))]
    )

    assert stored[0].id == "r1"
    assert stored[1].id
    assert repository.list_rules() == stored


def test_update_replaces_in_place(repository) -> None:
    first = repository.add_rule("first", pattern="one")
    second = repository.add_rule("second", pattern="two")

    repository.update_rule(Rule(name="first v2", keywords=("uno",), id=first.id))

    rules = repository.list_rules()
    assert [rule.id for rule in rules] == [first.id, second.id]
    assert rules[0].pattern is None
    assert rules[0].keywords == ("uno",)


def test_remove_deletes_rule(repository) -> None:
    first = repository.add_rule("first", pattern="one")
    second = repository.add_rule("second", pattern="two")

    repository.remove_rule(first.id)

    assert repository.list_rules() == [second]


def test_missing_ids_raise_not_found(repository) -> None:
    with pytest.raises(NotFoundError):
        repository.get_rule("missing-id")
    with pytest.raises(NotFoundError):
        repository.remove_rule("missing-id")
    with pytest.raises(NotFoundError):
        repository.update_rule(Rule(name="x", pattern="x", id="missing-id"))


def test_json_file_survives_reload(tmp_path) -> None:
    path = str(tmp_path / "rules.json")
    rule = JsonRulesRepository(path).add_rule("Café", keywords=["crème"])

    assert JsonRulesRepository(path).list_rules() == [rule]
    with open(path, encoding="utf-8") as handle:
        data = json.load(handle)
    assert data == {"rules": [{"id": rule.id, "name": "Café", "keywords": ["crème"]}]}


def test_json_assigns_ids_to_hand_written_rules(tmp_path) -> None:
    path = tmp_path / "rules.json"
    path.write_text(json.dumps({"rules": [{"name": "alpha", "keywords": ["alpha"]}]}), encoding="utf-8")

    rules = JsonRulesRepository(str(path)).list_rules()
    reopened = JsonRulesRepository(str(path)).list_rules()

    assert len(rules) == 1
    assert rules[0].id
    assert reopened == rules
    assert json.loads(path.read_text(encoding="utf-8"))["rules"][0]["id"] == rules[0].id


def test_json_rejects_corrupt_file(tmp_path) -> None:
    path = tmp_path / "rules.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(PersistenceError):
        JsonRulesRepository(str(path))

    path.write_text(json.dumps({"rules": {"name": "x"}}), encoding="utf-8")
    with pytest.raises(PersistenceError):
        JsonRulesRepository(str(path))


@pytest.mark.parametrize(
    "record",
    [
        {"id": "x", "name": "a", "keywords": "urgent"},
        {"id": "x", "name": "a", "keywords": ["ok", 3]},
        {"id": "x", "name": "a", "pattern": ["urgent"]},
        {"id": 7, "name": "a", "pattern": "urgent"},
    ],
)
def test_json_rejects_badly_typed_rules(tmp_path, record: dict) -> None:
    path = tmp_path / "rules.json"
    path.write_text(json.dumps({"rules": [record]}), encoding="utf-8")

    with pytest.raises(PersistenceError):
        JsonRulesRepository(str(path))


def test_json_failed_write_keeps_rules(tmp_path) -> None:
    directory = tmp_path / "store"
    directory.mkdir()
    repository = JsonRulesRepository(str(directory / "rules.json"))
    rule = repository.add_rule("alpha", keywords=["alpha"])

    # A directory in place of the target file makes the atomic replace fail.
    os.remove(directory / "rules.json")
    (directory / "rules.json").mkdir()

    with pytest.raises(PersistenceError):
        repository.add_rule("beta", keywords=["beta"])
    assert repository.list_rules() == [rule]


def test_sqlite_survives_reopen(tmp_path) -> None:
    rule = _sqlite(tmp_path).add_rule("alpha", keywords=["alpha", "ünï"])

    assert _sqlite(tmp_path).list_rules() == [rule]


def test_sqlite_without_schema_raises_persistence_error(tmp_path) -> None:
    repository = SQLiteRulesRepository(str(tmp_path / "rules.db"))

    with pytest.raises(PersistenceError):
        repository.list_rules()


def test_sqlite_rejects_string_keywords(tmp_path) -> None:
    repository = _sqlite(tmp_path)
    rule = repository.add_rule("alpha", keywords=["alpha"])
    conn = sqlite3.connect(str(tmp_path / "rules.db"))
    with conn:
        conn.execute("UPDATE rules SET keywords = ? WHERE id = ?", ('"urgent"', rule.id))
    conn.close()

    with pytest.raises(PersistenceError):
        repository.list_rules()


def test_mongo_stores_rule_id_as_document_id() -> None:
    database = FakeDatabase()
    rule = _mongo(database).add_rule("alpha", keywords=["alpha"])

    assert database.data["rules"] == [
        {"_id": rule.id, "name": "alpha", "keywords": ["alpha"], "position": 0}
    ]
    assert {"name", "position"} <= database.indexes["rules"]


def test_mongo_replace_keeps_indexes_and_drops_staging() -> None:
    database = FakeDatabase()
    repository = _mongo(database)

    repository.replace_all([Rule(name="a", pattern="a", id="r1"), Rule(name="b", pattern="b", id="r2")])

    assert [doc["_id"] for doc in database.data["rules"]] == ["r1", "r2"]
    assert "rules_staging" not in database.data
    assert {"name", "position"} <= database.indexes["rules"]


def test_mongo_failed_replace_keeps_stored_rules() -> None:
    database = FakeDatabase()
    repository = _mongo(database)
    rule = repository.add_rule("alpha", keywords=["alpha"])
    database.fail_on = ("insert_many",)

    with pytest.raises(PersistenceError):
        repository.replace_all([Rule(name="beta", keywords=("beta",))])

    assert repository.list_rules() == [rule]


def test_mongo_errors_become_persistence_errors() -> None:
    repository = _mongo(FakeDatabase(fail_on=("find",)))

    with pytest.raises(PersistenceError):
        repository.list_rules()


def test_mongo_rejects_corrupt_documents() -> None:
    database = FakeDatabase()
    repository = _mongo(database)
    database.data["rules"] = [{"_id": "x", "name": "a", "keywords": "urgent", "position": 0}]

    with pytest.raises(PersistenceError):
        repository.list_rules()
