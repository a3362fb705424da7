import copy
import itertools
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Dict, List, Optional
from unittest.mock import patch

import pytest
from pymongo.errors import DuplicateKeyError

from study_srs.database import db_manager

_MISSING = object()
_ids = itertools.count(1)


def _get_path(document: Dict[str, Any], path: str) -> Any:
    value: Any = document
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return value


def _set_path(document: Dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    target = document
    for part in parts[:-1]:
        target = target.setdefault(part, {})
    target[parts[-1]] = value


def _equals(value: Any, expected: Any) -> bool:
    if value is _MISSING:
        return expected is None
    if isinstance(value, list) and not isinstance(expected, list):
        return expected in value
    return value == expected


def _compare(value: Any, op: str, arg: Any) -> bool:
    if value is _MISSING or value is None:
        return False
    if op == "$gt":
        return value > arg
    if op == "$gte":
        return value >= arg
    if op == "$lt":
        return value < arg
    return value <= arg


def _apply_operator(value: Any, op: str, arg: Any) -> bool:
    if op == "$eq":
        return _equals(value, arg)
    if op == "$ne":
        return not _equals(value, arg)
    if op in ("$gt", "$gte", "$lt", "$lte"):
        return _compare(value, op, arg)
    if op == "$in":
        return any(_equals(value, candidate) for candidate in arg)
    if op == "$nin":
        return not any(_equals(value, candidate) for candidate in arg)
    if op == "$exists":
        return (value is not _MISSING) == bool(arg)
    raise NotImplementedError(op)


def matches(document: Dict[str, Any], query: Optional[Dict[str, Any]]) -> bool:
    for key, condition in (query or {}).items():
        if key == "$and":
            if not all(matches(document, clause) for clause in condition):
                return False
        elif key == "$or":
            if not any(matches(document, clause) for clause in condition):
                return False
        elif key == "$nor":
            if any(matches(document, clause) for clause in condition):
                return False
        else:
            value = _get_path(document, key)
            if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
                if not all(_apply_operator(value, op, arg) for op, arg in condition.items()):
                    return False
            elif not _equals(value, condition):
                return False
    return True


def _project(document: Dict[str, Any], projection: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    document = copy.deepcopy(document)
    if not projection:
        return document
    keep = {key for key, flag in projection.items() if flag}
    keep.add("_id")
    return {key: value for key, value in document.items() if key in keep}


class FakeCursor:
    def __init__(self, documents: List[Dict[str, Any]]):
        self._documents = documents
        self._skip = 0
        self._limit = 0

    def sort(self, key_or_list, direction=None):
        keys = key_or_list if isinstance(key_or_list, list) else [(key_or_list, direction or 1)]
        for key, order in reversed(keys):
            self._documents.sort(
                key=lambda doc, key=key: (
                    _get_path(doc, key) not in (_MISSING, None),
                    _get_path(doc, key) if _get_path(doc, key) not in (_MISSING, None) else 0,
                ),
                reverse=order == -1,
            )
        return self

    def skip(self, count: int):
        self._skip = count
        return self

    def limit(self, count: int):
        self._limit = count
        return self

    def _window(self) -> List[Dict[str, Any]]:
        documents = self._documents[self._skip :]
        if self._limit:
            documents = documents[: self._limit]
        return documents

    async def to_list(self, length: Optional[int] = None):
        documents = self._window()
        return documents if length is None else documents[:length]

    def __aiter__(self):
        self._iter = iter(self._window())
        return self

    async def __anext__(self):
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration


class FakeCollection:
    """In-memory stand-in for an `AsyncIOMotorCollection`."""

    def __init__(self, name: str):
        self.name = name
        self.documents: Dict[Any, Dict[str, Any]] = {}
        self.failures: Dict[str, Exception] = {}
        self.calls: List[str] = []

    def fail(self, method: str, error: Exception) -> None:
        self.failures[method] = error

    def _check(self, method: str) -> None:
        self.calls.append(method)
        if method in self.failures:
            raise self.failures[method]

    def _matching(self, query) -> List[Dict[str, Any]]:
        return [doc for doc in self.documents.values() if matches(doc, query)]

    async def insert_one(self, document: Dict[str, Any]):
        self._check("insert_one")
        document = copy.deepcopy(document)
        document.setdefault("_id", f"oid_{next(_ids)}")
        if document["_id"] in self.documents:
            raise DuplicateKeyError(f"E11000 duplicate key error collection: {self.name}")
        self.documents[document["_id"]] = document
        return SimpleNamespace(inserted_id=document["_id"], acknowledged=True)

    async def find_one(self, query=None, projection=None):
        self._check("find_one")
        found = self._matching(query)
        return _project(found[0], projection) if found else None

    def find(self, query=None, projection=None):
        self._check("find")
        return FakeCursor([_project(doc, projection) for doc in self._matching(query)])

    async def count_documents(self, query):
        self._check("count_documents")
        return len(self._matching(query))

    def _apply_update(self, document: Dict[str, Any], update: Dict[str, Any], inserting: bool) -> None:
        for path, value in update.get("$set", {}).items():
            _set_path(document, path, copy.deepcopy(value))
        for path, amount in update.get("$inc", {}).items():
            current = _get_path(document, path)
            _set_path(document, path, (0 if current is _MISSING else current) + amount)
        if inserting:
            for path, value in update.get("$setOnInsert", {}).items():
                _set_path(document, path, copy.deepcopy(value))

    def _update(self, query, update, upsert: bool):
        found = self._matching(query)
        if found:
            self._apply_update(found[0], update, inserting=False)
            return SimpleNamespace(matched_count=1, modified_count=1, upserted_id=None)
        if upsert:
            document = {k: v for k, v in query.items() if not k.startswith("$") and not isinstance(v, dict)}
            self._apply_update(document, update, inserting=True)
            document.setdefault("_id", f"oid_{next(_ids)}")
            self.documents[document["_id"]] = document
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=document["_id"])
        return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)

    async def update_one(self, query, update, upsert: bool = False):
        self._check("update_one")
        return self._update(query, update, upsert)

    async def delete_one(self, query):
        self._check("delete_one")
        found = self._matching(query)
        if found:
            del self.documents[found[0]["_id"]]
        return SimpleNamespace(deleted_count=len(found[:1]))

    async def delete_many(self, query):
        self._check("delete_many")
        found = self._matching(query)
        for document in found:
            del self.documents[document["_id"]]
        return SimpleNamespace(deleted_count=len(found))

    async def bulk_write(self, requests, ordered: bool = True):
        self._check("bulk_write")
        matched = upserted = 0
        for request in requests:
            result = self._update(request._filter, request._doc, request._upsert)
            matched += result.matched_count
            upserted += 1 if result.upserted_id is not None else 0
        return SimpleNamespace(matched_count=matched, modified_count=matched, upserted_count=upserted)

    async def create_index(self, keys, **options):
        self._check("create_index")
        return options.get("name", "index")


class FakeDatabase:
    def __init__(self):
        self.collections: Dict[str, FakeCollection] = {}

    def get_collection(self, name: str) -> FakeCollection:
        if name not in self.collections:
            self.collections[name] = FakeCollection(name)
        return self.collections[name]

    def __getitem__(self, name: str) -> FakeCollection:
        return self.get_collection(name)


@pytest.fixture
def fake_db():
    database = FakeDatabase()
    with patch.object(db_manager, "get_collection", side_effect=database.get_collection):
        yield database


@pytest.fixture
def now():
    return datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def days():
    return lambda n: timedelta(days=n)
