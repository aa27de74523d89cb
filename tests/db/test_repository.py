"""Entity repository tests against a fake motor collection."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest
from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, OperationFailure

from chainview.commons.entity_kinds import ACCOUNT, BLOCK, NUMERIC_COLLATION
from chainview.commons.errors import Conflict, NotFound, QueryExecutionError, Timeout
from chainview.db.repository import EntityRepository
from chainview.query.parser import parse
from chainview.query.planner import plan_get, plan_list


class FakeCursor:
    def __init__(self, docs, delay=0.0, error=None):
        self.docs = docs
        self.delay = delay
        self.error = error

    async def to_list(self, length=None):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.docs[:length] if length else self.docs)


class FakeCollection:
    def __init__(self, docs=None, delay=0.0, error=None):
        self.docs = list(docs or [])
        self.delay = delay
        self.error = error
        self.aggregate_calls = []

    def aggregate(self, pipeline, **kwargs):
        self.aggregate_calls.append((pipeline, kwargs))
        return FakeCursor(self.docs, delay=self.delay, error=self.error)

    async def insert_one(self, document):
        if self.error is not None:
            raise self.error
        document.setdefault("_id", ObjectId())
        self.docs.append(document)
        return SimpleNamespace(inserted_id=document["_id"])

    async def find_one(self, filter):
        for doc in self.docs:
            if all(doc.get(k) == v for k, v in filter.items()):
                return doc
        return None

    async def find_one_and_update(self, filter, update, return_document=None):
        if self.error is not None:
            raise self.error
        doc = await self.find_one(filter)
        if doc is not None:
            doc.update(update["$set"])
        return doc

    async def delete_many(self, filter):
        kept = [doc for doc in self.docs if not all(doc.get(k) == v for k, v in filter.items())]
        deleted = len(self.docs) - len(kept)
        self.docs = kept
        return SimpleNamespace(deleted_count=deleted)


class FakeConnection:
    def __init__(self, **collections):
        self.collections = collections

    def collection(self, name):
        return self.collections.setdefault(name, FakeCollection())


def test_execute_sends_one_bounded_aggregation_with_collation():
    accounts = FakeCollection([{"_id": ObjectId(), "name": "alice", "eos_balance": "12.0000"}])
    repository = EntityRepository(FakeConnection(Accounts=accounts), timeout=2)

    rows = asyncio.run(repository.execute(plan_list(parse({"sort": "-eos_balance"}), ACCOUNT)))

    assert [row["name"] for row in rows] == ["alice"]
    pipeline, options = accounts.aggregate_calls[0]
    assert pipeline[-1] == {"$limit": 30}
    assert options == {"maxTimeMS": 2000, "collation": NUMERIC_COLLATION}


def test_execute_without_collation_for_plain_kinds():
    blocks = FakeCollection()
    repository = EntityRepository(FakeConnection(Blocks=blocks))
    asyncio.run(repository.execute(plan_list(parse({}), BLOCK)))
    assert "collation" not in blocks.aggregate_calls[0][1]


def test_execute_one_not_found():
    repository = EntityRepository(FakeConnection(Blocks=FakeCollection()))
    with pytest.raises(NotFound):
        asyncio.run(repository.execute_one(plan_get("42", BLOCK)))


def test_storage_failure_becomes_query_execution_error():
    failing = FakeCollection(error=OperationFailure("bad $lookup"))
    repository = EntityRepository(FakeConnection(Blocks=failing))
    with pytest.raises(QueryExecutionError) as exc_info:
        asyncio.run(repository.execute(plan_list(parse({}), BLOCK)))
    assert isinstance(exc_info.value.cause, OperationFailure)
    assert exc_info.value.to_dict() == {"code": "query_execution_error", "message": "Query could not be executed."}


def test_deadline_becomes_timeout():
    slow = FakeCollection(delay=0.5)
    repository = EntityRepository(FakeConnection(Accounts=slow), timeout=0.01)
    with pytest.raises(Timeout) as exc_info:
        asyncio.run(repository.execute(plan_list(parse({}), ACCOUNT)))
    assert exc_info.value.status == 504
    assert exc_info.value.to_dict()["retryable"] is True


def test_insert_find_and_delete():
    users = FakeCollection()
    repository = EntityRepository(FakeConnection(users=users))

    stored = asyncio.run(repository.insert("users", {"email": "a@b.co"}))
    assert isinstance(stored["_id"], ObjectId)
    assert asyncio.run(repository.find_one_by("users", {"email": "a@b.co"}))["_id"] == stored["_id"]
    assert asyncio.run(repository.delete_by("users", {"_id": stored["_id"]})) == 1
    assert asyncio.run(repository.find_one_by("users", {"email": "a@b.co"})) is None


def test_duplicate_key_becomes_conflict():
    users = FakeCollection(error=DuplicateKeyError("E11000 duplicate key"))
    repository = EntityRepository(FakeConnection(users=users))
    with pytest.raises(Conflict):
        asyncio.run(repository.insert("users", {"email": "a@b.co"}))


def test_update_returns_the_changed_document():
    user_id = ObjectId()
    users = FakeCollection([{"_id": user_id, "email": "a@b.co", "name": "A"}])
    repository = EntityRepository(FakeConnection(users=users))

    updated = asyncio.run(repository.update_by("users", {"_id": user_id}, {"name": "B"}))
    assert updated == {"_id": user_id, "email": "a@b.co", "name": "B"}
    assert asyncio.run(repository.update_by("users", {"_id": ObjectId()}, {"name": "C"})) is None


def test_update_asks_for_the_document_after_the_change():
    seen = {}

    class RecordingCollection(FakeCollection):
        async def find_one_and_update(self, filter, update, return_document=None):
            seen.update(filter=filter, update=update, return_document=return_document)
            return None

    repository = EntityRepository(FakeConnection(users=RecordingCollection()))
    asyncio.run(repository.update_by("users", {"email": "a@b.co"}, {"name": "B"}))
    assert seen == {"filter": {"email": "a@b.co"}, "update": {"$set": {"name": "B"}}, "return_document": ReturnDocument.AFTER}


def test_update_to_a_taken_unique_value_is_a_conflict():
    users = FakeCollection(error=DuplicateKeyError("E11000 duplicate key"))
    repository = EntityRepository(FakeConnection(users=users))
    with pytest.raises(Conflict):
        asyncio.run(repository.update_by("users", {"email": "a@b.co"}, {"email": "c@d.co"}))
