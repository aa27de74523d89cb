"""Integration test for compiled pipelines against a real MongoDB."""

from __future__ import annotations

import asyncio
import os
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from bson import ObjectId

from chainview.commons.entity_kinds import ACCOUNT, BLOCK, TRANSACTION
from chainview.configs import MONGO_URI
from chainview.db.connection import MongoConnection
from chainview.db.repository import EntityRepository
from chainview.query.parser import parse
from chainview.webservice.services.entities import get_entity, list_entities

pytestmark = pytest.mark.skipif(
    os.getenv("CHAINVIEW_MONGO_TESTS") != "1", reason="Set CHAINVIEW_MONGO_TESTS=1 to run against MongoDB"
)

START = datetime(2018, 6, 1, tzinfo=timezone.utc)


async def _seed(connection: MongoConnection) -> None:
    t1, t2, dangling = ObjectId(), ObjectId(), ObjectId()
    await connection.collection("Transactions").insert_many(
        [
            {"_id": t1, "transaction_id": "t1", "block_id": "b1", "scope": ["alice", "eosio"], "createdAt": START},
            {"_id": t2, "transaction_id": "t2", "block_id": "b1", "scope": ["bob"], "createdAt": START},
        ]
    )
    await connection.collection("Blocks").insert_many(
        [
            {"block_num": 1, "block_id": "b1", "transactions": [t1, dangling, t2], "createdAt": START},
            {"block_num": 2, "block_id": "b2", "transactions": [], "createdAt": START + timedelta(seconds=1)},
        ]
    )
    await connection.collection("Actions").insert_many(
        [
            {"action_id": 2, "transaction_id": "t1", "name": "issue"},
            {"action_id": 1, "transaction_id": "t1", "name": "transfer"},
        ]
    )
    await connection.collection("Accounts").insert_many(
        [
            {"name": "alice", "eos_balance": "1000.0000 EOS", "createdAt": START},
            {"name": "bob", "eos_balance": "500.0000 EOS", "createdAt": START},
            {"name": "carol", "eos_balance": "90.0000 EOS", "createdAt": START},
            {"name": "dave", "eos_balance": "100.7500 EOS", "createdAt": START},
            {"name": "erin", "eos_balance": "100.2500 EOS", "createdAt": START},
        ]
    )


async def _scenario():
    db_name = f"chainview_test_{uuid4().hex[:12]}"
    connection = MongoConnection(uri=MONGO_URI, db_name=db_name)
    repository = EntityRepository(connection)
    try:
        if not await connection.ping():
            pytest.skip("MongoDB is not reachable.")
        await _seed(connection)

        blocks = await list_entities(
            repository, BLOCK, parse({"transactions.scope": "alice", "fields": "block_num,transactions.transaction_id"})
        )
        transaction = await get_entity(repository, TRANSACTION, "t1")
        accounts = await list_entities(repository, ACCOUNT, parse({"sort": "-eos_balance"}))
        above = await list_entities(repository, ACCOUNT, parse([("eos_balance>100.5", ""), ("sort", "name")]))
        exact = await list_entities(repository, ACCOUNT, parse({"eos_balance": "1000"}))
        return blocks, transaction, accounts, above, exact
    finally:
        await connection.db.client.drop_database(db_name)
        connection.close()


def test_joins_related_predicates_and_numeric_sort():
    blocks, transaction, accounts, above, exact = asyncio.run(_scenario())

    assert [block["block_num"] for block in blocks] == [1]
    children = blocks[0]["transactions"]
    assert [child and child["transaction_id"] for child in children] == ["t1", None, "t2"]
    assert all("scope" not in child for child in children if child)
    assert [action["action_id"] for action in transaction["actions"]] == [1, 2]
    assert [account["name"] for account in accounts] == ["alice", "bob", "dave", "erin", "carol"]
    assert [account["name"] for account in above] == ["alice", "bob", "dave"]
    assert [account["name"] for account in exact] == ["alice"]
