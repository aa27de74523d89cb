"""Node client tests using httpx's mock transport."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from chainview.commons.errors import Timeout, UpstreamUnavailable
from chainview.upstream.node_client import NodeClient, build_transaction, transaction_scope

HEAD_BLOCK_ID = "0000000a" + "00000000" + "78563412" + "00" * 20
INFO = {"head_block_num": 65537, "head_block_id": HEAD_BLOCK_ID, "head_block_time": "2018-06-01T12:00:00.500"}
TRANSFER = {
    "code": "eosio.token",
    "type": "transfer",
    "authorization": [{"account": "bob", "permission": "active"}, {"account": "alice", "permission": "active"}],
    "data": "00",
}


def _client(handler) -> NodeClient:
    transport = httpx.MockTransport(handler)
    return NodeClient(client=httpx.AsyncClient(base_url="http://node", transport=transport), timeout=1)


def test_build_transaction_references_head_block():
    transaction = build_transaction(INFO, TRANSFER, signatures=["sig"])
    assert transaction == {
        "refBlockNum": 1,
        "refBlockPrefix": 0x12345678,
        "expiration": "2018-06-01T12:00:00",
        "scope": ["alice", "bob", "eosio.token"],
        "actions": [TRANSFER],
        "signatures": ["sig"],
    }


def test_explicit_scope_is_sorted_and_unique():
    transaction = build_transaction(INFO, [TRANSFER], scope=["bob", "alice", "bob"])
    assert transaction["scope"] == ["alice", "bob"]
    assert transaction_scope([]) == []


def test_push_transaction_uses_get_info_then_pushes():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        if request.url.path == "/v1/chain/get_info":
            return httpx.Response(200, json=INFO)
        body = json.loads(request.content)
        assert body["refBlockNum"] == 1
        return httpx.Response(202, json={"transaction_id": "abc"})

    response = asyncio.run(_client(handler).push_transaction(TRANSFER))
    assert seen == ["/v1/chain/get_info", "/v1/chain/push_transaction"]
    assert response.status == 202
    assert response.body == {"transaction_id": "abc"}


def test_failed_get_info_is_returned_without_pushing():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/chain/get_info"
        return httpx.Response(503, json={"error": "syncing"})

    response = asyncio.run(_client(handler).push_transaction(TRANSFER))
    assert response.status == 503
    assert not response.ok


def test_non_2xx_and_non_json_bodies_pass_through():
    def handler(request: httpx.Request) -> httpx.Response:
        assert json.loads(request.content) == {"account_name": "nobody"}
        return httpx.Response(500, text="unknown key", headers={"content-type": "text/plain"})

    response = asyncio.run(_client(handler).get_account("nobody"))
    assert response.status == 500
    assert response.body is None
    assert response.text == "unknown key"
    assert response.content_type.startswith("text/plain")


def test_unreadable_head_block_is_an_upstream_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/chain/get_info"
        return httpx.Response(200, text="<html>maintenance</html>", headers={"content-type": "text/html"})

    with pytest.raises(UpstreamUnavailable):
        asyncio.run(_client(handler).push_transaction(TRANSFER))


def test_timeout_and_connection_errors():
    def slow(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("too slow", request=request)

    def down(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(Timeout):
        asyncio.run(_client(slow).get_info())
    with pytest.raises(UpstreamUnavailable):
        asyncio.run(_client(down).get_info())
