"""HTTP client for the blockchain node's chain API.

Responses are passed through: callers get the node's status code and body
unchanged, whatever the status.
"""

from __future__ import annotations

import struct
from datetime import datetime
from typing import Any, Dict, List, NamedTuple, Optional

import httpx

from chainview.commons.chainview_logger import ChainviewLogger
from chainview.commons.errors import Timeout, UpstreamUnavailable
from chainview.configs import NODE_TIMEOUT, NODE_URI


class NodeResponse(NamedTuple):
    """Status and body of a node call.

    ``body`` is the decoded JSON. When the node answers with something that
    is not JSON, ``body`` is None and ``text`` holds the raw body.
    """

    status: int
    body: Any
    text: Optional[str] = None
    content_type: Optional[str] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def _decode(response: httpx.Response) -> NodeResponse:
    content_type = response.headers.get("content-type")
    try:
        return NodeResponse(response.status_code, response.json(), content_type=content_type)
    except ValueError:
        return NodeResponse(response.status_code, None, text=response.text, content_type=content_type)


def transaction_scope(actions: List[Dict[str, Any]]) -> List[str]:
    """Sorted unique accounts touched by ``actions`` (each code and authorizer)."""
    accounts = set()
    for action in actions:
        if action.get("code"):
            accounts.add(action["code"])
        for auth in action.get("authorization") or []:
            if auth.get("account"):
                accounts.add(auth["account"])
    return sorted(accounts)


def _format_expiration(head_block_time: str) -> str:
    parsed = datetime.fromisoformat(head_block_time.rstrip("Z"))
    return parsed.strftime("%Y-%m-%dT%H:%M:%S")


def build_transaction(
    info: Dict[str, Any],
    actions: Any,
    signatures: Optional[List[str]] = None,
    scope: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """Assemble a transaction referencing the node's current head block.

    Parameters
    ----------
    info : dict
        ``get_info`` body with ``head_block_num``, ``head_block_id`` and
        ``head_block_time``.
    actions : dict or list of dict
        One action or a list of actions.
    signatures : list of str, optional
        Signatures to attach.
    scope : list of str, optional
        Explicit scope; derived from the actions when omitted.

    Returns
    -------
    dict
        Body for ``push_transaction``.
    """
    action_list = actions if isinstance(actions, list) else [actions]
    head_block_id = bytes.fromhex(info["head_block_id"])
    return {
        "refBlockNum": int(info["head_block_num"]) & 0xFFFF,
        "refBlockPrefix": struct.unpack_from("<I", head_block_id, 8)[0],
        "expiration": _format_expiration(info["head_block_time"]),
        "scope": sorted(set(scope)) if scope else transaction_scope(action_list),
        "actions": action_list,
        "signatures": signatures or [],
    }


class NodeClient(object):
    """Async client around one shared ``httpx.AsyncClient``."""

    def __init__(self, base_url: str = NODE_URI, timeout: float = NODE_TIMEOUT, client: httpx.AsyncClient = None):
        self.logger = ChainviewLogger()
        self._timeout = timeout
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=httpx.Timeout(timeout))

    async def _request(self, method: str, path: str, payload: Any = None) -> NodeResponse:
        try:
            if payload is None:
                response = await self._client.request(method, path)
            else:
                response = await self._client.request(method, path, json=payload)
        except httpx.TimeoutException:
            self.logger.warning(f"Node call {path} exceeded {self._timeout}s.")
            raise Timeout("node", self._timeout) from None
        except httpx.HTTPError as e:
            self.logger.error(f"Node call {path} failed: {e}")
            raise UpstreamUnavailable(f"Blockchain node unavailable: {e}") from e

        node_response = _decode(response)
        if response.status_code >= 400:
            self.logger.info(f"Node call {path} returned {response.status_code}.")
        return node_response

    async def get_info(self) -> NodeResponse:
        return await self._request("GET", "/v1/chain/get_info")

    async def get_account(self, account_name: str) -> NodeResponse:
        return await self._request("POST", "/v1/chain/get_account", {"account_name": account_name})

    async def get_required_keys(self, payload: Dict[str, Any]) -> NodeResponse:
        return await self._request("POST", "/v1/chain/get_required_keys", payload)

    async def push_transaction(
        self,
        actions: Any,
        signatures: Optional[List[str]] = None,
        scope: Optional[List[str]] = None,
    ) -> NodeResponse:
        """Reference the current head block and push; a failed ``get_info`` is returned as is."""
        info = await self.get_info()
        if not info.ok:
            return info
        try:
            transaction = build_transaction(info.body, actions, signatures=signatures, scope=scope)
        except (KeyError, TypeError, ValueError) as e:
            self.logger.error(f"Unreadable get_info response: {info.body if info.text is None else info.text!r}")
            raise UpstreamUnavailable("Blockchain node returned an unreadable head block.") from e
        self.logger.debug(f"Pushing transaction with scope {transaction['scope']}.")
        return await self._request("POST", "/v1/chain/push_transaction", transaction)

    async def aclose(self):
        await self._client.aclose()
