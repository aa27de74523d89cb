"""Pass-through endpoints for the node's chain API."""

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends
from fastapi.responses import Response

from chainview.upstream.node_client import NodeClient
from chainview.webservice.deps import get_current_user, get_node_client
from chainview.webservice.services.passthrough import node_passthrough

router = APIRouter(prefix="/chain", tags=["chain"], dependencies=[Depends(get_current_user)])


@router.get("/get_info")
async def get_info(node: NodeClient = Depends(get_node_client)) -> Response:
    response = await node.get_info()
    return node_passthrough(response)


@router.post("/get_required_keys")
async def get_required_keys(
    payload: Dict[str, Any] = Body(...),
    node: NodeClient = Depends(get_node_client),
) -> Response:
    response = await node.get_required_keys(payload)
    return node_passthrough(response)
