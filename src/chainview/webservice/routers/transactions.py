"""Transaction endpoints."""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from chainview.commons.entity_kinds import TRANSACTION
from chainview.db.repository import EntityRepository
from chainview.query.descriptor import Projection, QueryDescriptor
from chainview.upstream.node_client import NodeClient
from chainview.webservice.deps import (
    collection_query,
    entity_projection,
    get_current_user,
    get_node_client,
    get_repository,
)
from chainview.webservice.schemas.common import TransactionCreateRequest
from chainview.webservice.services.entities import get_entity, list_entities
from chainview.webservice.services.passthrough import node_passthrough

router = APIRouter(prefix="/transactions", tags=["transactions"], dependencies=[Depends(get_current_user)])


@router.get("", response_model=List[Dict[str, Any]])
async def list_transactions(
    descriptor: QueryDescriptor = Depends(collection_query),
    repository: EntityRepository = Depends(get_repository),
) -> List[Dict[str, Any]]:
    """List transactions with their actions."""
    return await list_entities(repository, TRANSACTION, descriptor)


@router.post("")
async def create_transaction(
    payload: TransactionCreateRequest,
    node: NodeClient = Depends(get_node_client),
) -> Response:
    """Push a transaction to the node, referencing the current head block."""
    response = await node.push_transaction(payload.actions, signatures=payload.signatures, scope=payload.scope)
    return node_passthrough(response)


@router.get("/{txn_id}", response_model=Dict[str, Any])
async def get_transaction(
    txn_id: str,
    projection: Projection = Depends(entity_projection),
    repository: EntityRepository = Depends(get_repository),
) -> Dict[str, Any]:
    """Get a transaction by transaction_id."""
    return await get_entity(repository, TRANSACTION, txn_id, projection)
