"""Block endpoints."""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from chainview.commons.entity_kinds import BLOCK, TRANSACTION
from chainview.db.repository import EntityRepository
from chainview.query.descriptor import Operator, Predicate, Projection, ProjectionMode, QueryDescriptor
from chainview.upstream.node_client import NodeClient
from chainview.webservice.deps import (
    collection_query,
    entity_projection,
    get_current_user,
    get_node_client,
    get_repository,
)
from chainview.webservice.services.entities import get_entity, list_entities
from chainview.webservice.services.passthrough import node_passthrough

router = APIRouter(prefix="/blocks", tags=["blocks"], dependencies=[Depends(get_current_user)])

_BLOCK_ID_ONLY = Projection(ProjectionMode.INCLUDE, ("block_id",))


async def _block_scope(repository: EntityRepository, ident: str) -> List[Predicate]:
    block = await get_entity(repository, BLOCK, ident, _BLOCK_ID_ONLY)
    return [Predicate("block_id", Operator.EQ, block["block_id"])]


@router.get("", response_model=List[Dict[str, Any]])
async def list_blocks(
    descriptor: QueryDescriptor = Depends(collection_query),
    repository: EntityRepository = Depends(get_repository),
) -> List[Dict[str, Any]]:
    """List blocks with their transactions resolved."""
    return await list_entities(repository, BLOCK, descriptor)


@router.get("/head")
async def get_head_block(node: NodeClient = Depends(get_node_client)) -> Response:
    """Chain head as reported by the node."""
    response = await node.get_info()
    return node_passthrough(response)


@router.get("/{ident}", response_model=Dict[str, Any])
async def get_block(
    ident: str,
    projection: Projection = Depends(entity_projection),
    repository: EntityRepository = Depends(get_repository),
) -> Dict[str, Any]:
    """Get a block by block_id or block_num."""
    return await get_entity(repository, BLOCK, ident, projection)


@router.get("/{ident}/transactions", response_model=List[Dict[str, Any]])
async def list_block_transactions(
    ident: str,
    descriptor: QueryDescriptor = Depends(collection_query),
    repository: EntityRepository = Depends(get_repository),
) -> List[Dict[str, Any]]:
    """List the transactions of one block."""
    scope = await _block_scope(repository, ident)
    return await list_entities(repository, TRANSACTION, descriptor, extra_predicates=scope)


@router.get("/{ident}/transactions/{txn_id}", response_model=Dict[str, Any])
async def get_block_transaction(
    ident: str,
    txn_id: str,
    projection: Projection = Depends(entity_projection),
    repository: EntityRepository = Depends(get_repository),
) -> Dict[str, Any]:
    """Get a transaction, only if it belongs to the block."""
    scope = await _block_scope(repository, ident)
    return await get_entity(repository, TRANSACTION, txn_id, projection, extra_predicates=scope)
