"""Account endpoints."""

from datetime import datetime, timezone
from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from chainview.commons.chainview_logger import ChainviewLogger
from chainview.commons.entity_kinds import ACCOUNT
from chainview.commons.errors import NotFound
from chainview.db.repository import REQUESTS_COLLECTION, EntityRepository
from chainview.query.descriptor import Projection, QueryDescriptor
from chainview.upstream.node_client import NodeClient
from chainview.webservice.deps import (
    collection_query,
    entity_projection,
    get_current_user,
    get_node_client,
    get_repository,
)
from chainview.webservice.schemas.common import FaucetRequest
from chainview.webservice.services.entities import get_entity, list_entities
from chainview.webservice.services.passthrough import node_passthrough

router = APIRouter(prefix="/accounts", tags=["accounts"], dependencies=[Depends(get_current_user)])

logger = ChainviewLogger()


@router.get("", response_model=List[Dict[str, Any]])
async def list_accounts(
    descriptor: QueryDescriptor = Depends(collection_query),
    repository: EntityRepository = Depends(get_repository),
) -> List[Dict[str, Any]]:
    """List mirrored accounts."""
    return await list_entities(repository, ACCOUNT, descriptor)


@router.post("")
async def create_from_faucet(
    payload: FaucetRequest,
    repository: EntityRepository = Depends(get_repository),
    node: NodeClient = Depends(get_node_client),
) -> Response:
    """Check the account on the node and log the faucet request when it exists.

    The node's status and body are returned unchanged.
    """
    response = await node.get_account(payload.name)
    if response.ok:
        await repository.insert(
            REQUESTS_COLLECTION,
            {
                "email": payload.email.strip().lower(),
                "eos_account": payload.name,
                "first_name": payload.first_name.strip(),
                "last_name": payload.last_name.strip(),
                "wants_tokens": payload.wants_tokens,
                "owner_key": payload.keys.owner,
                "active_key": payload.keys.active,
                "createdAt": datetime.now(timezone.utc),
            },
        )
        logger.info(f"Logged faucet request for {payload.name}.")
    return node_passthrough(response)


@router.get("/{name}")
async def get_account(
    name: str,
    projection: Projection = Depends(entity_projection),
    repository: EntityRepository = Depends(get_repository),
    node: NodeClient = Depends(get_node_client),
):
    """Get a mirrored account, or the node's view of it when not mirrored yet."""
    try:
        return await get_entity(repository, ACCOUNT, name, projection)
    except NotFound:
        logger.debug(f"Account {name} not mirrored, asking the node.")
    response = await node.get_account(name)
    return node_passthrough(response)
