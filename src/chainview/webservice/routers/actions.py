"""Action endpoints."""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends

from chainview.commons.entity_kinds import ACTION
from chainview.db.repository import EntityRepository
from chainview.query.descriptor import Projection, QueryDescriptor
from chainview.webservice.deps import collection_query, entity_projection, get_current_user, get_repository
from chainview.webservice.services.entities import get_entity, list_entities

router = APIRouter(prefix="/actions", tags=["actions"], dependencies=[Depends(get_current_user)])


@router.get("", response_model=List[Dict[str, Any]])
async def list_actions(
    descriptor: QueryDescriptor = Depends(collection_query),
    repository: EntityRepository = Depends(get_repository),
) -> List[Dict[str, Any]]:
    """List actions."""
    return await list_entities(repository, ACTION, descriptor)


@router.get("/{action_id}", response_model=Dict[str, Any])
async def get_action(
    action_id: str,
    projection: Projection = Depends(entity_projection),
    repository: EntityRepository = Depends(get_repository),
) -> Dict[str, Any]:
    """Get an action by its numeric action_id."""
    return await get_entity(repository, ACTION, action_id, projection)
