"""Action trace endpoints."""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends

from chainview.commons.entity_kinds import ACTION_TRACE
from chainview.db.repository import EntityRepository
from chainview.query.descriptor import QueryDescriptor
from chainview.webservice.deps import collection_query, get_current_user, get_repository
from chainview.webservice.services.entities import list_entities

router = APIRouter(prefix="/action-traces", tags=["action-traces"], dependencies=[Depends(get_current_user)])


@router.get("", response_model=List[Dict[str, Any]])
async def list_action_traces(
    descriptor: QueryDescriptor = Depends(collection_query),
    repository: EntityRepository = Depends(get_repository),
) -> List[Dict[str, Any]]:
    """List action traces; ``data_access.*`` paths apply to every embedded entry."""
    return await list_entities(repository, ACTION_TRACE, descriptor)
