"""Dependency providers for Chainview webservice."""

from typing import Any, Dict, Optional

from fastapi import Depends, Query, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from chainview.commons.errors import Unauthorized
from chainview.configs import DEFAULT_LIMIT, MAX_LIST_LIMIT
from chainview.db.repository import EntityRepository
from chainview.query.descriptor import Projection, QueryDescriptor
from chainview.query.parser import parse, parse_fields
from chainview.upstream.node_client import NodeClient
from chainview.webservice.services.auth import decode_token, load_user

bearer_scheme = HTTPBearer(auto_error=False)


def get_repository(request: Request) -> EntityRepository:
    """Return the process-wide repository built at startup."""
    return request.app.state.repository


def get_node_client(request: Request) -> NodeClient:
    """Return the process-wide node client built at startup."""
    return request.app.state.node_client


def collection_query(
    request: Request,
    skip: Optional[str] = Query(default=None, description="Rows to skip (>= 0)."),
    limit: Optional[str] = Query(default=None, description=f"Page size, 1..{MAX_LIST_LIMIT}, default {DEFAULT_LIMIT}."),
    sort: Optional[str] = Query(default=None, description="Comma-separated fields, '-' prefix for descending."),
    fields: Optional[str] = Query(default=None, description="Inclusion list, or exclusion list with '-' prefixes."),
    filter: Optional[str] = Query(default=None, description="JSON filter ANDed with the field predicates."),
) -> QueryDescriptor:
    """Parse the collection grammar from the raw query string.

    The declared parameters only document the reserved keys; every other
    ``key<op>value`` pair becomes a field predicate.
    """
    return parse(request.query_params.multi_items(), max_limit=MAX_LIST_LIMIT)


def entity_projection(fields: Optional[str] = Query(default=None)) -> Projection:
    """Projection for single-entity reads."""
    return parse_fields(fields) if fields else Projection()


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    repository: EntityRepository = Depends(get_repository),
) -> Dict[str, Any]:
    """Resolve the bearer token to its stored user."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise Unauthorized("Authentication required.")
    return await load_user(repository, decode_token(credentials.credentials))
