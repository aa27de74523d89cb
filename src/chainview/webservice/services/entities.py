"""Plan, run and shape entity reads."""

from typing import Any, Dict, List, Optional, Sequence

from chainview.commons.entity_kinds import EntityKind
from chainview.db.repository import EntityRepository
from chainview.query.descriptor import Predicate, Projection, QueryDescriptor
from chainview.query.planner import plan_get, plan_list
from chainview.webservice.services.serializers import normalize_docs
from chainview.webservice.services.transform import transform


async def list_entities(
    repository: EntityRepository,
    kind: EntityKind,
    descriptor: QueryDescriptor,
    extra_predicates: Sequence[Predicate] = (),
) -> List[Dict[str, Any]]:
    plan = plan_list(descriptor, kind, extra_predicates)
    rows = await repository.execute(plan)
    return normalize_docs([transform(row, kind, plan.projection) for row in rows])


async def get_entity(
    repository: EntityRepository,
    kind: EntityKind,
    ident: str,
    projection: Optional[Projection] = None,
    extra_predicates: Sequence[Predicate] = (),
) -> Dict[str, Any]:
    plan = plan_get(ident, kind, projection, extra_predicates)
    row = await repository.execute_one(plan)
    return normalize_docs([transform(row, kind, plan.projection)])[0]
