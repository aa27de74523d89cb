"""Entity query planner.

Builds an :class:`ExecutionPlan` for any :class:`EntityKind`. Stages always
run in this order::

    match -> join/embed -> project -> sort -> skip -> limit

Projecting before the join would drop the join key; sorting must precede
skip/limit for stable pages; matching first keeps rows that are filtered out
from being joined at all. The project stage keeps every sort key alive and
names the ones the caller did not ask for, so they are dropped once the page
is cut.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from chainview.commons.entity_kinds import EntityKind, ReverseLookup, StoredKeyList, get_entity_kind
from chainview.commons.errors import NotFound
from chainview.query.descriptor import (
    DESCENDING,
    ID_FIELD,
    And,
    NumericTextPredicate,
    Operator,
    Predicate,
    Projection,
    ProjectionMode,
    QueryDescriptor,
    SortKey,
)
from chainview.query.projection import split

DEFAULT_SORT = (SortKey("createdAt", DESCENDING),)

LeafPredicate = Union[Predicate, NumericTextPredicate]


@dataclass(frozen=True)
class MatchStage:
    filter: And


@dataclass(frozen=True)
class JoinStage:
    """Resolve ``relation`` into hydrated child documents.

    ``projection`` is the per-child sub-projection; ``match`` holds the
    predicates that address the joined children and can only be evaluated
    once they are resolved.
    """

    relation: Union[StoredKeyList, ReverseLookup]
    target: EntityKind
    projection: Projection = field(default_factory=Projection)
    match: And = field(default_factory=And)


@dataclass(frozen=True)
class ProjectStage:
    """Projection applied before sorting.

    ``hidden`` lists paths kept only so the sort can read them; they are
    removed after the limit.
    """

    projection: Projection
    hidden: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SortStage:
    keys: Tuple[SortKey, ...]


@dataclass(frozen=True)
class SkipStage:
    count: int


@dataclass(frozen=True)
class LimitStage:
    count: int


Stage = Union[MatchStage, JoinStage, ProjectStage, SortStage, SkipStage, LimitStage]

_STAGE_ORDER = {MatchStage: 0, JoinStage: 1, ProjectStage: 2, SortStage: 3, SkipStage: 4, LimitStage: 5}

_NUMERIC_OPERATORS = {
    Operator.EQ,
    Operator.NE,
    Operator.GT,
    Operator.GTE,
    Operator.LT,
    Operator.LTE,
    Operator.IN,
    Operator.NIN,
}


def _touches(path: str, field_name: str) -> bool:
    return path == field_name or path.startswith(field_name + ".")


@dataclass(frozen=True)
class ExecutionPlan:
    """Ordered stages for one request against one entity kind.

    Attributes:
        kind: Entity kind being read
        stages: Stages in execution order
        projection: Projection the caller asked for (drives the transform)
        single: Whether exactly one row is expected (get by identifier)
        label: Human-readable target, used in not-found messages and logs
    """

    kind: EntityKind
    stages: Tuple[Stage, ...]
    projection: Projection = field(default_factory=Projection)
    single: bool = False
    label: str = ""

    def __post_init__(self):
        ranks = [_STAGE_ORDER[type(stage)] for stage in self.stages]
        if ranks != sorted(set(ranks)):
            names = [type(stage).__name__ for stage in self.stages]
            raise ValueError(f"Stages out of order: {names}")

    def stage(self, stage_type):
        """Return the stage of the given type, if present."""
        for stage in self.stages:
            if isinstance(stage, stage_type):
                return stage
        return None

    @property
    def limit(self) -> Optional[int]:
        stage = self.stage(LimitStage)
        return None if stage is None else stage.count

    @property
    def pages_before_join(self) -> bool:
        """Whether sort, skip and limit may run ahead of the join.

        True when the join neither filters parents nor feeds a sort key, so
        the page is the same either way and only its rows need joining.
        """
        join = self.stage(JoinStage)
        if join is None or join.match.children:
            return False
        sort = self.stage(SortStage)
        if sort is None:
            return True
        return not any(_touches(key.path, join.relation.field) for key in sort.keys)


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _normalize_numeric_text(kind: EntityKind, predicate: Predicate) -> LeafPredicate:
    """Compare balances stored as text (``"12.5000 EOS"``) by their leading number."""
    if predicate.path not in kind.numeric_text_fields or predicate.op not in _NUMERIC_OPERATORS:
        return predicate
    if predicate.op in (Operator.IN, Operator.NIN):
        if not all(_is_number(value) for value in predicate.value):
            return predicate
    elif not _is_number(predicate.value):
        return predicate
    return NumericTextPredicate(predicate.path, predicate.op, predicate.value)


def _partition(kind: EntityKind, predicates: Iterable[Predicate]) -> Tuple[List[LeafPredicate], List[LeafPredicate]]:
    root: List[LeafPredicate] = []
    related: List[LeafPredicate] = []
    marker = None if not kind.is_joined else kind.relation_field + "."
    for predicate in predicates:
        predicate = _normalize_numeric_text(kind, predicate)
        if marker is not None and predicate.path.startswith(marker):
            related.append(predicate)
        else:
            root.append(predicate)
    return root, related


def _relation_stages(
    kind: EntityKind,
    projection: Projection,
    related_predicates: Sequence[LeafPredicate],
    sort_keys: Sequence[SortKey],
) -> Tuple[Optional[JoinStage], Projection]:
    """Return the join stage (if any) and the projection for the project stage."""
    if not kind.is_joined:
        return None, projection

    relation_field = kind.relation_field
    sorts_on_relation = any(_touches(key.path, relation_field) for key in sort_keys)
    if not projection.keeps(relation_field) and not related_predicates and not sorts_on_relation:
        return None, projection

    parts = split(projection, relation_field)
    local = parts.local
    if projection.is_inclusion and parts.related.paths and relation_field not in local.paths:
        # Sub-paths were requested; the relation field itself must survive the project stage.
        local = Projection(ProjectionMode.INCLUDE, local.paths + (relation_field,), exclude_id=local.exclude_id)

    join = JoinStage(
        relation=kind.relation,
        target=get_entity_kind(kind.relation.target),
        projection=parts.related,
        match=And(tuple(related_predicates)),
    )
    return join, local


def _keep_sort_keys(projection: Projection, sort_keys: Sequence[SortKey]) -> ProjectStage:
    """Widen ``projection`` so every sort key reaches the sort stage.

    Inclusions gain the missing keys and exclusions covering a key are held
    back. Whatever was added or held back is listed as hidden.
    """
    paths = [key.path for key in sort_keys]
    if projection.is_empty or not paths:
        return ProjectStage(projection)

    if not projection.is_inclusion:
        deferred = tuple(p for p in projection.paths if any(_touches(p, k) or _touches(k, p) for k in paths))
        kept = tuple(p for p in projection.paths if p not in deferred)
        return ProjectStage(Projection(ProjectionMode.EXCLUDE, kept), hidden=deferred)

    hidden: List[str] = []
    exclude_id = projection.exclude_id
    if exclude_id and ID_FIELD in paths:
        exclude_id = False
        hidden.append(ID_FIELD)
    if not projection.paths:
        return ProjectStage(Projection(ProjectionMode.INCLUDE, (), exclude_id=exclude_id), hidden=tuple(hidden))

    extra: List[str] = []
    for path in paths:
        if path == ID_FIELD or any(_touches(path, p) or _touches(p, path) for p in projection.paths + tuple(extra)):
            continue
        extra.append(path)
        # A key under a field the caller did not ask for hides that whole field.
        top = path.split(".")[0]
        hidden.append(path if projection.keeps(top) else top)

    widened = Projection(ProjectionMode.INCLUDE, projection.paths + tuple(extra), exclude_id=exclude_id)
    return ProjectStage(widened, hidden=tuple(dict.fromkeys(hidden)))


def _sort_keys(sort: Sequence[SortKey]) -> Tuple[SortKey, ...]:
    keys = tuple(sort) or DEFAULT_SORT
    if all(key.path != ID_FIELD for key in keys):
        keys = keys + (SortKey(ID_FIELD, keys[-1].direction),)
    return keys


def _build(
    kind: EntityKind,
    root_filter: And,
    related_predicates: Sequence[LeafPredicate],
    projection: Projection,
    sort_keys: Sequence[SortKey] = (),
) -> List[Stage]:
    stages: List[Stage] = []
    if root_filter.children:
        stages.append(MatchStage(root_filter))
    join, effective = _relation_stages(kind, projection, related_predicates, sort_keys)
    if join is not None:
        stages.append(join)
    project = _keep_sort_keys(effective, sort_keys)
    if not project.projection.is_empty or project.hidden:
        stages.append(project)
    return stages


def plan_list(
    descriptor: QueryDescriptor,
    kind: EntityKind,
    extra_predicates: Sequence[Predicate] = (),
) -> ExecutionPlan:
    """Build the list plan for ``kind``.

    Parameters
    ----------
    descriptor : QueryDescriptor
        Parsed request.
    kind : EntityKind
        Collection being listed.
    extra_predicates : sequence of Predicate, optional
        Route-imposed conditions (e.g. the parent block), ANDed with the request.

    Returns
    -------
    ExecutionPlan
        match -> join -> project -> sort -> skip -> limit.
    """
    root, related = _partition(kind, list(extra_predicates) + descriptor.predicates())
    root_filter = And(tuple(root) + tuple(descriptor.raw_filters()))
    sort_keys = _sort_keys(descriptor.sort)

    stages = _build(kind, root_filter, related, descriptor.projection, sort_keys)
    stages.append(SortStage(sort_keys))
    if descriptor.skip:
        stages.append(SkipStage(descriptor.skip))
    stages.append(LimitStage(descriptor.limit))
    return ExecutionPlan(
        kind=kind,
        stages=tuple(stages),
        projection=descriptor.projection,
        label=f"{kind.name} list",
    )


def plan_get(
    ident: str,
    kind: EntityKind,
    projection: Optional[Projection] = None,
    extra_predicates: Sequence[Predicate] = (),
) -> ExecutionPlan:
    """Build the single-entity plan for a natural or sequence key.

    Raises
    ------
    NotFound
        When ``ident`` can never address ``kind`` (non-numeric input for a
        kind that only has a sequence key).
    """
    projection = projection or Projection()
    label = f"{kind.name} {ident}"
    try:
        identity = kind.identity_filter(ident)
    except ValueError:
        raise NotFound(f"Not found: {label}") from None

    identity_predicates = [Predicate(path, Operator.EQ, value) for path, value in identity.items()]
    root, related = _partition(kind, identity_predicates + list(extra_predicates))

    stages = _build(kind, And(tuple(root)), related, projection)
    stages.append(LimitStage(1))
    return ExecutionPlan(kind=kind, stages=tuple(stages), projection=projection, single=True, label=label)
