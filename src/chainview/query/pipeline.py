"""Compile an :class:`ExecutionPlan` into a MongoDB aggregation pipeline.

Joins use ``localField``/``foreignField`` with a sub-pipeline, which needs
MongoDB 5.0 or later.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Sequence, Tuple

from chainview.commons.entity_kinds import ReverseLookup, StoredKeyList
from chainview.query.descriptor import (
    FilterNode,
    NumericTextPredicate,
    Operator,
    Predicate,
    Projection,
    RawFilter,
    RegexValue,
)
from chainview.query.planner import (
    ExecutionPlan,
    JoinStage,
    LimitStage,
    MatchStage,
    ProjectStage,
    SkipStage,
    SortStage,
)

_COMPARISONS = {
    Operator.EQ: "$eq",
    Operator.NE: "$ne",
    Operator.GT: "$gt",
    Operator.GTE: "$gte",
    Operator.LT: "$lt",
    Operator.LTE: "$lte",
}

LEADING_NUMBER = r"^-?[0-9]+(\.[0-9]+)?"


def _regex(value: RegexValue) -> Dict[str, Any]:
    condition: Dict[str, Any] = {"$regex": value.pattern}
    if value.flags:
        condition["$options"] = value.flags
    return condition


def compile_predicate(predicate: Predicate) -> Dict[str, Any]:
    """Render one leaf predicate as a Mongo query document."""
    op = predicate.op
    if op in _COMPARISONS:
        condition: Any = {_COMPARISONS[op]: predicate.value}
    elif op is Operator.IN:
        condition = {"$in": list(predicate.value)}
    elif op is Operator.NIN:
        condition = {"$nin": list(predicate.value)}
    elif op is Operator.EXISTS:
        condition = {"$exists": True}
    elif op is Operator.NOT_EXISTS:
        condition = {"$exists": False}
    elif op is Operator.REGEX:
        condition = _regex(predicate.value)
    elif op is Operator.NOT_REGEX:
        condition = {"$not": _regex(predicate.value)}
    else:
        raise ValueError(f"Unsupported operator: {op}")
    return {predicate.path: condition}


def leading_number(path: str) -> Dict[str, Any]:
    """Expression for the number a text field starts with, or null."""
    as_text = {"$convert": {"input": f"${path}", "to": "string", "onError": None, "onNull": None}}
    found = {"$regexFind": {"input": as_text, "regex": LEADING_NUMBER}}
    return {
        "$convert": {
            "input": {"$let": {"vars": {"found": found}, "in": "$$found.match"}},
            "to": "double",
            "onError": None,
            "onNull": None,
        }
    }


def compile_numeric_text(predicate: NumericTextPredicate) -> Dict[str, Any]:
    """Compare the leading number of a text field with numeric values."""
    number = leading_number(predicate.path)
    op = predicate.op
    if op is Operator.IN:
        expr: Dict[str, Any] = {"$in": [number, list(predicate.value)]}
    elif op is Operator.NIN:
        expr = {"$not": [{"$in": [number, list(predicate.value)]}]}
    elif op in (Operator.EQ, Operator.NE):
        expr = {_COMPARISONS[op]: [number, predicate.value]}
    elif op in _COMPARISONS:
        # null sorts below every number; a missing balance must not pass "<".
        expr = {"$and": [{"$ne": [number, None]}, {_COMPARISONS[op]: [number, predicate.value]}]}
    else:
        raise ValueError(f"Unsupported numeric text operator: {op}")
    return {"$expr": expr}


def compile_filter(node: FilterNode) -> Dict[str, Any]:
    """Render a filter tree; an empty conjunction matches everything."""
    if isinstance(node, Predicate):
        return compile_predicate(node)
    if isinstance(node, NumericTextPredicate):
        return compile_numeric_text(node)
    if isinstance(node, RawFilter):
        return dict(node.document)
    clauses = [compile_filter(child) for child in node.children]
    clauses = [clause for clause in clauses if clause]
    if not clauses:
        return {}
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def _overlaps(a: str, b: str) -> bool:
    return a == b or a.startswith(b + ".") or b.startswith(a + ".")


def _child_projection(projection: Projection, needed: Iterable[str]) -> Tuple[Dict[str, int], List[str]]:
    """Return the in-lookup projection and paths to drop after the join.

    Paths in ``needed`` (join key, predicate paths) must still be present
    when the joined children are matched, so inclusions are widened with
    them and exclusions touching them are deferred. Every widened or
    deferred path is removed once the join is complete.
    """
    if projection.is_empty:
        return {}, []

    if projection.is_inclusion:
        paths = list(projection.paths)
        hidden = [
            path
            for path in dict.fromkeys(needed)
            if path != "_id"
            and not any(path == p or path.startswith(p + ".") for p in paths)
            and not any(p.startswith(path + ".") for p in paths)
        ]
        return {path: 1 for path in paths + hidden}, hidden

    deferred = [path for path in projection.paths if any(_overlaps(path, n) for n in needed)]
    return {path: 0 for path in projection.paths if path not in deferred}, deferred


def _related_paths(stage: JoinStage) -> List[str]:
    marker = stage.relation.field + "."
    paths = []
    for child in stage.match.children:
        if isinstance(child, (Predicate, NumericTextPredicate)) and child.path.startswith(marker):
            paths.append(child.path[len(marker):])
    return paths


def _stored_key_list(stage: JoinStage) -> List[Dict[str, Any]]:
    relation: StoredKeyList = stage.relation
    joined = f"__{relation.field}_joined"
    keys = {"$ifNull": [f"${relation.field}", []]}

    needed = [relation.foreign_field] + _related_paths(stage)
    child_projection, deferred = _child_projection(stage.projection, needed)
    lookup: Dict[str, Any] = {
        "from": stage.target.collection,
        "localField": relation.field,
        "foreignField": relation.foreign_field,
        "as": joined,
    }
    if child_projection:
        lookup["pipeline"] = [{"$project": child_projection}]

    # One output slot per stored key, in stored order; unresolved keys become null.
    first_match = {
        "$arrayElemAt": [
            {
                "$filter": {
                    "input": f"${joined}",
                    "as": "child",
                    "cond": {"$eq": [f"$$child.{relation.foreign_field}", "$$key"]},
                }
            },
            0,
        ]
    }
    stages = [
        {"$lookup": lookup},
        {"$addFields": {relation.field: {"$map": {"input": keys, "as": "key", "in": first_match}}}},
        {"$unset": joined},
    ]
    return stages + _after_join(stage, deferred)


def _reverse_lookup(stage: JoinStage) -> List[Dict[str, Any]]:
    relation: ReverseLookup = stage.relation
    child_projection, deferred = _child_projection(stage.projection, _related_paths(stage))
    child_pipeline: List[Dict[str, Any]] = [{"$sort": {relation.order_by: 1, "_id": 1}}]
    if child_projection:
        child_pipeline.append({"$project": child_projection})

    stages = [
        {
            "$lookup": {
                "from": stage.target.collection,
                "localField": relation.local_key,
                "foreignField": relation.back_reference,
                "pipeline": child_pipeline,
                "as": relation.field,
            }
        }
    ]
    return stages + _after_join(stage, deferred)


def _after_join(stage: JoinStage, deferred: Sequence[str]) -> List[Dict[str, Any]]:
    stages: List[Dict[str, Any]] = []
    related_filter = compile_filter(stage.match)
    if related_filter:
        stages.append({"$match": related_filter})
    if deferred:
        field = stage.relation.field
        stages.append({"$project": {f"{field}.{path}": 0 for path in deferred}})
    return stages


def compile_join(stage: JoinStage) -> List[Dict[str, Any]]:
    if isinstance(stage.relation, StoredKeyList):
        return _stored_key_list(stage)
    if isinstance(stage.relation, ReverseLookup):
        return _reverse_lookup(stage)
    raise ValueError(f"Relation {type(stage.relation).__name__} does not need a join.")


def compile_plan(plan: ExecutionPlan) -> List[Dict[str, Any]]:
    """Render ``plan`` as one aggregation pipeline.

    Stages keep plan order, except that sort, skip and limit move ahead of
    the join when :attr:`ExecutionPlan.pages_before_join` holds, so only the
    requested page is joined. Paths kept only for sorting are removed last.
    """
    matched: List[Dict[str, Any]] = []
    shaped: List[Dict[str, Any]] = []
    paged: List[Dict[str, Any]] = []
    hidden: Tuple[str, ...] = ()
    for stage in plan.stages:
        if isinstance(stage, MatchStage):
            match = compile_filter(stage.filter)
            if match:
                matched.append({"$match": match})
        elif isinstance(stage, JoinStage):
            shaped.extend(compile_join(stage))
        elif isinstance(stage, ProjectStage):
            if not stage.projection.is_empty:
                shaped.append({"$project": stage.projection.to_mongo()})
            hidden = stage.hidden
        elif isinstance(stage, SortStage):
            paged.append({"$sort": {key.path: key.direction for key in stage.keys}})
        elif isinstance(stage, SkipStage):
            paged.append({"$skip": stage.count})
        elif isinstance(stage, LimitStage):
            paged.append({"$limit": stage.count})

    if plan.pages_before_join:
        pipeline = matched + paged + shaped
    else:
        pipeline = matched + shaped + paged
    if hidden:
        pipeline.append({"$project": {path: 0 for path in hidden}})
    return pipeline
