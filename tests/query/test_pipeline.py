"""Tests for compiling execution plans into MongoDB aggregation pipelines."""

from __future__ import annotations

from chainview.commons.entity_kinds import ACCOUNT, ACTION, ACTION_TRACE, BLOCK, TRANSACTION
from chainview.query.descriptor import And, NumericTextPredicate, Operator, Predicate, RawFilter, RegexValue
from chainview.query.parser import parse
from chainview.query.pipeline import compile_filter, compile_plan, compile_predicate, leading_number
from chainview.query.planner import plan_get, plan_list

TRANSACTION_KEYS = {"$ifNull": ["$transactions", []]}
NEWEST_FIRST = {"$sort": {"createdAt": -1, "_id": -1}}


def _first_match(joined):
    return {
        "$arrayElemAt": [
            {"$filter": {"input": f"${joined}", "as": "child", "cond": {"$eq": ["$$child._id", "$$key"]}}},
            0,
        ]
    }


def _hydrate_transactions():
    return [
        {
            "$addFields": {
                "transactions": {
                    "$map": {"input": TRANSACTION_KEYS, "as": "key", "in": _first_match("__transactions_joined")}
                }
            }
        },
        {"$unset": "__transactions_joined"},
    ]


def test_compile_predicates():
    assert compile_predicate(Predicate("a", Operator.EQ, 1)) == {"a": {"$eq": 1}}
    assert compile_predicate(Predicate("a", Operator.NE, None)) == {"a": {"$ne": None}}
    assert compile_predicate(Predicate("a", Operator.GTE, 2)) == {"a": {"$gte": 2}}
    assert compile_predicate(Predicate("a", Operator.IN, (1, 2))) == {"a": {"$in": [1, 2]}}
    assert compile_predicate(Predicate("a", Operator.NIN, ("x",))) == {"a": {"$nin": ["x"]}}
    assert compile_predicate(Predicate("a", Operator.EXISTS)) == {"a": {"$exists": True}}
    assert compile_predicate(Predicate("a", Operator.NOT_EXISTS)) == {"a": {"$exists": False}}
    assert compile_predicate(Predicate("a", Operator.REGEX, RegexValue("^x", "i"))) == {
        "a": {"$regex": "^x", "$options": "i"}
    }
    assert compile_predicate(Predicate("a", Operator.NOT_REGEX, RegexValue("y$"))) == {"a": {"$not": {"$regex": "y$"}}}


def test_compile_filter_conjunctions():
    assert compile_filter(And()) == {}
    assert compile_filter(And((Predicate("a", Operator.EQ, 1),))) == {"a": {"$eq": 1}}
    assert compile_filter(And((Predicate("a", Operator.GT, 1), RawFilter({"$or": [{"b": 1}, {"c": 2}]})))) == {
        "$and": [{"a": {"$gt": 1}}, {"$or": [{"b": 1}, {"c": 2}]}]
    }


def test_numeric_text_compares_the_leading_number():
    number = leading_number("eos_balance")
    assert number["$convert"]["to"] == "double"
    assert compile_filter(NumericTextPredicate("eos_balance", Operator.EQ, 1000)) == {
        "$expr": {"$eq": [number, 1000]}
    }
    assert compile_filter(NumericTextPredicate("eos_balance", Operator.GT, 100.5)) == {
        "$expr": {"$and": [{"$ne": [number, None]}, {"$gt": [number, 100.5]}]}
    }
    assert compile_filter(NumericTextPredicate("eos_balance", Operator.NIN, (1, 2))) == {
        "$expr": {"$not": [{"$in": [number, [1, 2]]}]}
    }


def test_flat_pipeline():
    plan = plan_list(parse([("name>", "m"), ("sort", "-name"), ("skip", "30"), ("limit", "10")]), ACCOUNT)
    assert compile_plan(plan) == [
        {"$match": {"name": {"$gte": "m"}}},
        {"$sort": {"name": -1, "_id": -1}},
        {"$skip": 30},
        {"$limit": 10},
    ]


def test_first_row_window_has_no_skip():
    pipeline = compile_plan(plan_list(parse({"skip": "0", "limit": "1"}), ACTION))
    assert pipeline == [NEWEST_FIRST, {"$limit": 1}]


def test_sort_keys_survive_the_projection_until_the_page_is_cut():
    plan = plan_list(parse({"fields": "name", "sort": "action_id", "skip": "2", "limit": "1"}), ACTION)
    assert compile_plan(plan) == [
        {"$project": {"name": 1, "action_id": 1}},
        {"$sort": {"action_id": 1, "_id": 1}},
        {"$skip": 2},
        {"$limit": 1},
        {"$project": {"action_id": 0}},
    ]

    plan = plan_list(parse({"fields": "name,-_id"}), ACTION)
    assert compile_plan(plan) == [
        {"$project": {"name": 1, "createdAt": 1}},
        NEWEST_FIRST,
        {"$limit": 30},
        {"$project": {"_id": 0, "createdAt": 0}},
    ]


def test_stored_key_list_join_runs_on_the_page_only():
    plan = plan_list(parse({"fields": "block_num,transactions.transaction_id"}), BLOCK)
    assert compile_plan(plan) == [
        NEWEST_FIRST,
        {"$limit": 30},
        {
            "$lookup": {
                "from": "Transactions",
                "localField": "transactions",
                "foreignField": "_id",
                "pipeline": [{"$project": {"transaction_id": 1}}],
                "as": "__transactions_joined",
            }
        },
        *_hydrate_transactions(),
        {"$project": {"block_num": 1, "transactions": 1, "createdAt": 1}},
        {"$project": {"createdAt": 0}},
    ]


def test_join_without_sub_projection_has_no_sub_pipeline():
    pipeline = compile_plan(plan_get("42", BLOCK))
    assert pipeline[:2] == [{"$match": {"block_num": {"$eq": 42}}}, {"$limit": 1}]
    assert pipeline[2] == {
        "$lookup": {"from": "Transactions", "localField": "transactions", "foreignField": "_id", "as": "__transactions_joined"}
    }


def test_join_key_exclusion_is_deferred_until_after_the_join():
    pipeline = compile_plan(plan_list(parse({"fields": "-transactions._id,-transactions.signatures"}), BLOCK))
    lookup = pipeline[2]["$lookup"]
    assert lookup["pipeline"] == [{"$project": {"signatures": 0}}]
    assert pipeline[5] == {"$project": {"transactions._id": 0}}


def test_related_predicate_paths_survive_the_child_projection():
    plan = plan_list(parse({"transactions.scope": "alice", "fields": "transactions.transaction_id"}), BLOCK)
    pipeline = compile_plan(plan)
    assert pipeline[0]["$lookup"]["pipeline"] == [{"$project": {"transaction_id": 1, "scope": 1}}]
    assert pipeline[3:] == [
        {"$match": {"transactions.scope": {"$eq": "alice"}}},
        {"$project": {"transactions.scope": 0}},
        {"$project": {"transactions": 1, "createdAt": 1}},
        NEWEST_FIRST,
        {"$limit": 30},
        {"$project": {"createdAt": 0}},
    ]


def test_sorting_on_children_joins_before_paging():
    plan = plan_list(parse({"sort": "-transactions.sequence_num"}), BLOCK)
    pipeline = compile_plan(plan)
    assert "$lookup" in pipeline[0]
    assert pipeline[-2:] == [{"$sort": {"transactions.sequence_num": -1, "_id": -1}}, {"$limit": 30}]


def test_reverse_lookup_orders_children_by_sequence():
    pipeline = compile_plan(plan_get("abc123", TRANSACTION))
    assert pipeline == [
        {"$match": {"transaction_id": {"$eq": "abc123"}}},
        {"$limit": 1},
        {
            "$lookup": {
                "from": "Actions",
                "localField": "transaction_id",
                "foreignField": "transaction_id",
                "pipeline": [{"$sort": {"action_id": 1, "_id": 1}}],
                "as": "actions",
            }
        },
    ]


def test_embedded_projection_applies_in_place():
    pipeline = compile_plan(plan_list(parse({"fields": "-data_access.scope"}), ACTION_TRACE))
    assert pipeline[0] == {"$project": {"data_access.scope": 0}}
    assert not any("$lookup" in stage for stage in pipeline)


def test_identity_exclusion_under_inclusion():
    pipeline = compile_plan(plan_get("alice", ACCOUNT, parse({"fields": "name,-_id"}).projection))
    assert pipeline[1] == {"$project": {"name": 1, "_id": 0}}
