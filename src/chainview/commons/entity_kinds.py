"""Entity kinds mirrored from the blockchain and how each relates to its children.

An :class:`EntityKind` is the only thing the generic planner, repository and
transform layer need to know about a collection. Relations come in three
variants:

- :class:`StoredKeyList`: the parent stores an ordered list of child ``_id``
  values (block -> transactions).
- :class:`ReverseLookup`: each child stores the parent's natural key and the
  parent list is computed at read time (transaction -> actions).
- :class:`Embedded`: the children are sub-documents stored inside the parent
  (action trace -> data_access).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple, Union

_SEQUENCE_RE = re.compile(r"[0-9]+")


@dataclass(frozen=True)
class StoredKeyList:
    """Parent holds ``field`` = list of keys into ``target``'s ``foreign_field``."""

    field: str
    target: str
    foreign_field: str = "_id"


@dataclass(frozen=True)
class ReverseLookup:
    """Children of ``target`` whose ``back_reference`` equals the parent's ``local_key``."""

    field: str
    target: str
    back_reference: str
    local_key: str
    order_by: str


@dataclass(frozen=True)
class Embedded:
    """Children stored in place as an array of sub-documents under ``field``."""

    field: str


Relation = Union[StoredKeyList, ReverseLookup, Embedded]

NUMERIC_COLLATION = {"locale": "en", "numericOrdering": True}


@dataclass(frozen=True)
class EntityKind:
    """Capability descriptor for one mirrored collection.

    Attributes:
        name: Kind name used by routes and logs
        collection: MongoDB collection name
        fields: Wire whitelist, in output order
        natural_key: Immutable domain identifier (string), if any
        sequence_key: Numeric identifier accepted in place of the natural key
        relation: How related children are resolved, if any
        numeric_text_fields: Fields stored as numeric text (balances)
        collation: Collation applied to match and sort stages
    """

    name: str
    collection: str
    fields: Tuple[str, ...]
    natural_key: Optional[str] = None
    sequence_key: Optional[str] = None
    relation: Optional[Relation] = None
    numeric_text_fields: Tuple[str, ...] = ()
    collation: Optional[Dict[str, object]] = field(default=None, hash=False, compare=False)

    @property
    def relation_field(self) -> Optional[str]:
        return None if self.relation is None else self.relation.field

    @property
    def is_joined(self) -> bool:
        """Whether reading this kind needs a join stage."""
        return isinstance(self.relation, (StoredKeyList, ReverseLookup))

    def identity_filter(self, ident: str) -> Dict[str, object]:
        """Build the match for a get-by-identifier path segment.

        Numeric input addresses the sequence key when the kind has one;
        anything else addresses the natural key.
        """
        text = str(ident).strip()
        if self.sequence_key is not None and _SEQUENCE_RE.fullmatch(text):
            return {self.sequence_key: int(text)}
        if self.natural_key is None:
            raise ValueError(f"{self.name} can only be addressed by its numeric {self.sequence_key}.")
        return {self.natural_key: text}


ACCOUNT = EntityKind(
    name="account",
    collection="Accounts",
    natural_key="name",
    fields=("id", "name", "eos_balance", "staked_balance", "unstaking_balance", "abi", "createdAt"),
    numeric_text_fields=("eos_balance", "staked_balance", "unstaking_balance"),
    collation=NUMERIC_COLLATION,
)

ACTION = EntityKind(
    name="action",
    collection="Actions",
    sequence_key="action_id",
    fields=(
        "id",
        "action_id",
        "transaction_id",
        "authorization",
        "handler_account_name",
        "name",
        "data",
        "createdAt",
    ),
)

TRANSACTION = EntityKind(
    name="transaction",
    collection="Transactions",
    natural_key="transaction_id",
    fields=(
        "id",
        "transaction_id",
        "sequence_num",
        "block_id",
        "ref_block_num",
        "ref_block_prefix",
        "scope",
        "read_scope",
        "expiration",
        "signatures",
        "actions",
        "createdAt",
    ),
    relation=ReverseLookup(
        field="actions",
        target="action",
        back_reference="transaction_id",
        local_key="transaction_id",
        order_by="action_id",
    ),
)

BLOCK = EntityKind(
    name="block",
    collection="Blocks",
    natural_key="block_id",
    sequence_key="block_num",
    fields=(
        "id",
        "block_num",
        "block_id",
        "prev_block_id",
        "timestamp",
        "transaction_merkle_root",
        "producer_account_id",
        "transactions",
        "createdAt",
    ),
    relation=StoredKeyList(field="transactions", target="transaction"),
)

ACTION_TRACE = EntityKind(
    name="action_trace",
    collection="ActionTraces",
    fields=(
        "id",
        "transaction_id",
        "action",
        "receiver",
        "region_id",
        "console",
        "cycle_index",
        "data_access",
        "createdAt",
    ),
    relation=Embedded(field="data_access"),
)

ENTITY_KINDS: Dict[str, EntityKind] = {
    kind.name: kind for kind in (ACCOUNT, ACTION, TRANSACTION, BLOCK, ACTION_TRACE)
}


def get_entity_kind(name: str) -> EntityKind:
    """Look up a registered kind by name."""
    try:
        return ENTITY_KINDS[name]
    except KeyError:
        raise ValueError(f"Unknown entity kind: {name}") from None
