"""Shape stored documents into their public wire form."""

from __future__ import annotations

import re
from typing import Any, Dict, Optional

from chainview.commons.entity_kinds import EntityKind, get_entity_kind
from chainview.query.descriptor import ID_FIELD, Projection
from chainview.query.projection import split

_LEADING_NUMBER_RE = re.compile(r"^\s*[-+]?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?")


def parse_balance(value: Any) -> Optional[float]:
    """Read the leading number of a balance such as ``"12.5000 EOS"``.

    Returns ``None`` when there is no leading number.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        match = _LEADING_NUMBER_RE.match(value)
        if match:
            return float(match.group(0))
    return None


def _transform(
    doc: Dict[str, Any],
    kind: EntityKind,
    projection: Projection,
    default_relation: bool,
) -> Dict[str, Any]:
    relation_field = kind.relation_field
    out: Dict[str, Any] = {}
    for name in kind.fields:
        if name == "id":
            if doc.get(ID_FIELD) is not None:
                out["id"] = str(doc[ID_FIELD])
            continue

        value = doc.get(name)
        if name == relation_field:
            if value is None:
                if default_relation and projection.keeps(name):
                    out[name] = []
                continue
            if kind.is_joined:
                value = _transform_children(value, kind, projection)
        elif name in kind.numeric_text_fields:
            value = parse_balance(value)

        if value is not None:
            out[name] = value
    return out


def _transform_children(children, kind: EntityKind, projection: Projection):
    target = get_entity_kind(kind.relation.target)
    related = split(projection, kind.relation_field).related
    shaped = []
    for child in children:
        if isinstance(child, dict):
            shaped.append(_transform(child, target, related, default_relation=False))
        else:
            # Dangling reference keeps its slot.
            shaped.append(None)
    return shaped


def transform(doc: Optional[Dict[str, Any]], kind: EntityKind, projection: Optional[Projection] = None):
    """Apply ``kind``'s whitelist to one stored document.

    ``_id`` becomes a string ``id``, numeric-text balances become floats and
    absent fields are omitted. The relation array defaults to ``[]`` unless
    ``projection`` removed it. Joined children are shaped with their own
    kind's whitelist; dangling slots stay ``None``.
    """
    if doc is None:
        return None
    return _transform(doc, kind, projection or Projection(), default_relation=True)
