"""Typed representation of a collection query."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Tuple, Union

ID_FIELD = "_id"
ASCENDING = 1
DESCENDING = -1


class Operator(str, Enum):
    """Leaf predicate operators."""

    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    IN = "in"
    NIN = "nin"
    EXISTS = "exists"
    NOT_EXISTS = "not_exists"
    REGEX = "regex"
    NOT_REGEX = "not_regex"


@dataclass(frozen=True)
class RegexValue:
    """A ``/pattern/flags`` literal."""

    pattern: str
    flags: str = ""


@dataclass(frozen=True)
class Predicate:
    """Leaf predicate over a (possibly dotted) field path."""

    path: str
    op: Operator
    value: Any = None


@dataclass(frozen=True)
class NumericTextPredicate:
    """Comparison against the leading number of a field stored as text, such as ``"12.5000 EOS"``."""

    path: str
    op: Operator
    value: Any = None


@dataclass(frozen=True)
class RawFilter:
    """Caller-supplied structured filter document, already allowlist-checked."""

    document: Dict[str, Any]


@dataclass(frozen=True)
class And:
    """Conjunction of filter nodes."""

    children: Tuple["FilterNode", ...] = ()


FilterNode = Union[Predicate, NumericTextPredicate, RawFilter, And]


class ProjectionMode(str, Enum):
    INCLUDE = "include"
    EXCLUDE = "exclude"


@dataclass(frozen=True)
class Projection:
    """Inclusion or exclusion set of field paths.

    ``exclude_id`` records an explicit ``-_id`` under inclusion mode, the one
    mix the grammar allows. An empty projection means "all fields".
    """

    mode: ProjectionMode = ProjectionMode.INCLUDE
    paths: Tuple[str, ...] = ()
    exclude_id: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.paths and not self.exclude_id

    @property
    def is_inclusion(self) -> bool:
        return self.mode is ProjectionMode.INCLUDE

    def keeps(self, path: str) -> bool:
        """Whether a top-level field survives this projection."""
        if path == ID_FIELD and self.exclude_id:
            return False
        if self.is_empty:
            return True
        if self.is_inclusion:
            if path == ID_FIELD:
                return True
            return any(p == path or p.startswith(path + ".") for p in self.paths)
        return path not in self.paths

    def to_mongo(self) -> Dict[str, int]:
        """Render as a MongoDB projection document."""
        flag = 1 if self.is_inclusion else 0
        doc = {path: flag for path in self.paths}
        if self.exclude_id:
            doc[ID_FIELD] = 0
        return doc


@dataclass(frozen=True)
class SortKey:
    path: str
    direction: int = ASCENDING


@dataclass(frozen=True)
class QueryDescriptor:
    """Parsed filter/sort/paging/projection request."""

    filter: And = field(default_factory=And)
    sort: Tuple[SortKey, ...] = ()
    skip: int = 0
    limit: int = 30
    projection: Projection = field(default_factory=Projection)

    def predicates(self) -> List[Predicate]:
        """Ad-hoc leaf predicates in request order."""
        return [child for child in self.filter.children if isinstance(child, Predicate)]

    def raw_filters(self) -> List[RawFilter]:
        return [child for child in self.filter.children if isinstance(child, RawFilter)]
