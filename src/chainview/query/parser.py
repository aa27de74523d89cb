"""Query string parser for collection endpoints.

Turns raw ``key=value`` pairs into a :class:`QueryDescriptor`::

    ?field=value            eq              ?field!=value          ne
    ?field>value  / >=      gt / gte        ?field<value  / <=     lt / lte
    ?field=v1,v2            in              ?field!=v1,v2          nin
    ?field                  exists          ?!field                not exists
    ?field=/re/flags        regex           ?field!=/re/flags      not regex
    ?filter=<json>          raw filter, ANDed with the above
    ?sort=a,-b              ?skip=N&limit=M ?fields=a,b  or  -a,-b
"""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from chainview.configs import DEFAULT_LIMIT
from chainview.commons.errors import InvalidQuery
from chainview.query.descriptor import (
    ASCENDING,
    DESCENDING,
    ID_FIELD,
    And,
    Operator,
    Predicate,
    Projection,
    ProjectionMode,
    QueryDescriptor,
    RawFilter,
    RegexValue,
    SortKey,
)

ALLOWED_FILTER_OPERATORS = {
    "$and",
    "$or",
    "$nor",
    "$not",
    "$exists",
    "$eq",
    "$ne",
    "$gt",
    "$gte",
    "$lt",
    "$lte",
    "$in",
    "$nin",
    "$regex",
    "$options",
    "$elemMatch",
    "$all",
    "$size",
}

# Alternation order matters: two-character operators must be tried first.
_TOKEN_RE = re.compile(r"^(?P<negate>!?)(?P<path>[^><!=]+)(?P<op>>=|<=|!=|=|>|<)?(?P<value>.*)$", re.DOTALL)
_PATH_RE = re.compile(r"^[A-Za-z0-9_]+(\.[A-Za-z0-9_]+)*$")
_REGEX_LITERAL_RE = re.compile(r"^/(?P<pattern>.*)/(?P<flags>[imxsu]*)$", re.DOTALL)
_STRING_LITERAL_RE = re.compile(r"^string\((?P<text>.*)\)$", re.DOTALL)
_INT_RE = re.compile(r"-?(0|[1-9][0-9]*)")
_DIGITS_RE = re.compile(r"-?[0-9]+")
_FLOAT_RE = re.compile(r"^-?(0|[1-9]\d*)?\.\d+([eE][-+]?\d+)?$|^-?(0|[1-9]\d*)[eE][-+]?\d+$", re.ASCII)
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}([T ]\d{2}:\d{2}(:\d{2}(\.\d+)?)?(Z|[+-]\d{2}:?\d{2})?)?$", re.ASCII)

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1

RawParams = Union[Mapping[str, str], Iterable[Tuple[str, str]]]


def _pairs(raw_params: RawParams) -> List[Tuple[str, str]]:
    if isinstance(raw_params, Mapping):
        return [(str(k), "" if v is None else str(v)) for k, v in raw_params.items()]
    return [(str(k), "" if v is None else str(v)) for k, v in raw_params]


def coerce_value(text: str) -> Any:
    """Convert a query-string value to its typed form.

    ``string(...)`` forces a literal string; ``true``/``false``/``null``,
    integers, decimals and ISO-8601 dates are converted; everything else
    stays a string. Integers with leading zeros or outside the int64 range
    are left as strings since they are identifiers, not quantities.
    """
    match = _STRING_LITERAL_RE.match(text)
    if match:
        return match.group("text")
    if text == "true":
        return True
    if text == "false":
        return False
    if text == "null":
        return None
    if _INT_RE.fullmatch(text):
        number = int(text)
        if _INT64_MIN <= number <= _INT64_MAX:
            return number
        return text
    if _FLOAT_RE.match(text):
        return float(text)
    if _DATE_RE.match(text):
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return text
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return text


def _check_path(path: str, param: str) -> str:
    if not _PATH_RE.match(path):
        raise InvalidQuery(param, f"'{path}' is not a valid field path.")
    return path


# Flags Python understands; "u" only affects matching on the server.
_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "x": re.VERBOSE, "s": re.DOTALL, "u": 0}


def _regex_literal(text: str, param: str) -> Optional[RegexValue]:
    match = _REGEX_LITERAL_RE.match(text)
    if not match:
        return None
    pattern, flags = match.group("pattern"), match.group("flags")
    compile_flags = 0
    for flag in flags:
        compile_flags |= _REGEX_FLAGS[flag]
    try:
        re.compile(pattern, compile_flags)
    except re.error as exc:
        raise InvalidQuery(param, f"Invalid regular expression: {exc}") from None
    return RegexValue(pattern=pattern, flags=flags)


def parse_predicate(key: str, value: str) -> Predicate:
    """Parse one ad-hoc ``field<op>value`` token."""
    token = f"{key}={value}" if value != "" else key
    match = _TOKEN_RE.match(token)
    if not match:
        raise InvalidQuery(key, "Could not parse filter expression.")

    negate = match.group("negate") == "!"
    path = _check_path(match.group("path").strip(), key)
    op = match.group("op")
    raw_value = match.group("value")

    if op is None:
        if raw_value:
            raise InvalidQuery(key, "Could not parse filter expression.")
        return Predicate(path, Operator.NOT_EXISTS if negate else Operator.EXISTS)

    if negate:
        raise InvalidQuery(key, "'!' prefix is only valid without an operator and value.")
    if raw_value == "":
        raise InvalidQuery(key, f"Missing value for operator '{op}'.")

    if op in ("=", "!="):
        regex = _regex_literal(raw_value, key)
        if regex is not None:
            return Predicate(path, Operator.REGEX if op == "=" else Operator.NOT_REGEX, regex)
        if "," in raw_value:
            values = [coerce_value(item) for item in raw_value.split(",")]
            return Predicate(path, Operator.IN if op == "=" else Operator.NIN, tuple(values))
        return Predicate(path, Operator.EQ if op == "=" else Operator.NE, coerce_value(raw_value))

    comparison = {">": Operator.GT, ">=": Operator.GTE, "<": Operator.LT, "<=": Operator.LTE}[op]
    return Predicate(path, comparison, coerce_value(raw_value))


def validate_filter_shape(filter_doc: Dict[str, Any]) -> None:
    """Validate raw filter shape and allowlist safe Mongo-like operators."""

    def _walk(value: Any) -> None:
        if isinstance(value, dict):
            for key, item in value.items():
                if key.startswith("$"):
                    if key not in ALLOWED_FILTER_OPERATORS:
                        raise InvalidQuery("filter", f"Unsupported filter operator: {key}")
                    if key in {"$and", "$or", "$nor"}:
                        if not isinstance(item, list) or not item:
                            raise InvalidQuery("filter", f"{key} must be a non-empty list.")
                        for clause in item:
                            if not isinstance(clause, dict):
                                raise InvalidQuery("filter", f"{key} clauses must be objects.")
                            _walk(clause)
                        continue
                    if key == "$not" and not isinstance(item, dict):
                        raise InvalidQuery("filter", "$not must be an object.")
                _walk(item)
        elif isinstance(value, list):
            for item in value:
                _walk(item)

    _walk(filter_doc)


def parse_filter_json(text: str) -> RawFilter:
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise InvalidQuery("filter", f"Invalid filter JSON: {exc.msg}") from exc
    if not isinstance(parsed, dict):
        raise InvalidQuery("filter", "filter must decode to a JSON object.")
    validate_filter_shape(parsed)
    return RawFilter(parsed)


def parse_sort(text: str) -> Tuple[SortKey, ...]:
    keys: List[SortKey] = []
    for entry in text.split(","):
        entry = entry.strip()
        direction = ASCENDING
        if entry.startswith("-"):
            direction = DESCENDING
            entry = entry[1:]
        elif entry.startswith("+"):
            entry = entry[1:]
        if not entry:
            raise InvalidQuery("sort", "Empty sort field.")
        keys.append(SortKey(_check_path(entry, "sort"), direction))
    return tuple(keys)


def parse_fields(text: str) -> Projection:
    included: List[str] = []
    excluded: List[str] = []
    for entry in text.split(","):
        entry = entry.strip()
        if not entry:
            raise InvalidQuery("fields", "Empty field name.")
        if entry.startswith("-"):
            excluded.append(_check_path(entry[1:], "fields"))
        else:
            included.append(_check_path(entry.lstrip("+"), "fields"))

    if included:
        exclude_id = ID_FIELD in excluded
        others = [path for path in excluded if path != ID_FIELD]
        if others:
            raise InvalidQuery(
                "fields",
                "Cannot mix inclusion and exclusion; only -_id may be combined with included fields.",
            )
        return Projection(ProjectionMode.INCLUDE, tuple(dict.fromkeys(included)), exclude_id=exclude_id)
    return Projection(ProjectionMode.EXCLUDE, tuple(dict.fromkeys(excluded)))


def _parse_int(name: str, text: str, minimum: int, maximum: Optional[int] = None) -> int:
    if not _DIGITS_RE.fullmatch(text):
        raise InvalidQuery(name, f"'{text}' is not an integer.")
    number = int(text)
    if number < minimum:
        raise InvalidQuery(name, f"must be greater than or equal to {minimum}.")
    if maximum is not None and number > maximum:
        raise InvalidQuery(name, f"must be less than or equal to {maximum}.")
    return number


def parse(
    raw_params: RawParams,
    default_limit: int = DEFAULT_LIMIT,
    max_limit: Optional[int] = None,
) -> QueryDescriptor:
    """Parse raw query parameters into a :class:`QueryDescriptor`.

    Parameters
    ----------
    raw_params : mapping or iterable of (key, value)
        Query string pairs as received. Repeated keys are allowed.
    default_limit : int, optional
        Page size when ``limit`` is absent.
    max_limit : int, optional
        Largest accepted ``limit``; unbounded when ``None``.

    Returns
    -------
    QueryDescriptor
        The typed descriptor.

    Raises
    ------
    InvalidQuery
        On any malformed parameter, naming it.
    """
    predicates: List[Predicate] = []
    raw_filter: Optional[RawFilter] = None
    sort: Tuple[SortKey, ...] = ()
    skip = 0
    limit = default_limit
    projection = Projection()

    for key, value in _pairs(raw_params):
        if key == "filter":
            raw_filter = parse_filter_json(value) if value else None
        elif key == "sort":
            sort = parse_sort(value) if value else ()
        elif key == "skip":
            skip = _parse_int("skip", value, 0)
        elif key == "limit":
            limit = _parse_int("limit", value, 1, max_limit)
        elif key == "fields":
            projection = parse_fields(value) if value else Projection()
        elif key:
            predicates.append(parse_predicate(key, value))

    children = list(predicates)
    if raw_filter is not None:
        children.append(raw_filter)
    return QueryDescriptor(
        filter=And(tuple(children)),
        sort=sort,
        skip=skip,
        limit=limit,
        projection=projection,
    )
