import typing

import attr
from google.cloud import datastore
from google.cloud.datastore import Key
from google.cloud.datastore.query import PropertyFilter

from datastore_models.errors import ConfigurationError

KEY_PROPERTY = "__key__"
HAS_ANCESTOR = "HAS_ANCESTOR"

# Operators the store accepts on ordinary properties
OPERATORS = frozenset(["=", "<", "<=", ">", ">=", "!=", "IN", "NOT_IN"])

RECOGNIZED_OPTIONS = frozenset(["ancestor", "cursor", "limit", "order", "desc_order", "select", "distinct_on", "where"])


@attr.s(auto_attribs=True, frozen=True)
class Filter:
    property: str
    operator: str
    value: typing.Any

    @property
    def is_ancestor(self) -> bool:
        return self.property == KEY_PROPERTY and self.operator == HAS_ANCESTOR


@attr.s(auto_attribs=True)
class QuerySpec:
    kind: str
    filters: typing.List[Filter] = attr.Factory(list)
    orders: typing.List[str] = attr.Factory(list)
    projection: typing.List[str] = attr.Factory(list)
    distinct_on: typing.List[str] = attr.Factory(list)
    cursor: typing.Optional[typing.Union[bytes, str]] = None
    limit: typing.Optional[int] = None

    @property
    def ancestor(self) -> typing.Optional[Key]:
        for query_filter in self.filters:
            if query_filter.is_ancestor:
                return query_filter.value
        return None

    @property
    def property_filters(self) -> typing.List[Filter]:
        return [query_filter for query_filter in self.filters if not query_filter.is_ancestor]

    def compile(self, client: datastore.Client) -> datastore.Query:
        query = client.query(
            kind=self.kind, projection=self.projection, order=self.orders, distinct_on=self.distinct_on
        )
        if self.ancestor is not None:
            query.ancestor = self.ancestor
        for query_filter in self.property_filters:
            query.add_filter(filter=PropertyFilter(query_filter.property, query_filter.operator, query_filter.value))
        return query


def _as_list(value: typing.Union[str, typing.Sequence[str]]) -> typing.List[str]:
    if isinstance(value, str):
        return [value]
    return list(value)


def _is_triple(value: typing.Any) -> bool:
    return isinstance(value, (list, tuple)) and len(value) == 3 and isinstance(value[0], str)


def _parse_filter(triple: typing.Any) -> Filter:
    if not _is_triple(triple):
        raise ConfigurationError(f"A filter must be a (property, operator, value) triple, got {triple!r}")
    name, operator, value = triple
    if operator not in OPERATORS:
        raise ConfigurationError(f"Unsupported filter operator {operator!r} on {name!r}")
    if name == KEY_PROPERTY and not isinstance(value, Key):
        raise ConfigurationError(f"Filters on {KEY_PROPERTY} need a Key value")
    return Filter(name, operator, value)


def _parse_where(where: typing.Any) -> typing.List[Filter]:
    # Either one triple or a list of triples, ANDed together
    if _is_triple(where):
        return [_parse_filter(where)]
    if not isinstance(where, (list, tuple)):
        raise ConfigurationError(f"Unsupported where clause {where!r}")
    return [_parse_filter(triple) for triple in where if triple is not None]


def build_query(kind: str, **options: typing.Any) -> QuerySpec:
    unknown = set(options) - RECOGNIZED_OPTIONS
    if unknown:
        raise ConfigurationError(f"Unrecognized query options: {', '.join(sorted(unknown))}")

    spec = QuerySpec(kind)
    ancestor = options.get("ancestor")
    if ancestor is not None:
        if not isinstance(ancestor, Key):
            raise ConfigurationError(f"Ancestor must be a Key, got {type(ancestor).__name__}")
        spec.filters.append(Filter(KEY_PROPERTY, HAS_ANCESTOR, ancestor))
    if options.get("cursor"):
        spec.cursor = options["cursor"]
    limit = options.get("limit")
    if limit is not None:
        if not isinstance(limit, int) or isinstance(limit, bool) or limit < 0:
            raise ConfigurationError(f"Limit must be a non-negative integer, got {limit!r}")
        spec.limit = limit
    if options.get("order"):
        spec.orders.append(options["order"])
    if options.get("desc_order"):
        spec.orders.append(f"-{options['desc_order']}")
    if options.get("select"):
        spec.projection.extend(_as_list(options["select"]))
    if options.get("distinct_on"):
        spec.distinct_on.extend(_as_list(options["distinct_on"]))
    if options.get("where"):
        spec.filters.extend(_parse_where(options["where"]))
    return spec
