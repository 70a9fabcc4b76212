"""Translate accumulated scope options into a SQLAlchemy query."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy import and_, asc, bindparam, column, desc, inspect, table, text
from sqlalchemy.orm import Query, RelationshipProperty, Session, aliased, load_only, selectinload
from sqlalchemy.orm.attributes import QueryableAttribute
from sqlalchemy.sql.expression import ClauseElement, FromClause, Select

from named_scopes.errors import InvalidScopeOptionError

logger = logging.getLogger(__name__)

QUERY_OPTIONS = (
    "from",
    "select",
    "joins",
    "include",
    "conditions",
    "group",
    "having",
    "order",
    "limit",
    "offset",
    "lock",
)
# Applied to the loaded records rather than the query.
RECORD_OPTIONS = ("readonly",)


class Conjunction(tuple):
    """Criteria collected from several scopes, AND-ed together."""


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, (list, tuple)) and not value)


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _entity_name(entity: Any) -> str:
    return inspect(entity).class_.__name__


def _attribute(entity: Any, key: str, name: str) -> QueryableAttribute:
    attr = getattr(entity, name, None)
    if not isinstance(attr, QueryableAttribute):
        raise InvalidScopeOptionError(key, name, f"'{name}' is not an attribute of {_entity_name(entity)}")
    return attr


def _relationship(entity: Any, key: str, item: Any) -> QueryableAttribute:
    attr = _attribute(entity, key, item) if isinstance(item, str) else item
    if not isinstance(getattr(attr, "property", None), RelationshipProperty):
        raise InvalidScopeOptionError(key, item, "expected a relationship")
    return attr


def resolve_entity(model: type, value: Any) -> Any:
    if is_blank(value):
        return model
    if isinstance(value, str):
        shape = table(value, *(column(col.name) for col in model.__table__.columns))
        return aliased(model, shape, adapt_on_names=True)
    if isinstance(value, Select):
        value = value.subquery()
    if isinstance(value, FromClause):
        return aliased(model, value, adapt_on_names=True)
    raise InvalidScopeOptionError("from", value, "expected a table name or a selectable")


def _bound_sql(key: str, sql: str, binds: list[Any]) -> ClauseElement:
    if len(binds) == 1 and isinstance(binds[0], Mapping) and "?" not in sql:
        params = [bindparam(name, value, unique=True) for name, value in binds[0].items()]
        return text(sql).bindparams(*params)

    parts = sql.split("?")
    if len(parts) - 1 != len(binds):
        raise InvalidScopeOptionError(
            key, [sql, *binds], f"expected {len(parts) - 1} bind values, got {len(binds)}"
        )
    names = [f"{key}_{index}" for index in range(len(binds))]
    statement = parts[0] + "".join(f":{name}{part}" for name, part in zip(names, parts[1:]))
    params = [bindparam(name, value, unique=True) for name, value in zip(names, binds)]
    return text(statement).bindparams(*params)


def _comparison(entity: Any, key: str, name: str, value: Any) -> ClauseElement:
    attr = _attribute(entity, key, name)
    prop = attr.property
    if isinstance(prop, RelationshipProperty):
        if not isinstance(value, Mapping):
            raise InvalidScopeOptionError(key, {name: value}, "relationship criteria must be a mapping")
        criteria = and_(*predicates(prop.mapper.class_, key, value))
        return attr.any(criteria) if prop.uselist else attr.has(criteria)
    if value is None:
        return attr.is_(None)
    if isinstance(value, (list, tuple, set, frozenset)):
        return attr.in_(list(value))
    return attr == value


def predicates(entity: Any, key: str, value: Any) -> list[ClauseElement]:
    """Turn a conditions or having value into a list of SQL predicates.

    Accepted shapes:
        {"published": True}           equality, IN for sequences, IS NULL for None
        "published = 1"                raw SQL
        ["published = ?", True]        raw SQL with positional binds
        ["title = :title", {...}]      raw SQL with named binds
        Post.published.is_(True)       SQL expressions
        [expr, {"visible": True}]      anything above, AND-ed
    """
    if is_blank(value):
        return []
    if isinstance(value, str):
        if "?" in value:
            return [_bound_sql(key, value, [])]
        return [text(value)]
    if isinstance(value, Conjunction):
        return [clause for item in value for clause in predicates(entity, key, item)]
    if isinstance(value, Mapping):
        return [_comparison(entity, key, name, item) for name, item in value.items()]
    if isinstance(value, (list, tuple)):
        head, rest = value[0], list(value[1:])
        if isinstance(head, str) and ("?" in head or (rest and isinstance(rest[0], Mapping))):
            return [_bound_sql(key, head, rest)]
        result: list[ClauseElement] = []
        for item in value:
            result.extend(predicates(entity, key, item))
        return result
    if isinstance(value, ClauseElement):
        return [value]
    raise InvalidScopeOptionError(key, value, "unsupported condition")


def _ordering(entity: Any, value: Any) -> list[Any]:
    clauses: list[Any] = []
    for item in _as_list(value):
        if not isinstance(item, str):
            clauses.append(item)
            continue
        for part in item.split(","):
            tokens = part.split()
            if not tokens:
                continue
            attr = getattr(entity, tokens[0], None)
            direction = tokens[1].lower() if len(tokens) == 2 else "asc"
            if isinstance(attr, QueryableAttribute) and len(tokens) <= 2 and direction in {"asc", "desc"}:
                clauses.append(desc(attr) if direction == "desc" else asc(attr))
            else:
                clauses.append(text(part.strip()))
    return clauses


def _grouping(entity: Any, value: Any) -> list[Any]:
    clauses: list[Any] = []
    for item in _as_list(value):
        if not isinstance(item, str):
            clauses.append(item)
            continue
        for part in item.split(","):
            name = part.strip()
            if not name:
                continue
            attr = getattr(entity, name, None)
            clauses.append(attr if isinstance(attr, QueryableAttribute) else text(name))
    return clauses


def _load_only(entity: Any, value: Any) -> list[QueryableAttribute]:
    attrs: list[QueryableAttribute] = []
    for item in _as_list(value):
        if isinstance(item, QueryableAttribute):
            attrs.append(item)
        elif isinstance(item, str):
            names = [name.strip() for name in item.split(",") if name.strip()]
            attrs.extend(_attribute(entity, "select", name) for name in names)
        else:
            raise InvalidScopeOptionError("select", item, "expected attribute names")
    return attrs


def _loaders(entity: Any, value: Any, parent: Any = None) -> list[Any]:
    loaders: list[Any] = []
    for item in _as_list(value):
        if isinstance(item, Mapping):
            for name, nested in item.items():
                attr = _relationship(entity, "include", name)
                loader = parent.selectinload(attr) if parent is not None else selectinload(attr)
                if is_blank(nested):
                    loaders.append(loader)
                else:
                    loaders.extend(_loaders(attr.property.mapper.class_, nested, loader))
            continue
        attr = _relationship(entity, "include", item)
        loaders.append(parent.selectinload(attr) if parent is not None else selectinload(attr))
    return loaders


def _integer(key: str, value: Any) -> int:
    if isinstance(value, bool):
        raise InvalidScopeOptionError(key, value, "expected an integer")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidScopeOptionError(key, value, "expected an integer") from exc


def _apply_lock(query: Query, value: Any) -> Query:
    if value is True:
        return query.with_for_update()
    if value is False or is_blank(value):
        return query
    if isinstance(value, Mapping):
        return query.with_for_update(**value)
    raise InvalidScopeOptionError("lock", value, "expected a boolean or with_for_update() arguments")


def build_query(session: Session, model: type, options: Mapping[str, Any]) -> Query:
    """Build a query for ``model`` from merged scope options."""
    unknown = [key for key in options if key not in QUERY_OPTIONS and key not in RECORD_OPTIONS]
    if unknown:
        raise InvalidScopeOptionError(unknown[0], options[unknown[0]], "unknown option")

    entity = resolve_entity(model, options.get("from"))
    query = session.query(entity)

    value = options.get("select")
    if not is_blank(value):
        query = query.options(load_only(*_load_only(entity, value)))

    value = options.get("joins")
    if not is_blank(value):
        for item in _as_list(value):
            query = query.join(_relationship(entity, "joins", item) if isinstance(item, str) else item)

    value = options.get("include")
    if not is_blank(value):
        query = query.options(*_loaders(entity, value))

    criteria = predicates(entity, "conditions", options.get("conditions"))
    if criteria:
        query = query.filter(*criteria)

    value = options.get("group")
    if not is_blank(value):
        query = query.group_by(*_grouping(entity, value))

    criteria = predicates(entity, "having", options.get("having"))
    if criteria:
        query = query.having(and_(*criteria))

    value = options.get("order")
    if not is_blank(value):
        query = query.order_by(*_ordering(entity, value))

    value = options.get("limit")
    if not is_blank(value):
        query = query.limit(_integer("limit", value))

    value = options.get("offset")
    if not is_blank(value):
        query = query.offset(_integer("offset", value))

    query = _apply_lock(query, options.get("lock"))

    logger.debug("scope_query_built model=%s options=%s", model.__name__, sorted(options))
    return query
