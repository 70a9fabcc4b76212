"""Chainable scopes for SQLAlchemy models.

Usage:
    from named_scopes import Base

    class Post(Base):
        ...

    posts = (
        Post.conditions(published=True)
        .include("author", "comments")
        .order("created_at desc")
        .limit(10)
        .to_list(db)
    )
"""

from __future__ import annotations

import inspect
from collections.abc import Iterator, Mapping
from typing import TYPE_CHECKING, Any, Generic, Self, TypeVar

from named_scopes.compiler import Conjunction, build_query, is_blank
from named_scopes.config import settings
from named_scopes.errors import ScopeConfigurationError, ScopeExecutionError
from named_scopes.readonly import mark_readonly

if TYPE_CHECKING:
    from sqlalchemy.orm import Query, Session

    from named_scopes.normalizers import ScopeBody

T = TypeVar("T")

MERGE_STRATEGIES = ("replace", "combine")
CONJUNCTIVE_KEYS = frozenset({"conditions", "having"})
CUMULATIVE_KEYS = frozenset({"joins", "include"})


def _combine(key: str, current: Any, value: Any) -> Any:
    if is_blank(current):
        return value
    if is_blank(value):
        return current
    if key in CONJUNCTIVE_KEYS:
        items = tuple(current) if isinstance(current, Conjunction) else (current,)
        return Conjunction((*items, value))
    current_items = list(current) if isinstance(current, (list, tuple)) else [current]
    new_items = list(value) if isinstance(value, (list, tuple)) else [value]
    return current_items + new_items


def validate_merge_strategy(strategy: str) -> str:
    if strategy not in MERGE_STRATEGIES:
        raise ScopeConfigurationError(
            f"Unknown merge strategy '{strategy}'. Expected one of: {', '.join(MERGE_STRATEGIES)}."
        )
    return strategy


def merge_options(current: Mapping[str, Any], fragment: Mapping[str, Any], strategy: str = "replace") -> dict[str, Any]:
    """Merge a scope fragment into accumulated options.

    With ``replace`` the later value wins on a key collision. With ``combine``
    conditions and having clauses are AND-ed while joins and includes
    accumulate; every other key is still replaced.
    """
    validate_merge_strategy(strategy)
    merged = dict(current)
    for key, value in fragment.items():
        if strategy == "combine" and key in merged and key in CONJUNCTIVE_KEYS | CUMULATIVE_KEYS:
            merged[key] = _combine(key, merged[key], value)
        else:
            merged[key] = value
    return merged


def scope_table(model: Any) -> dict[str, ScopeBody]:
    return getattr(model, "_named_scopes", None) or {}


class Scope(Generic[T]):
    """Lazily evaluated query options for one model.

    Every registered scope name is callable on a scope and returns a new
    scope with the fragment merged in; nothing touches the database until
    one of the execution methods runs. Execution needs a session, passed
    directly or bound with ``bind()``.
    """

    def __init__(
        self,
        model: type[T],
        options: Mapping[str, Any] | None = None,
        session: Session | None = None,
        strategy: str | None = None,
    ):
        self.model = model
        self._options: dict[str, Any] = dict(options or {})
        self.session = session
        self.strategy = strategy or settings.merge_strategy

    def _clone(self) -> Self:
        """Create a copy of this scope with current state."""
        new = self.__class__.__new__(self.__class__)
        new.model = self.model
        new._options = dict(self._options)
        new.session = self.session
        new.strategy = self.strategy
        return new

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_") or "model" not in self.__dict__:
            raise AttributeError(name)

        body = scope_table(self.model).get(name)
        if body is not None:

            def chained(*args: Any, **kwargs: Any) -> Scope[T]:
                return self.merge(body(*args, **kwargs))

            chained.__name__ = name
            return chained

        # Reusable scopes written as classmethods on the model.
        if isinstance(inspect.getattr_static(self.model, name, None), classmethod):
            method = getattr(self.model, name)

            def delegated(*args: Any, **kwargs: Any) -> Any:
                result = method(*args, **kwargs)
                if isinstance(result, Scope) and result.model is self.model:
                    return self.merge(result._options)
                return result

            delegated.__name__ = name
            return delegated

        raise AttributeError(f"{self.model.__name__} has no scope named '{name}'")

    def __repr__(self) -> str:
        return f"<Scope {self.model.__name__} {self._options!r}>"

    @property
    def options(self) -> dict[str, Any]:
        return dict(self._options)

    def merge(self, fragment: Mapping[str, Any]) -> Self:
        clone = self._clone()
        clone._options = merge_options(self._options, fragment, self.strategy)
        return clone

    def bind(self, session: Session) -> Self:
        clone = self._clone()
        clone.session = session
        return clone

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def _resolve_session(self, session: Session | None) -> Session:
        session = session if session is not None else self.session
        if session is None:
            raise ScopeExecutionError(
                f"{self.model.__name__} scope has no session; pass one or call bind() first."
            )
        return session

    def _loaded(self, records: list[Any]) -> list[Any]:
        # The session hands back one instance per row, so the latest load
        # decides whether it is read-only.
        mark_readonly(records, bool(self._options.get("readonly", False)))
        return records

    def query(self, session: Session | None = None) -> Query:
        """Return the SQLAlchemy Query built from the accumulated options."""
        return build_query(self._resolve_session(session), self.model, self._options)

    def to_list(self, session: Session | None = None) -> list[T]:
        return self._loaded(self.query(session).all())

    def first(self, session: Session | None = None) -> T | None:
        record = self.query(session).first()
        self._loaded([record])
        return record

    def one(self, session: Session | None = None) -> T:
        """Return exactly one record (raises if there is none or several)."""
        record = self.query(session).one()
        self._loaded([record])
        return record

    def one_or_none(self, session: Session | None = None) -> T | None:
        record = self.query(session).one_or_none()
        self._loaded([record])
        return record

    def count(self, session: Session | None = None) -> int:
        return self.query(session).count()

    def exists(self, session: Session | None = None) -> bool:
        session = self._resolve_session(session)
        return session.query(self.query(session).exists()).scalar()

    def __iter__(self) -> Iterator[T]:
        return iter(self.to_list())


class ScopedMixin:
    """Host hook for generated scopes.

    ``named_scope`` attaches a classmethod returning a fresh ``Scope``.
    Subclasses get their own scope table the first time they register a
    scope, so registering on a model never changes its parents.
    """

    @classmethod
    def named_scope(cls, name: str, body: ScopeBody) -> None:
        table = cls.__dict__.get("_named_scopes")
        if table is None:
            table = dict(scope_table(cls))
            cls._named_scopes = table
        table[name] = body
        setattr(cls, name, classmethod(_scope_method(name)))

    @classmethod
    def scope_names(cls) -> list[str]:
        return sorted(scope_table(cls))

    @classmethod
    def using(cls, session: Session) -> Scope:
        return Scope(cls, session=session)


def _scope_method(name: str):
    def scope_method(cls, *args: Any, **kwargs: Any) -> Scope:
        return getattr(Scope(cls), name)(*args, **kwargs)

    scope_method.__name__ = name
    return scope_method
