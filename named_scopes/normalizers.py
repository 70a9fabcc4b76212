"""Argument-shaping rules for generated scopes.

Each generated scope accepts positional arguments and optional keyword
arguments. Keyword arguments are folded into one trailing mapping, so
``Post.conditions(published=True)`` and ``Post.conditions({"published": True})``
produce the same fragment.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

Normalizer = Callable[[tuple[Any, ...]], Any]
ScopeBody = Callable[..., Mapping[str, Any]]


def fold_arguments(args: tuple[Any, ...], kwargs: dict[str, Any]) -> tuple[Any, ...]:
    if kwargs:
        return (*args, dict(kwargs))
    return args


def collapse_arguments(args: tuple[Any, ...]) -> Any:
    """One argument passes through, several become a list, none an empty list."""
    if len(args) == 1:
        return args[0]
    return list(args)


def switch_arguments(args: tuple[Any, ...]) -> Any:
    if not args:
        return True
    return args[0]


def options_arguments(args: tuple[Any, ...]) -> Any:
    if not args or args[0] is None:
        return {}
    return args[0]


def fragment_factory(key: str, normalizer: Normalizer) -> ScopeBody:
    """Build a scope body producing ``{key: normalizer(args)}``."""

    def body(*args: Any, **kwargs: Any) -> dict[str, Any]:
        return {key: normalizer(fold_arguments(args, kwargs))}

    body.__name__ = f"{key}_scope"
    body.__qualname__ = body.__name__
    return body


def options_factory() -> ScopeBody:
    def body(*args: Any, **kwargs: Any) -> Mapping[str, Any]:
        return options_arguments(fold_arguments(args, kwargs))

    body.__name__ = "all_scope"
    body.__qualname__ = body.__name__
    return body
