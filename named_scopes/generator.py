from __future__ import annotations

import logging
from typing import Any, Protocol

from named_scopes.config import settings
from named_scopes.normalizers import (
    ScopeBody,
    collapse_arguments,
    fragment_factory,
    options_factory,
    switch_arguments,
)
from named_scopes.registry import ALL_SCOPE, ScopeConfig, config_for_variant, python_spelling

logger = logging.getLogger(__name__)


class ScopeRegistry(Protocol):
    def named_scope(self, name: str, body: ScopeBody) -> Any: ...


def _register(target: Any, name: str, body: ScopeBody, registered: dict[str, str], key: str) -> None:
    names = [name]
    spelling = python_spelling(name)
    if spelling is not None:
        names.append(spelling)
    for public_name in names:
        target.named_scope(public_name, body)
        registered[public_name] = key
        logger.debug("named_scope_registered target=%s name=%s key=%s", _target_name(target), public_name, key)


def _target_name(target: Any) -> str:
    return getattr(target, "__name__", type(target).__name__)


def apply(target: ScopeRegistry, config: ScopeConfig | None = None) -> dict[str, str]:
    """Register one named scope per find parameter on ``target``.

    ``target`` only needs a ``named_scope(name, body)`` hook. Applying twice
    overwrites the previous registrations. Returns the public scope names
    mapped to the option key each of them produces.
    """
    if config is None:
        config = config_for_variant(settings.alias_variant)

    registered: dict[str, str] = {}
    for parameter in config.parameters:
        _register(target, parameter, fragment_factory(parameter, collapse_arguments), registered, parameter)
    for alias, parameter in config.aliases.items():
        normalizer = switch_arguments if parameter in config.switches else collapse_arguments
        _register(target, alias, fragment_factory(parameter, normalizer), registered, parameter)
    for switch in config.switches:
        _register(target, switch, fragment_factory(switch, switch_arguments), registered, switch)
    _register(target, ALL_SCOPE, options_factory(), registered, ALL_SCOPE)

    logger.info("named_scopes_applied target=%s scopes=%d", _target_name(target), len(registered))
    return registered
