"""Named scopes for every query option.

Instead of building one options object per query:

    Post.all({"conditions": {"published": True}, "select": "title", "include": "author"})

chain one scope per option:

    Post.conditions(published=True).select("title").include("author")

Importing this package registers the scopes on ``ScopedMixin`` (and so on
``Base``). Use ``apply`` to register them on any other class that provides a
``named_scope(name, body)`` hook.
"""

from named_scopes.config import settings
from named_scopes.db import Base
from named_scopes.errors import (
    InvalidScopeOptionError,
    NamedScopesError,
    ReadOnlyRecordError,
    ScopeConfigurationError,
    ScopeExecutionError,
)
from named_scopes.generator import apply
from named_scopes.readonly import is_readonly
from named_scopes.registry import (
    ALIAS_VARIANTS,
    FIND_BOOLEAN_SWITCHES,
    FIND_PARAMETERS,
    ScopeConfig,
    config_for_variant,
)
from named_scopes.scope import Scope, ScopedMixin, merge_options, validate_merge_strategy

validate_merge_strategy(settings.merge_strategy)
if settings.auto_apply:
    apply(ScopedMixin)

__all__ = [
    "ALIAS_VARIANTS",
    "FIND_BOOLEAN_SWITCHES",
    "FIND_PARAMETERS",
    "Base",
    "InvalidScopeOptionError",
    "NamedScopesError",
    "ReadOnlyRecordError",
    "Scope",
    "ScopeConfig",
    "ScopeConfigurationError",
    "ScopeExecutionError",
    "ScopedMixin",
    "apply",
    "config_for_variant",
    "is_readonly",
    "merge_options",
]
