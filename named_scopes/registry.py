"""Registry of the query parameters exposed as named scopes."""

from __future__ import annotations

import keyword

from pydantic import BaseModel, ConfigDict, model_validator

from named_scopes.errors import ScopeConfigurationError

FIND_PARAMETERS: tuple[str, ...] = (
    "conditions",
    "order",
    "group",
    "having",
    "limit",
    "offset",
    "joins",
    "include",
    "select",
    "from",
)
FIND_BOOLEAN_SWITCHES: tuple[str, ...] = ("readonly", "lock")
ALL_SCOPE = "all"

# Public alias name -> canonical parameter key.
ALIAS_VARIANTS: dict[str, dict[str, str]] = {
    "include": {},
    "where_with": {
        "where": "conditions",
        "with": "include",
    },
}


def python_spelling(name: str) -> str | None:
    """Return the trailing-underscore spelling for names that are keywords."""
    if keyword.iskeyword(name):
        return f"{name}_"
    return None


class ScopeConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    parameters: tuple[str, ...] = FIND_PARAMETERS
    switches: tuple[str, ...] = FIND_BOOLEAN_SWITCHES
    aliases: dict[str, str] = {}

    @model_validator(mode="after")
    def validate_names(self) -> ScopeConfig:
        seen: dict[str, str] = {}

        def claim(name: str, owner: str) -> None:
            if not name or not name.isidentifier():
                raise ScopeConfigurationError(f"Scope name {name!r} is not a valid identifier.")
            if name in seen:
                raise ScopeConfigurationError(
                    f"Scope name '{name}' from {owner} collides with {seen[name]}."
                )
            seen[name] = owner
            spelling = python_spelling(name)
            if spelling is not None:
                claim(spelling, owner)

        claim(ALL_SCOPE, "the all scope")
        for name in self.parameters:
            claim(name, f"parameter '{name}'")
        for name in self.switches:
            claim(name, f"boolean switch '{name}'")

        keys = set(self.parameters) | set(self.switches)
        for alias, key in self.aliases.items():
            if key not in keys:
                raise ScopeConfigurationError(f"Alias '{alias}' points at unknown parameter '{key}'.")
            claim(alias, f"alias '{alias}'")
        return self

    def public_names(self) -> dict[str, str]:
        """Map every public scope name to the parameter key it produces."""
        names: dict[str, str] = {}
        entries = [(name, name) for name in (*self.parameters, *self.switches)]
        entries.extend(self.aliases.items())
        for name, key in entries:
            names[name] = key
            spelling = python_spelling(name)
            if spelling is not None:
                names[spelling] = key
        names[ALL_SCOPE] = ALL_SCOPE
        return names


def config_for_variant(variant: str) -> ScopeConfig:
    aliases = ALIAS_VARIANTS.get(variant)
    if aliases is None:
        raise ScopeConfigurationError(
            f"Unknown alias variant '{variant}'. Expected one of: {', '.join(sorted(ALIAS_VARIANTS))}."
        )
    return ScopeConfig(aliases=aliases)
