class NamedScopesError(Exception):
    """Base exception for named scope failures."""


class ScopeConfigurationError(NamedScopesError):
    """Raised when the scope registry tables are inconsistent."""


class ScopeExecutionError(NamedScopesError):
    """Raised when a scope cannot be executed."""


class InvalidScopeOptionError(ScopeExecutionError):
    """Raised when an accumulated option cannot be translated into a query."""

    def __init__(self, key: str, value, reason: str):
        self.key = key
        self.value = value
        super().__init__(f"Invalid value for '{key}' option ({value!r}): {reason}")


class ReadOnlyRecordError(NamedScopesError):
    """Raised when a record loaded through a readonly scope is flushed."""

    def __init__(self, instance):
        self.instance = instance
        super().__init__(f"{type(instance).__name__} was loaded as read-only and cannot be persisted")
