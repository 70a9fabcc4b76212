"""Read-only records loaded through the ``readonly`` scope."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from sqlalchemy import event
from sqlalchemy.orm import Session

from named_scopes.errors import ReadOnlyRecordError

logger = logging.getLogger(__name__)

READONLY_ATTRIBUTE = "_named_scopes_readonly"


def install_readonly_guard() -> None:
    """Attach the flush guard to Session the first time a record is marked."""
    if not event.contains(Session, "before_flush", _reject_readonly_changes):
        event.listen(Session, "before_flush", _reject_readonly_changes)


def mark_readonly(instances: Iterable[Any], readonly: bool = True) -> None:
    if readonly:
        install_readonly_guard()
    for instance in instances:
        if instance is not None:
            setattr(instance, READONLY_ATTRIBUTE, bool(readonly))


def is_readonly(instance: Any) -> bool:
    return bool(getattr(instance, READONLY_ATTRIBUTE, False))


def _reject_readonly_changes(session: Session, flush_context, instances) -> None:
    changed = [instance for instance in session.dirty if session.is_modified(instance)]
    for instance in (*changed, *session.deleted):
        if is_readonly(instance):
            logger.warning("readonly_record_flush_rejected model=%s", type(instance).__name__)
            raise ReadOnlyRecordError(instance)
