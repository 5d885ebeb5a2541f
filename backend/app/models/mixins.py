"""Column helpers shared by the content models."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import DDL, Table, event, inspect, select
from sqlalchemy.orm.base import NO_VALUE
from sqlalchemy.orm.state import InstanceState

OWNER_IMMUTABLE_MESSAGE = "Content owner cannot be reassigned"

OWNER_GUARD_FUNCTION = DDL(
    """
    CREATE OR REPLACE FUNCTION reject_owner_change() RETURNS trigger AS $$
    BEGIN
        IF NEW.user_id IS DISTINCT FROM OLD.user_id THEN
            RAISE EXCEPTION 'Content owner cannot be reassigned';
        END IF;
        RETURN NEW;
    END;
    $$ LANGUAGE plpgsql
    """
)

POSTGRES_OWNER_TRIGGER = DDL(
    "CREATE TRIGGER %(table)s_owner_immutable BEFORE UPDATE OF user_id ON %(table)s "
    "FOR EACH ROW EXECUTE FUNCTION reject_owner_change()"
)

SQLITE_OWNER_TRIGGER = DDL(
    "CREATE TRIGGER %(table)s_owner_immutable BEFORE UPDATE OF user_id ON %(table)s "
    "FOR EACH ROW WHEN NEW.user_id IS NOT OLD.user_id "
    "BEGIN SELECT RAISE(ABORT, 'Content owner cannot be reassigned'); END"
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _persisted_owner(state: InstanceState) -> Any:
    # The attribute is expired or deferred; ask the database directly.
    if state.session is None or state.identity is None:
        return None
    mapper = state.mapper
    stmt = select(mapper.local_table.c.user_id).where(mapper.primary_key[0] == state.identity[0])
    with state.session.no_autoflush:
        return state.session.execute(stmt).scalar_one_or_none()


def reject_owner_change(instance: Any, value: uuid.UUID | None) -> uuid.UUID | None:
    """Return ``value`` unless it would reassign the owner of a stored record.

    Ownership is fixed at creation: once a content row has been flushed its
    ``user_id`` can only be written with the value it already holds.
    """

    state = inspect(instance)
    if state.transient or state.pending:
        return value
    current = state.attrs.user_id.loaded_value
    if current is NO_VALUE:
        current = _persisted_owner(state)
    if current is not None and value != current:
        raise ValueError(OWNER_IMMUTABLE_MESSAGE)
    return value


def guard_owner_column(table: Table) -> None:
    """Install a trigger rejecting ``user_id`` updates when ``table`` is created.

    Bulk ``UPDATE`` statements skip ORM validators; the trigger covers them.
    """

    event.listen(table, "after_create", OWNER_GUARD_FUNCTION.execute_if(dialect="postgresql"))
    event.listen(table, "after_create", POSTGRES_OWNER_TRIGGER.execute_if(dialect="postgresql"))
    event.listen(table, "after_create", SQLITE_OWNER_TRIGGER.execute_if(dialect="sqlite"))
