"""Dialect-aware INSERT ... ON CONFLICT DO UPDATE."""

from collections.abc import Sequence
from typing import Any

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession


async def upsert(
    db: AsyncSession,
    model: type,
    values: dict[str, Any],
    *,
    conflict_columns: Sequence[str],
    update_columns: Sequence[str],
) -> None:
    """
    Insert a row or update it in place when the conflict key already exists.

    Relies on the database's per-row atomicity, so concurrent writers for the
    same key end up with the last writer's values.

    Args:
        db: Database session
        model: ORM model class whose table is written
        values: Column values for the new row
        conflict_columns: Columns of the unique constraint that identifies the row
        update_columns: Columns overwritten from `values` on conflict
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = pg_insert(model).values(**values)
    elif dialect == "sqlite":
        stmt = sqlite_insert(model).values(**values)
    else:
        raise NotImplementedError(f"upsert is not supported for dialect {dialect!r}")

    stmt = stmt.on_conflict_do_update(
        index_elements=list(conflict_columns),
        set_={column: stmt.excluded[column] for column in update_columns},
    )
    await db.execute(stmt)
