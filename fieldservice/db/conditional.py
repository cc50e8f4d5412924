"""Compare-and-swap updates at the storage level.

Used for the scheduler claim (advance next_execution only if it still holds
the value the worker read) and for cancellations (change status only if it
still holds the observed status). Correct across processes because the
check and the write are one UPDATE statement.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import update
from sqlalchemy.orm import Session


def conditional_update(
    db: Session,
    model: type,
    row_id: int,
    expected: dict[str, Any],
    values: dict[str, Any],
) -> bool:
    """
    UPDATE model SET values WHERE id = row_id AND every expected column matches.

    ``None`` in ``expected`` means the column must be NULL. Does not commit;
    the caller owns the transaction. Returns True when exactly one row was
    swapped, False when another writer got there first.
    """
    conditions = [model.id == row_id]
    for column_name, value in expected.items():
        column = getattr(model, column_name)
        if value is None:
            conditions.append(column.is_(None))
        else:
            conditions.append(column == value)

    result = db.execute(
        update(model)
        .where(*conditions)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
