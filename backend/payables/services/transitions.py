from __future__ import annotations

from typing import Any

from sqlalchemy import update
from sqlalchemy.orm import Session


def guarded_update(db: Session, model, row_id: int, *conditions: Any, **values: Any) -> bool:
    """Compare-and-set: apply ``values`` only while ``conditions`` still hold.

    The condition is evaluated by the database at write time, so two callers
    racing on the same row cannot both succeed.
    """
    result = db.execute(
        update(model)
        .where(model.id == row_id, *conditions)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
