from __future__ import annotations

import uuid
from datetime import datetime
from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from app.models import Overage


def increment_overage(
    db: Session,
    *,
    user_id: UUID,
    resource_type: str,
    period_start: datetime,
    period_end: datetime,
    amount: int = 1,
) -> None:
    """
    Create the period row with `amount`, or add `amount` to the existing one.

    A single INSERT ... ON CONFLICT DO UPDATE keeps concurrent increments for
    the same owner/period from losing updates.
    """
    dialect_name = getattr(getattr(db.get_bind(), "dialect", None), "name", None)
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert as upsert_insert

        conflict_kwargs = {"constraint": "uq_overages_user_type_period"}
    else:
        from sqlalchemy.dialects.sqlite import insert as upsert_insert

        conflict_kwargs = {
            "index_elements": [
                Overage.user_id,
                Overage.resource_type,
                Overage.period_start,
                Overage.period_end,
            ]
        }

    insert_stmt = upsert_insert(Overage).values(
        id=uuid.uuid4(),
        user_id=user_id,
        resource_type=resource_type,
        amount=int(amount),
        period_start=period_start,
        period_end=period_end,
        billed=False,
    )
    stmt = insert_stmt.on_conflict_do_update(
        **conflict_kwargs,
        set_={
            "amount": Overage.amount + int(amount),
            "updated_at": func.now(),
        },
    )
    db.execute(stmt)
    db.commit()


def get_overage(
    db: Session,
    *,
    user_id: UUID,
    resource_type: str,
    period_start: datetime,
    period_end: datetime,
) -> Overage | None:
    stmt: Select[tuple[Overage]] = select(Overage).where(
        Overage.user_id == user_id,
        Overage.resource_type == resource_type,
        Overage.period_start == period_start,
        Overage.period_end == period_end,
    )
    return db.execute(stmt).scalars().first()


__all__ = ["get_overage", "increment_overage"]
