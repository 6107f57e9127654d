from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy.orm import Session

from app.logging_config import logger
from app.repositories.overage_repository import increment_overage


@dataclass(frozen=True)
class QuotaDecision:
    allowed: bool
    overage_recorded: bool


def billing_period(now: datetime | None = None) -> tuple[datetime, datetime]:
    """Calendar month (UTC) containing `now`: first instant to last microsecond."""
    current = (now or datetime.now(UTC)).astimezone(UTC)
    start = current.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    last_day = calendar.monthrange(current.year, current.month)[1]
    end = current.replace(day=last_day, hour=23, minute=59, second=59, microsecond=999999)
    return start, end


def check_and_record(
    db: Session,
    *,
    owner_id: UUID,
    resource_type: str,
    current_count: int,
    plan_limit: int | None,
    record_overage: bool = True,
    now: datetime | None = None,
) -> QuotaDecision:
    """
    Advisory quota check.

    `plan_limit=None` is unbounded. Otherwise the action is allowed iff
    `current_count < plan_limit`. When it is not allowed and the caller
    proceeds anyway (`record_overage=True`), the owner's overage for the
    current billing period is created or incremented by one. The guard never
    blocks; honoring `allowed=False` is the caller's decision.
    """
    if plan_limit is None:
        return QuotaDecision(allowed=True, overage_recorded=False)

    if int(current_count) < int(plan_limit):
        return QuotaDecision(allowed=True, overage_recorded=False)

    if not record_overage:
        return QuotaDecision(allowed=False, overage_recorded=False)

    period_start, period_end = billing_period(now)
    increment_overage(
        db,
        user_id=owner_id,
        resource_type=resource_type,
        period_start=period_start,
        period_end=period_end,
    )
    logger.info(
        "Recorded %s overage for owner %s (count=%s, limit=%s, period=%s)",
        resource_type,
        owner_id,
        current_count,
        plan_limit,
        period_start.date().isoformat(),
    )
    return QuotaDecision(allowed=False, overage_recorded=True)


__all__ = ["QuotaDecision", "billing_period", "check_and_record"]
