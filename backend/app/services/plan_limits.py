from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session

from app.repositories.user_repository import get_user_by_id
from app.settings import settings

RESOURCE_WORKFLOW = "workflow"


@dataclass(frozen=True)
class PlanConfig:
    max_workflows: int | None  # None = unlimited
    history_days: int | None  # None = unlimited
    is_paid: bool


PLAN_CONFIG: dict[str, PlanConfig] = {
    "starter": PlanConfig(max_workflows=25, history_days=30, is_paid=True),
    "trial": PlanConfig(max_workflows=500, history_days=90, is_paid=False),
    "professional": PlanConfig(max_workflows=500, history_days=90, is_paid=True),
    "enterprise": PlanConfig(max_workflows=None, history_days=None, is_paid=True),
}


def get_plan(plan_id: str | None) -> PlanConfig:
    plan = PLAN_CONFIG.get((plan_id or "").strip().lower())
    if plan is None:
        plan = PLAN_CONFIG.get(settings.default_plan_id, PLAN_CONFIG["professional"])
    return plan


class PlanLimitsProvider:
    """Resolves an owner's plan allowance; `None` means unbounded."""

    def __init__(self, db: Session) -> None:
        self._db = db

    def _plan_for(self, owner_id: UUID) -> PlanConfig:
        user = get_user_by_id(self._db, user_id=owner_id)
        return get_plan(user.plan_id if user is not None else None)

    def get_limit(self, owner_id: UUID, resource_type: str) -> int | None:
        if resource_type != RESOURCE_WORKFLOW:
            return None
        return self._plan_for(owner_id).max_workflows

    def get_history_days(self, owner_id: UUID) -> int | None:
        return self._plan_for(owner_id).history_days


__all__ = ["PLAN_CONFIG", "RESOURCE_WORKFLOW", "PlanConfig", "PlanLimitsProvider", "get_plan"]
