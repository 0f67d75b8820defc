"""Plan limit table and the advisory limit checker.

Limits are static. ``-1`` on a numeric limit means unlimited. Checks are
advisory: two concurrent requests can both pass before either write lands.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass

from soloflow.models.billing import LimitFeature, Plan

UNLIMITED = -1

PRO_PLAN_REQUIRED_MESSAGE = "This feature is only available on Pro plan"


@dataclass(frozen=True)
class PlanLimits:
    max_clients: int
    max_projects: int
    max_invoices_per_month: int
    can_export_pdf: bool
    has_advanced_features: bool

    def as_dict(self) -> dict[str, int | bool]:
        return asdict(self)


@dataclass(frozen=True)
class LimitCheck:
    allowed: bool
    message: str | None = None


PLAN_LIMITS: dict[Plan, PlanLimits] = {
    Plan.TRIAL: PlanLimits(
        max_clients=3,
        max_projects=5,
        max_invoices_per_month=10,
        can_export_pdf=False,
        has_advanced_features=False,
    ),
    Plan.PRO: PlanLimits(
        max_clients=UNLIMITED,
        max_projects=UNLIMITED,
        max_invoices_per_month=UNLIMITED,
        can_export_pdf=True,
        has_advanced_features=True,
    ),
}


def resolve_plan(plan: Plan | str | None) -> Plan:
    """Map any plan name to a known plan; unknown names fail safe to trial."""
    if isinstance(plan, Plan):
        return plan
    try:
        return Plan((plan or "").strip().lower())
    except ValueError:
        return Plan.TRIAL


def limits_for(plan: Plan | str | None) -> PlanLimits:
    return PLAN_LIMITS[resolve_plan(plan)]


def check_limit(
    plan: Plan | str | None,
    feature: LimitFeature | str,
    current_count: int | None = None,
) -> LimitCheck:
    try:
        feature = LimitFeature(feature)
    except ValueError as exc:
        raise ValueError(f"Unknown limit feature: {feature}") from exc

    resolved = resolve_plan(plan)
    limit = getattr(PLAN_LIMITS[resolved], feature.value)

    if isinstance(limit, bool):
        return LimitCheck(allowed=limit, message=None if limit else PRO_PLAN_REQUIRED_MESSAGE)

    if limit == UNLIMITED or current_count is None:
        return LimitCheck(allowed=True)

    allowed = current_count < limit
    message = None if allowed else f"You've reached the limit of {limit} for your {resolved.value} plan"
    return LimitCheck(allowed=allowed, message=message)
