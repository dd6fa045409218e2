"""Read-only reports over activation rules and their audit trail."""

from datetime import datetime, timedelta, timezone

from pydantic import BaseModel
from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tacs.engine.matcher import specificity
from tacs.models import ActivationAudit, ActivationRule
from tacs.storage.repositories import get_active_rules, get_audit_since


class ActivationSummary(BaseModel):
    tenant_id: str
    telemetry_kind: str
    total: int
    enabled: int
    avg_sampling_rate: float


async def activation_summary(
    db: AsyncSession, tenant_id: str | None = None
) -> list[ActivationSummary]:
    """Rule counts and average sampling rate per tenant and kind."""
    query = select(
        ActivationRule.tenant_id,
        ActivationRule.telemetry_kind,
        func.count(ActivationRule.id),
        func.sum(case((ActivationRule.enabled.is_(True), 1), else_=0)),
        func.avg(ActivationRule.sampling_rate),
    ).group_by(ActivationRule.tenant_id, ActivationRule.telemetry_kind)
    if tenant_id is not None:
        query = query.where(ActivationRule.tenant_id == tenant_id)
    result = await db.execute(
        query.order_by(ActivationRule.tenant_id, ActivationRule.telemetry_kind)
    )
    return [
        ActivationSummary(
            tenant_id=tenant,
            telemetry_kind=kind,
            total=total,
            enabled=enabled or 0,
            avg_sampling_rate=round(float(avg or 0.0), 4),
        )
        for tenant, kind, total, enabled, avg in result.all()
    ]


async def active_configurations(
    db: AsyncSession,
    tenant_id: str | None = None,
    telemetry_kind: str | None = None,
    at: datetime | None = None,
) -> list[ActivationRule]:
    """Rules in effect now, most specific first."""
    at = at or datetime.now(timezone.utc)
    rules = await get_active_rules(db, at, tenant_id, telemetry_kind)
    return sorted(rules, key=lambda r: specificity(r.object_pattern), reverse=True)


async def recent_changes(
    db: AsyncSession,
    hours: int = 24,
    tenant_id: str | None = None,
    at: datetime | None = None,
) -> list[ActivationAudit]:
    """Audit records from the last `hours`, newest first."""
    since = (at or datetime.now(timezone.utc)) - timedelta(hours=hours)
    return await get_audit_since(db, since, tenant_id)
