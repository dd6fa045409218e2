"""Repository functions for activation rules and audit records."""

from datetime import datetime

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from tacs.models import ActivationAudit, ActivationRule


async def get_candidate_rules(
    db: AsyncSession, telemetry_kind: str, tenant_id: str, at: datetime
) -> list[ActivationRule]:
    """
    Enabled rules for kind + tenant whose window contains `at`
    (active_from <= at <= active_to, or active_to is null),
    longest pattern first.
    """
    result = await db.execute(
        select(ActivationRule)
        .where(
            ActivationRule.telemetry_kind == telemetry_kind,
            ActivationRule.tenant_id == tenant_id,
            ActivationRule.enabled.is_(True),
            ActivationRule.active_from <= at,
        )
        .where(or_(ActivationRule.active_to.is_(None), ActivationRule.active_to >= at))
        .order_by(func.length(ActivationRule.object_pattern).desc(), ActivationRule.id)
    )
    return list(result.scalars().all())


async def get_rule_by_triple(
    db: AsyncSession, telemetry_kind: str, object_pattern: str, tenant_id: str
) -> ActivationRule | None:
    """Find rule by its uniqueness triple."""
    result = await db.execute(
        select(ActivationRule).where(
            ActivationRule.telemetry_kind == telemetry_kind,
            ActivationRule.object_pattern == object_pattern,
            ActivationRule.tenant_id == tenant_id,
        )
    )
    return result.scalar_one_or_none()


async def get_enabled_rules_for_tenant(
    db: AsyncSession, tenant_id: str, telemetry_kind: str | None = None
) -> list[ActivationRule]:
    """
    All currently enabled rules for a tenant, optionally one kind. Rows are
    locked for update and reloaded over any stale copies in the session.
    """
    query = (
        select(ActivationRule)
        .where(
            ActivationRule.tenant_id == tenant_id,
            ActivationRule.enabled.is_(True),
        )
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    if telemetry_kind is not None:
        query = query.where(ActivationRule.telemetry_kind == telemetry_kind)
    result = await db.execute(query.order_by(ActivationRule.id))
    return list(result.scalars().all())


async def get_expired_batch(
    db: AsyncSession, at: datetime, limit: int
) -> list[ActivationRule]:
    """Enabled rules whose active_to has passed, locked for the sweep."""
    result = await db.execute(
        select(ActivationRule)
        .where(
            ActivationRule.enabled.is_(True),
            ActivationRule.active_to.is_not(None),
            ActivationRule.active_to < at,
        )
        .order_by(ActivationRule.id)
        .limit(limit)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def get_purgeable_rules_batch(
    db: AsyncSession, cutoff: datetime, limit: int
) -> list[ActivationRule]:
    """Disabled rules last touched before cutoff, locked for the sweep."""
    result = await db.execute(
        select(ActivationRule)
        .where(
            ActivationRule.enabled.is_(False),
            ActivationRule.updated_at < cutoff,
        )
        .order_by(ActivationRule.id)
        .limit(limit)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def get_active_rules(
    db: AsyncSession,
    at: datetime,
    tenant_id: str | None = None,
    telemetry_kind: str | None = None,
) -> list[ActivationRule]:
    """Enabled rules in their window, optionally filtered by tenant and kind."""
    query = (
        select(ActivationRule)
        .where(ActivationRule.enabled.is_(True), ActivationRule.active_from <= at)
        .where(or_(ActivationRule.active_to.is_(None), ActivationRule.active_to >= at))
    )
    if tenant_id is not None:
        query = query.where(ActivationRule.tenant_id == tenant_id)
    if telemetry_kind is not None:
        query = query.where(ActivationRule.telemetry_kind == telemetry_kind)
    result = await db.execute(query.order_by(ActivationRule.id))
    return list(result.scalars().all())


async def get_audit_since(
    db: AsyncSession, since: datetime, tenant_id: str | None = None
) -> list[ActivationAudit]:
    """Audit records changed at or after `since`, newest first."""
    query = select(ActivationAudit).where(ActivationAudit.changed_at >= since)
    if tenant_id is not None:
        query = query.where(ActivationAudit.tenant_id == tenant_id)
    result = await db.execute(
        query.order_by(ActivationAudit.changed_at.desc(), ActivationAudit.id.desc())
    )
    return list(result.scalars().all())
