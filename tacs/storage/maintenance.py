"""Maintenance sweeps, invoked periodically by an external scheduler."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncSession

from tacs.config import settings
from tacs.models import ActivationRule
from tacs.storage.audit import AdminContext, AuditTrail, Mutation, RuleChange, audited, snapshot
from tacs.storage.repositories import get_expired_batch, get_purgeable_rules_batch

logger = logging.getLogger(__name__)


@dataclass
class PurgeResult:
    rules_deleted: int = 0
    audit_deleted: int = 0


class Maintenance:
    """Bounded-batch sweeps; every batch is its own audited transaction."""

    def __init__(self, db: AsyncSession, audit: AuditTrail, batch_size: int | None = None):
        self.db = db
        self.audit = audit
        self.batch_size = batch_size or settings.maintenance_batch_size

    @audited
    async def _expire_batch(self, ctx: AdminContext, at: datetime) -> Mutation:
        """Returns (rows fetched, rows expired)."""
        rules = await get_expired_batch(self.db, at, self.batch_size)
        if not rules:
            return Mutation(result=(0, 0))
        befores = {r.id: snapshot(r) for r in rules}
        # Conditions are repeated so a rule re-enabled or extended since the fetch is skipped.
        expired = set(
            (
                await self.db.execute(
                    update(ActivationRule)
                    .where(
                        ActivationRule.id.in_(list(befores)),
                        ActivationRule.enabled.is_(True),
                        ActivationRule.active_to < at,
                    )
                    .values(enabled=False, updated_by=ctx.actor, updated_at=at)
                    .returning(ActivationRule.id)
                    .execution_options(synchronize_session="fetch")
                )
            ).scalars().all()
        )
        await self.db.commit()
        changes = [
            RuleChange.of("UPDATE", r, befores[r.id], {**befores[r.id], "enabled": False})
            for r in rules
            if r.id in expired
        ]
        return Mutation(result=(len(rules), len(changes)), changes=changes)

    @audited
    async def _purge_rule_batch(self, ctx: AdminContext, cutoff: datetime) -> Mutation:
        """Returns (rows fetched, rows deleted)."""
        rules = await get_purgeable_rules_batch(self.db, cutoff, self.batch_size)
        if not rules:
            return Mutation(result=(0, 0))
        befores = {r.id: (r, snapshot(r)) for r in rules}
        deleted = (
            await self.db.execute(
                delete(ActivationRule)
                .where(
                    ActivationRule.id.in_(list(befores)),
                    ActivationRule.enabled.is_(False),
                    ActivationRule.updated_at < cutoff,
                )
                .returning(ActivationRule.id)
                .execution_options(synchronize_session="fetch")
            )
        ).scalars().all()
        await self.db.commit()
        changes = [
            RuleChange.of("DELETE", befores[i][0], befores[i][1], None) for i in sorted(deleted)
        ]
        return Mutation(result=(len(rules), len(changes)), changes=changes)

    async def expire_stale_rules(self, at: datetime | None = None) -> int:
        """Disable every enabled rule whose active_to has passed. Idempotent."""
        at = at or datetime.now(timezone.utc)
        ctx = AdminContext.system("expire_stale_rules")
        total = 0
        while True:
            fetched, expired = await self._expire_batch(ctx, at)
            total += expired
            if fetched < self.batch_size:
                break
        if total:
            logger.info("Expired %d stale activation(s)", total)
        return total

    async def purge_old_records(
        self, keep_days: int | None = None, at: datetime | None = None
    ) -> PurgeResult:
        """Hard-delete disabled rules and audit records older than keep_days."""
        keep_days = settings.audit_retention_days if keep_days is None else keep_days
        if keep_days < 0:
            raise ValueError("keep_days must not be negative")
        cutoff = (at or datetime.now(timezone.utc)) - timedelta(days=keep_days)
        ctx = AdminContext.system("purge_old_records")

        result = PurgeResult()
        while True:
            fetched, deleted = await self._purge_rule_batch(ctx, cutoff)
            result.rules_deleted += deleted
            if fetched < self.batch_size:
                break
        result.audit_deleted = await self.audit.purge(cutoff, self.batch_size)
        logger.info(
            "Purged %d disabled activation(s) and %d audit record(s) older than %s",
            result.rules_deleted,
            result.audit_deleted,
            cutoff.isoformat(),
        )
        return result
