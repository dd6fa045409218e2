"""Activation store - validated enable/disable operations on activation rules."""

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from tacs.engine.kinds import GLOBAL_TENANT, LogLevel, TelemetryKind
from tacs.engine.matcher import normalize
from tacs.engine.resolver import normalize_tenant
from tacs.errors import ActivationNotFoundError, ActivationValidationError
from tacs.models import ActivationRule
from tacs.storage.audit import AdminContext, AuditTrail, Mutation, RuleChange, audited, snapshot
from tacs.storage.repositories import get_enabled_rules_for_tenant, get_rule_by_triple

logger = logging.getLogger(__name__)

ALLOWED_PATTERN = re.compile(r"^[A-Z0-9_.*]+$")
MAX_PATTERN_LENGTH = 200
MAX_TENANT_LENGTH = 100


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class ActivationRequest:
    """A validated, normalized enable request."""

    object_pattern: str
    telemetry_kind: TelemetryKind
    tenant_id: str
    sampling_rate: float
    min_log_level: LogLevel | None
    active_from: datetime
    active_to: datetime | None


@dataclass
class BulkResult:
    """Outcome of enable_bulk."""

    succeeded: int = 0
    failed: int = 0
    errors: dict[str, str] = field(default_factory=dict)


def validate_pattern(object_pattern: str) -> str:
    if object_pattern is None:
        raise ActivationValidationError("object_pattern", "must not be empty")
    if not isinstance(object_pattern, str):
        raise ActivationValidationError(
            "object_pattern", f"must be a string, not {type(object_pattern).__name__}"
        )
    pattern = normalize(object_pattern)
    if not pattern:
        raise ActivationValidationError("object_pattern", "must not be empty")
    if len(pattern) > MAX_PATTERN_LENGTH:
        raise ActivationValidationError(
            "object_pattern", f"must be at most {MAX_PATTERN_LENGTH} characters"
        )
    if not ALLOWED_PATTERN.match(pattern):
        raise ActivationValidationError(
            "object_pattern",
            f"invalid characters in {object_pattern!r}; allowed: letters, digits, '.', '_', '*'",
        )
    return pattern


def validate_kind(telemetry_kind: TelemetryKind | str) -> TelemetryKind:
    try:
        return TelemetryKind.parse(telemetry_kind)
    except ValueError:
        allowed = [k.value for k in TelemetryKind]
        raise ActivationValidationError(
            "telemetry_kind", f"unknown kind {telemetry_kind!r}. Allowed: {allowed}"
        ) from None


def validate_tenant(tenant_id: str) -> str:
    if tenant_id is not None and not isinstance(tenant_id, str):
        raise ActivationValidationError(
            "tenant_id", f"must be a string, not {type(tenant_id).__name__}"
        )
    tenant = normalize_tenant(tenant_id or "")
    if not tenant:
        raise ActivationValidationError("tenant_id", "must not be empty")
    if len(tenant) > MAX_TENANT_LENGTH:
        raise ActivationValidationError(
            "tenant_id", f"must be at most {MAX_TENANT_LENGTH} characters"
        )
    return tenant


def validate_activation(
    object_pattern: str,
    telemetry_kind: TelemetryKind | str,
    tenant_id: str,
    sampling_rate: float = 1.0,
    log_level: LogLevel | str | None = None,
    active_from: datetime | None = None,
    active_to: datetime | None = None,
) -> ActivationRequest:
    """Check and normalize an enable request; raises ActivationValidationError."""
    pattern = validate_pattern(object_pattern)
    kind = validate_kind(telemetry_kind)
    tenant = validate_tenant(tenant_id)

    try:
        rate = float(sampling_rate)
    except (TypeError, ValueError):
        raise ActivationValidationError(
            "sampling_rate", f"not a number: {sampling_rate!r}"
        ) from None
    if not 0.0 <= rate <= 1.0:
        raise ActivationValidationError("sampling_rate", f"{rate} is outside [0.0, 1.0]")

    start = _as_utc(active_from) if active_from is not None else _now()
    end = _as_utc(active_to) if active_to is not None else None
    if end is not None and end <= start:
        raise ActivationValidationError("active_to", "must be after active_from")

    level = None
    if kind is TelemetryKind.LOG:
        try:
            level = LogLevel.parse(log_level) if log_level is not None else LogLevel.INFO
        except ValueError:
            allowed = [lv.value for lv in LogLevel]
            raise ActivationValidationError(
                "log_level", f"unknown level {log_level!r}. Allowed: {allowed}"
            ) from None

    return ActivationRequest(
        object_pattern=pattern,
        telemetry_kind=kind,
        tenant_id=tenant,
        sampling_rate=rate,
        min_log_level=level,
        active_from=start,
        active_to=end,
    )


class ActivationStore:
    """
    Rule repository for operators. All writes go through audited methods;
    each commits its own unit of work before the audit trail is written.
    """

    def __init__(self, db: AsyncSession, audit: AuditTrail):
        self.db = db
        self.audit = audit

    async def _upsert(
        self, ctx: AdminContext, req: ActivationRequest
    ) -> tuple[ActivationRule, RuleChange]:
        now = _now()
        existing = await get_rule_by_triple(
            self.db, req.telemetry_kind.value, req.object_pattern, req.tenant_id
        )
        if existing:
            before = snapshot(existing)
            existing.enabled = True
            existing.sampling_rate = req.sampling_rate
            existing.min_log_level = req.min_log_level.value if req.min_log_level else None
            existing.active_from = req.active_from
            existing.active_to = req.active_to
            existing.updated_by = ctx.actor
            existing.updated_at = now
            await self.db.flush()
            return existing, RuleChange.of("UPDATE", existing, before, snapshot(existing))

        rule = ActivationRule(
            telemetry_kind=req.telemetry_kind.value,
            object_pattern=req.object_pattern,
            tenant_id=req.tenant_id,
            enabled=True,
            active_from=req.active_from,
            active_to=req.active_to,
            sampling_rate=req.sampling_rate,
            min_log_level=req.min_log_level.value if req.min_log_level else None,
            created_by=ctx.actor,
            created_at=now,
            updated_by=ctx.actor,
            updated_at=now,
        )
        self.db.add(rule)
        await self.db.flush()
        return rule, RuleChange.of("INSERT", rule, None, snapshot(rule))

    async def _enable(self, ctx: AdminContext, req: ActivationRequest) -> Mutation:
        rule, change = await self._upsert(ctx, req)
        await self.db.commit()
        logger.info(
            "Enabled %s %s for tenant %s (rate=%s)",
            req.telemetry_kind.value,
            req.object_pattern,
            req.tenant_id,
            req.sampling_rate,
        )
        return Mutation(result=rule, changes=[change])

    @audited
    async def enable(
        self,
        ctx: AdminContext,
        object_pattern: str,
        telemetry_kind: TelemetryKind | str,
        tenant_id: str,
        sampling_rate: float = 1.0,
        log_level: LogLevel | str | None = None,
        active_from: datetime | None = None,
    ) -> Mutation:
        """Enable with no end time."""
        req = validate_activation(
            object_pattern, telemetry_kind, tenant_id, sampling_rate, log_level, active_from
        )
        return await self._enable(ctx, req)

    @audited
    async def enable_for(
        self,
        ctx: AdminContext,
        object_pattern: str,
        telemetry_kind: TelemetryKind | str,
        tenant_id: str,
        duration: timedelta,
        sampling_rate: float = 1.0,
        log_level: LogLevel | str | None = None,
    ) -> Mutation:
        """Enable from now for `duration`."""
        start = _now()
        req = validate_activation(
            object_pattern,
            telemetry_kind,
            tenant_id,
            sampling_rate,
            log_level,
            start,
            start + duration,
        )
        return await self._enable(ctx, req)

    @audited
    async def enable_between(
        self,
        ctx: AdminContext,
        object_pattern: str,
        telemetry_kind: TelemetryKind | str,
        tenant_id: str,
        active_from: datetime | None,
        active_to: datetime,
        sampling_rate: float = 1.0,
        log_level: LogLevel | str | None = None,
    ) -> Mutation:
        """Enable for an explicit [active_from, active_to] window (from defaults to now)."""
        req = validate_activation(
            object_pattern,
            telemetry_kind,
            tenant_id,
            sampling_rate,
            log_level,
            active_from,
            active_to,
        )
        return await self._enable(ctx, req)

    @audited
    async def enable_bulk(
        self,
        ctx: AdminContext,
        object_patterns: Iterable[str],
        telemetry_kind: TelemetryKind | str,
        tenant_id: str,
        sampling_rate: float = 1.0,
        duration: timedelta | None = None,
        log_level: LogLevel | str | None = None,
    ) -> Mutation:
        """
        Enable many patterns at once. Each pattern is validated and committed
        on its own; a pattern that fails is counted and skipped and the rest
        still proceed.
        """
        result = BulkResult()
        changes: list[RuleChange] = []
        start = _now()
        end = start + duration if duration is not None else None
        for pattern in object_patterns:
            try:
                req = validate_activation(
                    pattern, telemetry_kind, tenant_id, sampling_rate, log_level, start, end
                )
            except ActivationValidationError as e:
                result.failed += 1
                result.errors[str(pattern)] = str(e)
                logger.warning("Bulk enable skipped %r: %s", pattern, e)
                continue
            try:
                _, change = await self._upsert(ctx, req)
                await self.db.commit()
            except Exception as e:
                await self.db.rollback()
                result.failed += 1
                result.errors[str(pattern)] = f"{type(e).__name__}: {e}"
                logger.warning("Bulk enable failed for %r", pattern, exc_info=True)
                continue
            changes.append(change)
            result.succeeded += 1
        logger.info(
            "Bulk enable for tenant %s: %d succeeded, %d failed",
            tenant_id,
            result.succeeded,
            result.failed,
        )
        return Mutation(result=result, changes=changes)

    @audited
    async def disable(
        self,
        ctx: AdminContext,
        object_pattern: str,
        telemetry_kind: TelemetryKind | str,
        tenant_id: str,
    ) -> Mutation:
        """Soft-disable one rule; the row and its history are kept."""
        pattern = validate_pattern(object_pattern)
        kind = validate_kind(telemetry_kind)
        tenant = validate_tenant(tenant_id)
        rule = await get_rule_by_triple(self.db, kind.value, pattern, tenant)
        if not rule:
            raise ActivationNotFoundError(
                f"No activation for {kind.value} {pattern} (tenant {tenant})"
            )
        if not rule.enabled:
            return Mutation(result=rule)

        before = snapshot(rule)
        rule.enabled = False
        rule.updated_by = ctx.actor
        rule.updated_at = _now()
        await self.db.flush()
        change = RuleChange.of("UPDATE", rule, before, snapshot(rule))
        await self.db.commit()
        logger.info("Disabled %s %s for tenant %s", kind.value, pattern, tenant)
        return Mutation(result=rule, changes=[change])

    @audited
    async def disable_all(
        self,
        ctx: AdminContext,
        tenant_id: str,
        telemetry_kind: TelemetryKind | str | None = None,
    ) -> Mutation:
        """Emergency brake: disable every enabled rule of a tenant (and kind)."""
        tenant = validate_tenant(tenant_id)
        kind = validate_kind(telemetry_kind).value if telemetry_kind is not None else None
        rules = await get_enabled_rules_for_tenant(self.db, tenant, kind)
        if not rules:
            return Mutation(result=0)

        befores = {r.id: snapshot(r) for r in rules}
        disabled = set(
            (
                await self.db.execute(
                    update(ActivationRule)
                    .where(
                        ActivationRule.id.in_(list(befores)),
                        ActivationRule.enabled.is_(True),
                    )
                    .values(enabled=False, updated_by=ctx.actor, updated_at=_now())
                    .returning(ActivationRule.id)
                    .execution_options(synchronize_session="fetch")
                )
            ).scalars().all()
        )
        await self.db.commit()
        changes = [
            RuleChange.of("UPDATE", r, befores[r.id], {**befores[r.id], "enabled": False})
            for r in rules
            if r.id in disabled
        ]
        logger.warning(
            "Disabled all %s activations for tenant %s (%d rules) by %s",
            kind or "telemetry",
            tenant,
            len(changes),
            ctx.actor,
        )
        return Mutation(result=len(changes), changes=changes)


DEFAULT_ACTIVATIONS = (
    (TelemetryKind.TRACE, None),
    (TelemetryKind.LOG, LogLevel.DEBUG),
    (TelemetryKind.METRIC, None),
)


async def seed_default_activations(store: ActivationStore) -> list[ActivationRule]:
    """Enable every kind for all objects and all tenants at full sampling."""
    ctx = AdminContext.system("seed_default_activations")
    rules = []
    for kind, level in DEFAULT_ACTIVATIONS:
        rules.append(await store.enable(ctx, "*", kind, GLOBAL_TENANT, 1.0, level))
    return rules
