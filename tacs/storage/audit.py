"""
Change capture for activation rules.

Every store method that mutates a rule returns a `Mutation` listing the
before/after snapshots of the rows it touched, and is wrapped by `audited`.
The wrapper persists one audit row per change on an independent session and
hands each record to the audit sink, outside the activation engine. Neither
step can fail the mutation that triggered it.
"""

import functools
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from pydantic import BaseModel
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tacs.config import settings
from tacs.database import audit_session_maker
from tacs.models import ActivationAudit, ActivationRule
from tacs.utils.canonical import canonical_json

logger = logging.getLogger(__name__)


class AdminContext(BaseModel):
    """Who is changing activations, and from where."""

    actor: str
    session_user: str | None = None
    host: str | None = None
    ip_address: str | None = None
    module: str | None = None

    @property
    def session_info(self) -> str:
        return f"Host:{self.host or ''}|IP:{self.ip_address or ''}|Module:{self.module or ''}"

    @classmethod
    def system(cls, module: str) -> "AdminContext":
        return cls(actor="system", session_user="system", module=module)


def snapshot(rule: ActivationRule) -> dict[str, Any]:
    """Mutable fields of a rule, JSON-ready."""
    return {
        "enabled": rule.enabled,
        "sampling_rate": rule.sampling_rate,
        "min_log_level": rule.min_log_level,
        "active_from": rule.active_from.isoformat() if rule.active_from else None,
        "active_to": rule.active_to.isoformat() if rule.active_to else None,
    }


@dataclass
class RuleChange:
    """One row-level change to the activation table."""

    operation: str  # INSERT|UPDATE|DELETE
    activation_id: int | None
    telemetry_kind: str
    object_pattern: str
    tenant_id: str
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None

    @classmethod
    def of(
        cls,
        operation: str,
        rule: ActivationRule,
        before: dict[str, Any] | None,
        after: dict[str, Any] | None,
    ) -> "RuleChange":
        return cls(
            operation=operation,
            activation_id=rule.id,
            telemetry_kind=rule.telemetry_kind,
            object_pattern=rule.object_pattern,
            tenant_id=rule.tenant_id,
            before=before,
            after=after,
        )


@dataclass
class Mutation:
    """Return value of an audited store method."""

    result: Any
    changes: list[RuleChange] = field(default_factory=list)


class AuditEvent(BaseModel):
    """Structured record handed to the export collaborator."""

    severity: str = "WARN"
    message: str = "Telemetry activation changed"
    timestamp: str
    attributes: dict[str, str]


def _flag(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_event(record: ActivationAudit, ctx: AdminContext) -> AuditEvent:
    """Flatten an audit row into the outbound event shape."""
    before = record.before_json or {}
    after = record.after_json or {}
    return AuditEvent(
        timestamp=record.changed_at.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3]
        + "Z",
        attributes={
            "audit.operation": record.operation,
            "audit.object_name": record.object_pattern,
            "audit.telemetry_type": record.telemetry_kind,
            "audit.tenant_id": record.tenant_id,
            "audit.old_enabled": _flag(record.old_enabled),
            "audit.new_enabled": _flag(record.new_enabled),
            "audit.old_sampling_rate": _flag(before.get("sampling_rate")),
            "audit.new_sampling_rate": _flag(after.get("sampling_rate")),
            "audit.changed_by": _flag(ctx.actor),
            "audit.session_user": _flag(ctx.session_user),
            "audit.host": _flag(ctx.host),
            "system.bypass_activation": "true",
        },
    )


class AuditSink(Protocol):
    async def emit(self, event: AuditEvent) -> None: ...


class LoggingAuditSink:
    """Writes audit events as canonical JSON to a dedicated logger."""

    def __init__(self, logger_name: str | None = None):
        self._logger = logging.getLogger(logger_name or settings.audit_sink_logger)

    async def emit(self, event: AuditEvent) -> None:
        self._logger.warning(canonical_json(event.model_dump()))


class AuditTrail:
    """Persists audit rows on its own sessions and forwards them to a sink."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession], sink: AuditSink):
        self.session_maker = session_maker
        self.sink = sink

    async def record(self, changes: list[RuleChange], ctx: AdminContext) -> list[ActivationAudit]:
        if not changes:
            return []
        now = datetime.now(timezone.utc)
        records = [
            ActivationAudit(
                activation_id=c.activation_id,
                operation=c.operation,
                telemetry_kind=c.telemetry_kind,
                object_pattern=c.object_pattern,
                tenant_id=c.tenant_id,
                old_enabled=c.before["enabled"] if c.before else None,
                new_enabled=c.after["enabled"] if c.after else None,
                before_json=c.before,
                after_json=c.after,
                changed_by=ctx.actor,
                session_info=ctx.session_info,
                changed_at=now,
            )
            for c in changes
        ]
        events = [build_event(r, ctx) for r in records]
        try:
            async with self.session_maker() as session:
                session.add_all(records)
                await session.commit()
        except Exception:
            logger.warning("Failed to persist %d audit record(s)", len(records), exc_info=True)

        for event in events:
            try:
                await self.sink.emit(event)
            except Exception:
                logger.warning(
                    "Failed to emit audit event for %s",
                    event.attributes["audit.object_name"],
                    exc_info=True,
                )
        return records

    async def purge(self, cutoff: datetime, batch_size: int) -> int:
        """Delete audit rows older than cutoff, one bounded batch per transaction."""
        total = 0
        async with self.session_maker() as session:
            while True:
                ids = (
                    await session.execute(
                        select(ActivationAudit.id)
                        .where(ActivationAudit.changed_at < cutoff)
                        .order_by(ActivationAudit.id)
                        .limit(batch_size)
                    )
                ).scalars().all()
                if not ids:
                    break
                await session.execute(delete(ActivationAudit).where(ActivationAudit.id.in_(ids)))
                await session.commit()
                total += len(ids)
                if len(ids) < batch_size:
                    break
        return total


def audited(
    method: Callable[..., Awaitable[Mutation]],
) -> Callable[..., Awaitable[Any]]:
    """
    Wrap a store method `(self, ctx, ...) -> Mutation` so its changes are
    always recorded through `self.audit` before the result is returned.
    A method that raises has its session rolled back, so nothing it
    flushed can be committed later without an audit record.
    """
    signature = inspect.signature(method)

    @functools.wraps(method)
    async def wrapper(self, *args, **kwargs):
        ctx: AdminContext = signature.bind(self, *args, **kwargs).arguments["ctx"]
        try:
            mutation = await method(self, *args, **kwargs)
        except Exception:
            await self.db.rollback()
            raise
        try:
            await self.audit.record(mutation.changes, ctx)
        except Exception:
            logger.warning("Audit capture failed for %s", method.__name__, exc_info=True)
        return mutation.result

    return wrapper


def get_audit_trail() -> AuditTrail:
    """Dependency for the audit trail used by admin routes."""
    return AuditTrail(audit_session_maker, LoggingAuditSink())
