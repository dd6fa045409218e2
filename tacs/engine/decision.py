"""Sampling and severity decision - the instrumentation-facing read path."""

import logging
import random
from collections.abc import Callable
from datetime import datetime

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from tacs.engine.kinds import LogLevel, TelemetryKind
from tacs.engine.resolver import resolve

logger = logging.getLogger(__name__)

# SystemRandom draws from os.urandom and keeps no state shared between calls.
_sampler = random.SystemRandom()


class Decision(BaseModel):
    """Outcome of one activation decision."""

    emit: bool
    sampling_rate: float = 0.0
    min_log_level: LogLevel | None = None
    matched_pattern: str | None = None
    matched_tenant: str | None = None


def sample(rate: float, draw: Callable[[], float] | None = None) -> bool:
    """Bernoulli trial; rates at or beyond the bounds never draw."""
    if rate >= 1.0:
        return True
    if rate <= 0.0:
        return False
    value = (draw or _sampler.random)()
    return value <= rate


def passes_threshold(level: LogLevel | str, threshold: LogLevel | str | None) -> bool:
    """True when `level` is at least as severe as `threshold` (INFO if unset)."""
    return LogLevel.parse(level).priority >= LogLevel.parse(threshold or LogLevel.INFO).priority


async def decide(
    db: AsyncSession,
    object_name: str,
    telemetry_kind: TelemetryKind | str,
    tenant_id: str,
    log_level: LogLevel | str | None = None,
    *,
    at: datetime | None = None,
    draw: Callable[[], float] | None = None,
) -> Decision:
    """Resolve a rule and apply severity threshold and sampling. Never raises."""
    try:
        kind = TelemetryKind.parse(telemetry_kind)
        rule = await resolve(db, object_name, kind, tenant_id, at)
        if rule is None:
            return Decision(emit=False)

        threshold = None
        if kind is TelemetryKind.LOG:
            threshold = LogLevel.parse(rule.min_log_level or LogLevel.INFO)

        if threshold is not None and log_level is not None and not passes_threshold(
            log_level, threshold
        ):
            emit = False
        else:
            emit = sample(rule.sampling_rate, draw)

        return Decision(
            emit=emit,
            sampling_rate=rule.sampling_rate,
            min_log_level=threshold,
            matched_pattern=rule.object_pattern,
            matched_tenant=rule.tenant_id,
        )
    except Exception:
        logger.exception(
            "Activation decision failed for %r (%s, tenant=%r)",
            object_name,
            telemetry_kind,
            tenant_id,
        )
        return Decision(emit=False)


async def should_emit(
    db: AsyncSession,
    object_name: str,
    telemetry_kind: TelemetryKind | str,
    tenant_id: str,
    log_level: LogLevel | str | None = None,
    *,
    at: datetime | None = None,
    draw: Callable[[], float] | None = None,
) -> bool:
    """Whether telemetry should be produced for this call right now."""
    decision = await decide(
        db, object_name, telemetry_kind, tenant_id, log_level, at=at, draw=draw
    )
    return decision.emit


async def is_trace_enabled(
    db: AsyncSession, object_name: str, tenant_id: str, **kwargs
) -> bool:
    return await should_emit(db, object_name, TelemetryKind.TRACE, tenant_id, **kwargs)


async def is_log_enabled(
    db: AsyncSession, object_name: str, tenant_id: str, log_level: LogLevel | str, **kwargs
) -> bool:
    return await should_emit(
        db, object_name, TelemetryKind.LOG, tenant_id, log_level, **kwargs
    )


async def is_metric_enabled(
    db: AsyncSession, object_name: str, tenant_id: str, **kwargs
) -> bool:
    return await should_emit(db, object_name, TelemetryKind.METRIC, tenant_id, **kwargs)


async def get_sampling_rate(
    db: AsyncSession,
    object_name: str,
    telemetry_kind: TelemetryKind | str,
    tenant_id: str,
    *,
    at: datetime | None = None,
) -> float:
    """Sampling rate of the governing rule, 0.0 when none applies."""
    try:
        rule = await resolve(db, object_name, telemetry_kind, tenant_id, at)
        return rule.sampling_rate if rule is not None else 0.0
    except Exception:
        logger.exception("Sampling rate lookup failed for %r", object_name)
        return 0.0
