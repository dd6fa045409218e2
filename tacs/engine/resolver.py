"""Activation resolver - picks the single rule governing an instrumentation call."""

import logging
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from tacs.engine.kinds import GLOBAL_TENANT, TelemetryKind
from tacs.engine.matcher import matches, specificity
from tacs.models import ActivationRule
from tacs.storage.repositories import get_candidate_rules

logger = logging.getLogger(__name__)


def normalize_tenant(tenant_id: str) -> str:
    """Trim a tenant id; any casing of the reserved global tenant becomes ALL."""
    tenant = tenant_id.strip()
    if tenant.upper() == GLOBAL_TENANT:
        return GLOBAL_TENANT
    return tenant


def best_match(object_name: str, rules: list[ActivationRule]) -> ActivationRule | None:
    """
    Most specific rule whose pattern matches object_name.
    Ties keep the earlier rule, so input order must be stable.
    """
    best: ActivationRule | None = None
    best_score = 0
    for rule in rules:
        if not matches(object_name, rule.object_pattern):
            continue
        score = specificity(rule.object_pattern)
        if best is None or score > best_score:
            best, best_score = rule, score
    return best


async def resolve(
    db: AsyncSession,
    object_name: str,
    telemetry_kind: TelemetryKind | str,
    tenant_id: str,
    at: datetime | None = None,
) -> ActivationRule | None:
    """
    Resolve the rule for (object, kind, tenant) at time `at` (default now).

    Tenant rules are searched first; the global ALL rules are consulted only
    when no tenant rule matches, however specific the global rule may be.
    Any failure is logged and treated as "no rule".
    """
    try:
        kind = TelemetryKind.parse(telemetry_kind)
        tenant = normalize_tenant(tenant_id)
        at = at or datetime.now(timezone.utc)

        rules = await get_candidate_rules(db, kind.value, tenant, at)
        rule = best_match(object_name, rules)
        if rule is not None or tenant == GLOBAL_TENANT:
            return rule

        global_rules = await get_candidate_rules(db, kind.value, GLOBAL_TENANT, at)
        return best_match(object_name, global_rules)
    except Exception:
        logger.exception(
            "Activation resolution failed for %r (%s, tenant=%r)",
            object_name,
            telemetry_kind,
            tenant_id,
        )
        return None
