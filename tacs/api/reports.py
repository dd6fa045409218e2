"""Read-only report endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from tacs.database import get_db
from tacs.engine.resolver import normalize_tenant
from tacs.schemas.admin import ActivationOut
from tacs.schemas.report import AuditRecordOut
from tacs.storage.reporting import (
    ActivationSummary,
    activation_summary,
    active_configurations,
    recent_changes,
)

router = APIRouter()


def _tenant(tenant_id: str | None) -> str | None:
    return normalize_tenant(tenant_id) if tenant_id else None


@router.get("/summary", response_model=list[ActivationSummary])
async def summary(
    db: Annotated[AsyncSession, Depends(get_db)],
    tenant_id: str | None = None,
):
    """Counts and average sampling rate per tenant and kind."""
    return await activation_summary(db, _tenant(tenant_id))


@router.get("/active", response_model=list[ActivationOut])
async def active(
    db: Annotated[AsyncSession, Depends(get_db)],
    tenant_id: str | None = None,
    telemetry_kind: str | None = None,
):
    """Activations in effect now, most specific first."""
    kind = telemetry_kind.strip().upper() if telemetry_kind else None
    return await active_configurations(db, _tenant(tenant_id), kind)


@router.get("/changes", response_model=list[AuditRecordOut])
async def changes(
    db: Annotated[AsyncSession, Depends(get_db)],
    hours: Annotated[int, Query(gt=0)] = 24,
    tenant_id: str | None = None,
):
    """Audit trail of recent activation changes."""
    return await recent_changes(db, hours, _tenant(tenant_id))
