"""Admin endpoints - enable, disable, bulk, emergency stop, maintenance."""

from datetime import timedelta
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tacs.auth.middleware import AdminDep
from tacs.database import get_db
from tacs.errors import ActivationNotFoundError, ActivationValidationError
from tacs.schemas.admin import (
    ActivationOut,
    BulkEnableRequest,
    BulkEnableResponse,
    DisableAllRequest,
    DisableAllResponse,
    DisableRequest,
    EnableRequest,
    ExpireResponse,
    PurgeResponse,
)
from tacs.storage.audit import AuditTrail, get_audit_trail
from tacs.storage.maintenance import Maintenance
from tacs.storage.store import ActivationStore

router = APIRouter()


def get_store(
    db: Annotated[AsyncSession, Depends(get_db)],
    audit: Annotated[AuditTrail, Depends(get_audit_trail)],
) -> ActivationStore:
    return ActivationStore(db, audit)


def get_maintenance(
    db: Annotated[AsyncSession, Depends(get_db)],
    audit: Annotated[AuditTrail, Depends(get_audit_trail)],
) -> Maintenance:
    return Maintenance(db, audit)


StoreDep = Annotated[ActivationStore, Depends(get_store)]


def _unprocessable(e: ActivationValidationError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=str(e),
    )


@router.post("/activations", response_model=ActivationOut)
async def enable_activation(body: EnableRequest, ctx: AdminDep, store: StoreDep):
    """Create or update an activation (upsert on kind + pattern + tenant)."""
    if body.duration_minutes is not None and body.active_to is not None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Give either duration_minutes or active_to, not both",
        )
    if body.duration_minutes is not None and body.active_from is not None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="duration_minutes always starts now; use active_from with active_to",
        )
    try:
        if body.duration_minutes is not None:
            return await store.enable_for(
                ctx,
                body.object_pattern,
                body.telemetry_kind,
                body.tenant_id,
                timedelta(minutes=body.duration_minutes),
                body.sampling_rate,
                body.log_level,
            )
        if body.active_to is not None:
            return await store.enable_between(
                ctx,
                body.object_pattern,
                body.telemetry_kind,
                body.tenant_id,
                body.active_from,
                body.active_to,
                body.sampling_rate,
                body.log_level,
            )
        return await store.enable(
            ctx,
            body.object_pattern,
            body.telemetry_kind,
            body.tenant_id,
            body.sampling_rate,
            body.log_level,
            body.active_from,
        )
    except ActivationValidationError as e:
        raise _unprocessable(e)


@router.post("/activations/disable", response_model=ActivationOut)
async def disable_activation(body: DisableRequest, ctx: AdminDep, store: StoreDep):
    """Disable one activation. The row is kept for audit history."""
    try:
        return await store.disable(
            ctx, body.object_pattern, body.telemetry_kind, body.tenant_id
        )
    except ActivationValidationError as e:
        raise _unprocessable(e)
    except ActivationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/activations/bulk", response_model=BulkEnableResponse)
async def enable_bulk(body: BulkEnableRequest, ctx: AdminDep, store: StoreDep):
    """Enable many patterns; invalid ones are reported, not fatal."""
    duration = (
        timedelta(minutes=body.duration_minutes) if body.duration_minutes is not None else None
    )
    result = await store.enable_bulk(
        ctx,
        body.object_patterns,
        body.telemetry_kind,
        body.tenant_id,
        body.sampling_rate,
        duration,
        body.log_level,
    )
    return BulkEnableResponse(
        succeeded=result.succeeded, failed=result.failed, errors=result.errors
    )


@router.post("/activations/disable-all", response_model=DisableAllResponse)
async def disable_all(body: DisableAllRequest, ctx: AdminDep, store: StoreDep):
    """Emergency stop for a tenant, optionally limited to one telemetry kind."""
    try:
        count = await store.disable_all(ctx, body.tenant_id, body.telemetry_kind)
    except ActivationValidationError as e:
        raise _unprocessable(e)
    return DisableAllResponse(disabled=count)


@router.post("/maintenance/expire", response_model=ExpireResponse)
async def expire_stale_rules(
    ctx: AdminDep,
    maintenance: Annotated[Maintenance, Depends(get_maintenance)],
):
    """Disable activations whose window has ended."""
    return ExpireResponse(expired=await maintenance.expire_stale_rules())


@router.post("/maintenance/purge", response_model=PurgeResponse)
async def purge_old_records(
    ctx: AdminDep,
    maintenance: Annotated[Maintenance, Depends(get_maintenance)],
    keep_days: Annotated[int | None, Query(ge=0)] = None,
):
    """Delete disabled activations and audit records past retention."""
    result = await maintenance.purge_old_records(keep_days)
    return PurgeResponse(
        rules_deleted=result.rules_deleted, audit_deleted=result.audit_deleted
    )
