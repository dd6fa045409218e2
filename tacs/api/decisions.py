"""Decision endpoint for instrumentation clients."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tacs.database import get_db
from tacs.engine.decision import Decision, decide
from tacs.schemas.decision import DecisionRequest

router = APIRouter()


@router.post("/decisions", response_model=Decision)
async def make_decision(
    body: DecisionRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """
    Decide whether telemetry should be produced for an object.
    Always answers; unknown inputs or internal failures yield emit=false.
    """
    return await decide(
        db, body.object_name, body.telemetry_kind, body.tenant_id, body.log_level
    )
