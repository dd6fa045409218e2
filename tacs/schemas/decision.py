"""Decision request schema."""

from pydantic import BaseModel


class DecisionRequest(BaseModel):
    """POST /v1/decisions request."""

    object_name: str
    telemetry_kind: str
    tenant_id: str
    log_level: str | None = None
