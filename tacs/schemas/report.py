"""Report schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class AuditRecordOut(BaseModel):
    """Audit record as returned by the reports API."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    activation_id: int | None
    operation: str
    telemetry_kind: str
    object_pattern: str
    tenant_id: str
    old_enabled: bool | None
    new_enabled: bool | None
    before_json: dict | None
    after_json: dict | None
    changed_by: str | None
    session_info: str | None
    changed_at: datetime
