"""Admin API schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from tacs.engine.kinds import LogLevel, TelemetryKind


class EnableRequest(BaseModel):
    """POST /v1/admin/activations request.

    Leave both `duration_minutes` and `active_to` unset for no expiry.
    """

    object_pattern: str
    telemetry_kind: str
    tenant_id: str
    sampling_rate: float = 1.0
    log_level: str | None = None
    active_from: datetime | None = None
    active_to: datetime | None = None
    duration_minutes: int | None = Field(default=None, gt=0)


class DisableRequest(BaseModel):
    """POST /v1/admin/activations/disable request."""

    object_pattern: str
    telemetry_kind: str
    tenant_id: str


class BulkEnableRequest(BaseModel):
    """POST /v1/admin/activations/bulk request."""

    object_patterns: list[str]
    telemetry_kind: str
    tenant_id: str
    sampling_rate: float = 1.0
    log_level: str | None = None
    duration_minutes: int | None = Field(default=None, gt=0)


class DisableAllRequest(BaseModel):
    """POST /v1/admin/activations/disable-all request."""

    tenant_id: str
    telemetry_kind: str | None = None


class ActivationOut(BaseModel):
    """Activation rule as returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    telemetry_kind: TelemetryKind
    object_pattern: str
    tenant_id: str
    enabled: bool
    active_from: datetime
    active_to: datetime | None
    sampling_rate: float
    min_log_level: LogLevel | None
    created_by: str | None
    updated_by: str | None
    updated_at: datetime


class BulkEnableResponse(BaseModel):
    succeeded: int
    failed: int
    errors: dict[str, str] = Field(default_factory=dict)


class DisableAllResponse(BaseModel):
    disabled: int


class ExpireResponse(BaseModel):
    expired: int


class PurgeResponse(BaseModel):
    rules_deleted: int
    audit_deleted: int
