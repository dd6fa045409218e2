"""Activation rule model."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from tacs.database import Base


class ActivationRule(Base):
    """Whitelist entry deciding whether an object emits a telemetry kind for a tenant."""

    __tablename__ = "telemetry_activations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    telemetry_kind: Mapped[str] = mapped_column(String(20), nullable=False)  # TRACE|LOG|METRIC
    object_pattern: Mapped[str] = mapped_column(String(200), nullable=False)
    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    active_from: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    active_to: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    sampling_rate: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    min_log_level: Mapped[str | None] = mapped_column(String(10), nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "telemetry_kind", "object_pattern", "tenant_id", name="uq_activation_triple"
        ),
        Index(
            "ix_activation_lookup", "telemetry_kind", "object_pattern", "tenant_id", "enabled"
        ),
        Index("ix_activation_expiry", "active_to", "enabled"),
    )
