"""Activation audit model."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from tacs.database import Base


class ActivationAudit(Base):
    """Activation change records - append-only."""

    __tablename__ = "activation_audit"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # No foreign key: audit rows outlive the rules they describe.
    activation_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    operation: Mapped[str] = mapped_column(String(10), nullable=False)  # INSERT|UPDATE|DELETE
    telemetry_kind: Mapped[str] = mapped_column(String(20), nullable=False)
    object_pattern: Mapped[str] = mapped_column(String(200), nullable=False)
    tenant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    old_enabled: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    new_enabled: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    before_json: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    after_json: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    changed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    session_info: Mapped[str | None] = mapped_column(String(500), nullable=True)
    changed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("ix_activation_audit_changed_at", "changed_at"),)
