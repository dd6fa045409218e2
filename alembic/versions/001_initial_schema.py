"""Initial schema - telemetry_activations, activation_audit.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "telemetry_activations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("telemetry_kind", sa.String(20), nullable=False),
        sa.Column("object_pattern", sa.String(200), nullable=False),
        sa.Column("tenant_id", sa.String(100), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("active_from", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("active_to", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("sampling_rate", sa.Float(), nullable=False, server_default="1.0"),
        sa.Column("min_log_level", sa.String(10), nullable=True),
        sa.Column("created_by", sa.String(100), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_by", sa.String(100), nullable=True),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.CheckConstraint(
            "telemetry_kind IN ('TRACE', 'LOG', 'METRIC')", name="ck_activation_kind"
        ),
        sa.CheckConstraint(
            "sampling_rate >= 0.0 AND sampling_rate <= 1.0", name="ck_activation_sampling"
        ),
        sa.CheckConstraint(
            "min_log_level IS NULL OR min_log_level IN "
            "('TRACE', 'DEBUG', 'INFO', 'WARN', 'ERROR', 'FATAL')",
            name="ck_activation_log_level",
        ),
        sa.CheckConstraint(
            "active_to IS NULL OR active_to > active_from", name="ck_activation_window"
        ),
    )
    op.create_unique_constraint(
        "uq_activation_triple",
        "telemetry_activations",
        ["telemetry_kind", "object_pattern", "tenant_id"],
    )
    op.create_index(
        "ix_activation_lookup",
        "telemetry_activations",
        ["telemetry_kind", "object_pattern", "tenant_id", "enabled"],
    )
    op.create_index(
        "ix_activation_expiry",
        "telemetry_activations",
        ["active_to", "enabled"],
    )

    op.create_table(
        "activation_audit",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("activation_id", sa.Integer(), nullable=True),
        sa.Column("operation", sa.String(10), nullable=False),
        sa.Column("telemetry_kind", sa.String(20), nullable=False),
        sa.Column("object_pattern", sa.String(200), nullable=False),
        sa.Column("tenant_id", sa.String(100), nullable=False),
        sa.Column("old_enabled", sa.Boolean(), nullable=True),
        sa.Column("new_enabled", sa.Boolean(), nullable=True),
        sa.Column("before_json", sa.JSON(), nullable=True),
        sa.Column("after_json", sa.JSON(), nullable=True),
        sa.Column("changed_by", sa.String(100), nullable=True),
        sa.Column("session_info", sa.String(500), nullable=True),
        sa.Column("changed_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.CheckConstraint(
            "operation IN ('INSERT', 'UPDATE', 'DELETE')", name="ck_activation_audit_op"
        ),
    )
    op.create_index(
        "ix_activation_audit_changed_at",
        "activation_audit",
        ["changed_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_activation_audit_changed_at", table_name="activation_audit")
    op.drop_table("activation_audit")
    op.drop_index("ix_activation_expiry", table_name="telemetry_activations")
    op.drop_index("ix_activation_lookup", table_name="telemetry_activations")
    op.drop_table("telemetry_activations")
