"""Deployment rollout and rollback tables.

Revision ID: 001
Revises:
"""

from alembic import op
import sqlalchemy as sa

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "deployments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("deployment_id", sa.String(36), nullable=False, unique=True),
        sa.Column("model_version_id", sa.String(100), nullable=False, index=True),
        sa.Column("environment", sa.String(20), nullable=False, index=True),
        sa.Column("strategy", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, index=True),
        sa.Column("configuration", sa.JSON(), nullable=False),
        sa.Column("slo_targets", sa.JSON(), nullable=False),
        sa.Column("drift_thresholds", sa.JSON(), nullable=False),
        sa.Column("deployed_by", sa.String(100), nullable=False, server_default="system"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now(), index=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "environment IN ('staging', 'production')", name="ck_deployments_environment"
        ),
        sa.CheckConstraint(
            "strategy IN ('rolling', 'blue_green', 'canary')", name="ck_deployments_strategy"
        ),
    )

    op.create_table(
        "traffic_splits",
        sa.Column("split_id", sa.String(36), primary_key=True),
        sa.Column(
            "deployment_id",
            sa.String(36),
            sa.ForeignKey("deployments.deployment_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("percentage", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint(
            "percentage >= 0 AND percentage <= 100", name="ck_traffic_splits_percentage"
        ),
    )
    op.create_index(
        "ix_traffic_splits_deployment_created", "traffic_splits", ["deployment_id", "created_at"]
    )

    op.create_table(
        "deployment_metrics",
        sa.Column("metrics_id", sa.String(36), primary_key=True),
        sa.Column(
            "deployment_id",
            sa.String(36),
            sa.ForeignKey("deployments.deployment_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.Column("availability", sa.Float(), nullable=False),
        sa.Column("latency_p95", sa.Float(), nullable=False),
        sa.Column("latency_p99", sa.Float(), nullable=False),
        sa.Column("error_rate", sa.Float(), nullable=False),
        sa.Column("input_drift", sa.Float(), nullable=True),
        sa.Column("output_drift", sa.Float(), nullable=True),
        sa.Column("performance_drift", sa.Float(), nullable=True),
        sa.Column("request_count", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index(
        "ix_deployment_metrics_deployment_time", "deployment_metrics", ["deployment_id", "timestamp"]
    )

    op.create_table(
        "deployment_alerts",
        sa.Column("alert_id", sa.String(36), primary_key=True),
        sa.Column(
            "deployment_id",
            sa.String(36),
            sa.ForeignKey("deployments.deployment_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("alert_type", sa.String(30), nullable=False),
        sa.Column("severity", sa.String(20), nullable=False, index=True),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("threshold", sa.Float(), nullable=False),
        sa.Column("actual_value", sa.Float(), nullable=False),
        sa.Column("triggered_at", sa.DateTime(), nullable=False),
        sa.Column("acknowledged", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
    )
    op.create_index(
        "ix_deployment_alerts_deployment_triggered",
        "deployment_alerts",
        ["deployment_id", "triggered_at"],
    )

    op.create_table(
        "rollback_operations",
        sa.Column("rollback_id", sa.String(36), primary_key=True),
        sa.Column(
            "deployment_id",
            sa.String(36),
            sa.ForeignKey("deployments.deployment_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("target_deployment_id", sa.String(36), nullable=False),
        sa.Column("target_version_id", sa.String(100), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("initiated_by", sa.String(100), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, index=True),
        sa.Column("initiated_at", sa.DateTime(), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
    )


def downgrade() -> None:
    op.drop_table("rollback_operations")
    op.drop_index("ix_deployment_alerts_deployment_triggered", table_name="deployment_alerts")
    op.drop_table("deployment_alerts")
    op.drop_index("ix_deployment_metrics_deployment_time", table_name="deployment_metrics")
    op.drop_table("deployment_metrics")
    op.drop_index("ix_traffic_splits_deployment_created", table_name="traffic_splits")
    op.drop_table("traffic_splits")
    op.drop_table("deployments")
