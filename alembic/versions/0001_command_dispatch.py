"""command dispatch

Revision ID: 0001
Revises:
Create Date: 2026-10-19

"""

from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

COMMAND_KINDS = (
    "node_create",
    "node_start",
    "node_stop",
    "node_restart",
    "node_update",
    "node_upgrade",
    "node_delete",
    "host_restart",
    "host_pending",
)
EXIT_CODES = (
    "ok",
    "service_broken",
    "service_not_ready",
    "node_upgrade_rollback",
    "node_upgrade_failure",
    "blocking_job_running",
    "internal_error",
)
NODE_LOG_EVENTS = ("created", "succeeded", "failed", "canceled")

JSONVariant = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table(
        "hosts",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False, unique=True),
        sa.Column("org_id", sa.Uuid(), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False
        ),
    )
    op.create_index("ix_hosts_org_id", "hosts", ["org_id"])

    op.create_table(
        "blockchains",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False, unique=True),
    )

    op.create_table(
        "nodes",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("org_id", sa.Uuid(), nullable=False),
        sa.Column(
            "host_id",
            sa.Uuid(),
            sa.ForeignKey("hosts.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("blockchain_id", sa.Uuid(), sa.ForeignKey("blockchains.id"), nullable=False),
        sa.Column("node_type", sa.String(length=32), nullable=False),
        sa.Column("version", sa.String(length=64), nullable=True),
        sa.Column(
            "status",
            sa.String(length=32),
            server_default=sa.text("'provisioning_pending'"),
            nullable=False,
        ),
        sa.Column("allow_ips", JSONVariant, nullable=False, server_default=sa.text("'[]'")),
        sa.Column("deny_ips", JSONVariant, nullable=False, server_default=sa.text("'[]'")),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False
        ),
    )
    op.create_index("ix_nodes_org_id", "nodes", ["org_id"])
    op.create_index("ix_nodes_host_id", "nodes", ["host_id"])

    op.create_table(
        "commands",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "host_id",
            sa.Uuid(),
            sa.ForeignKey("hosts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("node_id", sa.Uuid(), nullable=True),
        sa.Column("kind", sa.Enum(*COMMAND_KINDS, name="command_kind"), nullable=False),
        sa.Column("payload", JSONVariant, nullable=False, server_default=sa.text("'{}'")),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False
        ),
        sa.Column("acked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("exit_code", sa.Enum(*EXIT_CODES, name="command_exit_code"), nullable=True),
        sa.Column("exit_message", sa.Text(), nullable=True),
        sa.Column("retry_hint_seconds", sa.Integer(), nullable=True),
        sa.CheckConstraint(
            "retry_hint_seconds IS NULL OR retry_hint_seconds >= 0",
            name="ck_commands_retry_hint_non_negative",
        ),
        sa.CheckConstraint(
            "(acked_at IS NULL) = (exit_code IS NULL)",
            name="ck_commands_acked_has_outcome",
        ),
        sa.CheckConstraint(
            "exit_code IS NULL OR exit_code <> 'ok' OR retry_hint_seconds IS NULL",
            name="ck_commands_ok_has_no_retry_hint",
        ),
    )
    op.create_index("ix_commands_pending", "commands", ["host_id", "acked_at", "created_at"])
    op.create_index("ix_commands_node_id", "commands", ["node_id"])

    op.create_table(
        "node_logs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("host_id", sa.Uuid(), nullable=False),
        sa.Column("node_id", sa.Uuid(), nullable=False),
        sa.Column("event", sa.Enum(*NODE_LOG_EVENTS, name="node_log_event"), nullable=False),
        sa.Column("blockchain_name", sa.String(length=100), nullable=False),
        sa.Column("node_type", sa.String(length=32), nullable=False),
        sa.Column("version", sa.String(length=64), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False
        ),
    )
    op.create_index("ix_node_logs_node_id", "node_logs", ["node_id"])
    op.create_index("ix_node_logs_created_at", "node_logs", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_node_logs_created_at")
    op.drop_index("ix_node_logs_node_id")
    op.drop_table("node_logs")
    op.drop_index("ix_commands_node_id")
    op.drop_index("ix_commands_pending")
    op.drop_table("commands")
    op.drop_index("ix_nodes_host_id")
    op.drop_index("ix_nodes_org_id")
    op.drop_table("nodes")
    op.drop_table("blockchains")
    op.drop_index("ix_hosts_org_id")
    op.drop_table("hosts")
    sa.Enum(name="node_log_event").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="command_exit_code").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="command_kind").drop(op.get_bind(), checkfirst=True)
