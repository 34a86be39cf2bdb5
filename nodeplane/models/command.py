from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from nodeplane.db.base import Base, JSONVariant


class CommandKind(str, enum.Enum):
    NODE_CREATE = "node_create"
    NODE_START = "node_start"
    NODE_STOP = "node_stop"
    NODE_RESTART = "node_restart"
    NODE_UPDATE = "node_update"
    NODE_UPGRADE = "node_upgrade"
    NODE_DELETE = "node_delete"
    HOST_RESTART = "host_restart"
    HOST_PENDING = "host_pending"

    @property
    def node_scoped(self) -> bool:
        return KIND_SPECS[self].node_scoped

    @property
    def required_fields(self) -> tuple[str, ...]:
        return KIND_SPECS[self].required_fields


@dataclass(frozen=True)
class KindSpec:
    node_scoped: bool
    required_fields: tuple[str, ...] = ()


KIND_SPECS: dict[CommandKind, KindSpec] = {
    CommandKind.NODE_CREATE: KindSpec(True, ("name", "blockchain", "node_type", "version")),
    CommandKind.NODE_START: KindSpec(True),
    CommandKind.NODE_STOP: KindSpec(True),
    CommandKind.NODE_RESTART: KindSpec(True),
    CommandKind.NODE_UPDATE: KindSpec(True, ("allow_ips", "deny_ips")),
    CommandKind.NODE_UPGRADE: KindSpec(True, ("blockchain", "node_type", "version")),
    CommandKind.NODE_DELETE: KindSpec(True),
    CommandKind.HOST_RESTART: KindSpec(False),
    CommandKind.HOST_PENDING: KindSpec(False),
}


class ExitCode(str, enum.Enum):
    OK = "ok"
    SERVICE_BROKEN = "service_broken"
    SERVICE_NOT_READY = "service_not_ready"
    NODE_UPGRADE_ROLLBACK = "node_upgrade_rollback"
    NODE_UPGRADE_FAILURE = "node_upgrade_failure"
    BLOCKING_JOB_RUNNING = "blocking_job_running"
    INTERNAL_ERROR = "internal_error"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class Command(Base):
    """An instruction for the agent on one host, pending until acked."""

    __tablename__ = "commands"
    __table_args__ = (
        sa.Index("ix_commands_pending", "host_id", "acked_at", "created_at"),
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

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid(), primary_key=True, default=uuid.uuid4)
    host_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(), sa.ForeignKey("hosts.id", ondelete="CASCADE"), nullable=False
    )
    # No foreign key: acks for a deleted node must still resolve.
    node_id: Mapped[uuid.UUID | None] = mapped_column(sa.Uuid(), nullable=True, index=True)
    kind: Mapped[CommandKind] = mapped_column(
        sa.Enum(CommandKind, name="command_kind", values_callable=_enum_values),
        nullable=False,
    )
    payload: Mapped[dict[str, Any]] = mapped_column(JSONVariant, default=dict, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False
    )
    acked_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)

    exit_code: Mapped[ExitCode | None] = mapped_column(
        sa.Enum(ExitCode, name="command_exit_code", values_callable=_enum_values),
        nullable=True,
    )
    exit_message: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)
    retry_hint_seconds: Mapped[int | None] = mapped_column(sa.Integer(), nullable=True)

    @property
    def is_acked(self) -> bool:
        return self.acked_at is not None

    def outcome(self) -> tuple[ExitCode | None, str | None, int | None]:
        return (self.exit_code, self.exit_message, self.retry_hint_seconds)
