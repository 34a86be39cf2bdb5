"""Persistence for commands and node logs.

The primary store is the queue: a command is pending exactly while its
``acked_at`` is null. Callers own the transaction; functions here flush but
never commit.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from nodeplane.clock import Clock, as_utc
from nodeplane.db.session import store_errors
from nodeplane.errors import (
    AlreadyAcked,
    InvalidKindForScope,
    InvalidPayload,
    NotFound,
)
from nodeplane.models.command import Command, CommandKind, ExitCode
from nodeplane.models.host import Host
from nodeplane.models.node_log import NodeLog, NodeLogEvent

log = logging.getLogger(__name__)


@dataclass
class CommandDraft:
    host_id: uuid.UUID
    kind: CommandKind
    node_id: uuid.UUID | None = None
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class NodeLogDraft:
    host_id: uuid.UUID
    node_id: uuid.UUID
    event: NodeLogEvent
    blockchain_name: str
    node_type: str
    version: str
    message: str | None = None


def validate_draft(draft: CommandDraft) -> None:
    if draft.kind.node_scoped and draft.node_id is None:
        raise InvalidKindForScope("node_id", f"{draft.kind.value} needs a node")
    if not draft.kind.node_scoped and draft.node_id is not None:
        raise InvalidKindForScope("node_id", f"{draft.kind.value} is host-scoped")
    for name in draft.kind.required_fields:
        if draft.payload.get(name) is None:
            raise InvalidPayload(f"payload.{name}")


def _next_created_at(db: Session, host_id: uuid.UUID, now: datetime) -> datetime:
    now = as_utc(now)
    latest = db.scalar(select(func.max(Command.created_at)).where(Command.host_id == host_id))
    if latest is not None:
        latest = as_utc(latest)
        if now <= latest:
            return latest + timedelta(microseconds=1)
    return now


def insert(db: Session, draft: CommandDraft, clock: Clock) -> Command:
    validate_draft(draft)
    with store_errors():
        # Host row lock serializes inserts per host, keeping created_at monotonic.
        db.execute(select(Host.id).where(Host.id == draft.host_id).with_for_update())
        command = Command(
            id=uuid.uuid4(),
            host_id=draft.host_id,
            node_id=draft.node_id,
            kind=draft.kind,
            payload=dict(draft.payload),
            created_at=_next_created_at(db, draft.host_id, clock.now()),
        )
        db.add(command)
        db.flush()
    log.debug(f"Queued {command.kind.value} {command.id} for host {command.host_id}")
    return command


def get_host(db: Session, host_id: uuid.UUID) -> Host | None:
    with store_errors():
        return db.get(Host, host_id)


def get(db: Session, command_id: uuid.UUID, *, for_update: bool = False) -> Command:
    stmt = select(Command).where(Command.id == command_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    with store_errors():
        command = db.execute(stmt).scalar_one_or_none()
    if command is None:
        raise NotFound(f"Command {command_id} not found")
    return command


def pending_for_host(
    db: Session, host_id: uuid.UUID, kind: CommandKind | None = None
) -> list[Command]:
    stmt = select(Command).where(Command.host_id == host_id, Command.acked_at.is_(None))
    if kind is not None:
        stmt = stmt.where(Command.kind == kind)
    stmt = stmt.order_by(Command.created_at.asc(), Command.id.asc())
    with store_errors():
        return list(db.execute(stmt).scalars().all())


def update_outcome(
    db: Session,
    command_id: uuid.UUID,
    exit_code: ExitCode,
    exit_message: str | None,
    retry_hint_seconds: int | None,
    clock: Clock,
) -> tuple[Command, bool]:
    """Compare-and-set the outcome of a command.

    Returns the command and whether this call acked it. Replaying the stored
    outcome returns the row untouched; a different outcome raises AlreadyAcked.
    """
    if exit_code == ExitCode.OK and retry_hint_seconds is not None:
        raise InvalidPayload("retry_hint_seconds", "retry hint is only allowed on failure")
    if retry_hint_seconds is not None and retry_hint_seconds < 0:
        raise InvalidPayload("retry_hint_seconds")

    command = get(db, command_id, for_update=True)
    if command.is_acked:
        if command.outcome() == (exit_code, exit_message, retry_hint_seconds):
            return command, False
        stored = command.exit_code.value if command.exit_code else None
        raise AlreadyAcked(f"Command {command.id} already acked with {stored}")

    command.exit_code = exit_code
    command.exit_message = exit_message
    command.retry_hint_seconds = retry_hint_seconds
    command.acked_at = as_utc(clock.now())
    with store_errors():
        db.add(command)
        db.flush()
    return command, True


def append_log(db: Session, draft: NodeLogDraft, clock: Clock) -> NodeLog:
    entry = NodeLog(
        id=uuid.uuid4(),
        host_id=draft.host_id,
        node_id=draft.node_id,
        event=draft.event,
        blockchain_name=draft.blockchain_name,
        node_type=draft.node_type,
        version=draft.version,
        message=draft.message,
        created_at=as_utc(clock.now()),
    )
    with store_errors():
        db.add(entry)
        db.flush()
    return entry


def logs_for_node(db: Session, node_id: uuid.UUID) -> list[NodeLog]:
    stmt = (
        select(NodeLog)
        .where(NodeLog.node_id == node_id)
        .order_by(NodeLog.created_at.asc(), NodeLog.id.asc())
    )
    with store_errors():
        return list(db.execute(stmt).scalars().all())
