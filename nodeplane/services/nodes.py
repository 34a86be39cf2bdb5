from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from nodeplane.db.session import store_errors
from nodeplane.errors import NodeNotFound
from nodeplane.models.command import Command, CommandKind, ExitCode
from nodeplane.models.node import Node

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class NodePointer:
    """Read-only copy of the node fields command dispatch needs."""

    id: uuid.UUID
    name: str
    host_id: uuid.UUID | None
    org_id: uuid.UUID
    blockchain_id: uuid.UUID
    blockchain_name: str
    node_type: str
    version: str | None
    allow_ips: list[Any]
    deny_ips: list[Any]


class NodeDirectory(Protocol):
    def by_id(self, node_id: uuid.UUID) -> NodePointer: ...


# (kind, exit code) -> node status after the ack. None matches any exit code.
OUTCOME_STATUS: dict[tuple[CommandKind, ExitCode | None], str] = {
    (CommandKind.NODE_CREATE, ExitCode.OK): "running",
    (CommandKind.NODE_CREATE, None): "failed",
    (CommandKind.NODE_START, ExitCode.OK): "running",
    (CommandKind.NODE_RESTART, ExitCode.OK): "running",
    (CommandKind.NODE_STOP, ExitCode.OK): "stopped",
    (CommandKind.NODE_UPGRADE, ExitCode.OK): "running",
    (CommandKind.NODE_UPGRADE, ExitCode.NODE_UPGRADE_ROLLBACK): "upgrade_failed",
    (CommandKind.NODE_UPGRADE, ExitCode.NODE_UPGRADE_FAILURE): "upgrade_failed",
    (CommandKind.NODE_DELETE, ExitCode.OK): "deleted",
}


def next_status(kind: CommandKind, exit_code: ExitCode) -> str | None:
    if exit_code == ExitCode.SERVICE_BROKEN:
        return "broken"
    status = OUTCOME_STATUS.get((kind, exit_code))
    if status is None and exit_code != ExitCode.OK:
        status = OUTCOME_STATUS.get((kind, None))
    return status


class SqlNodeDirectory:
    def __init__(self, db: Session):
        self.db = db

    def _load(self, node_id: uuid.UUID) -> Node | None:
        stmt = select(Node).options(joinedload(Node.blockchain)).where(Node.id == node_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def by_id(self, node_id: uuid.UUID) -> NodePointer:
        with store_errors():
            node = self._load(node_id)
        if node is None:
            raise NodeNotFound(f"Node {node_id} not found")
        return NodePointer(
            id=node.id,
            name=node.name,
            host_id=node.host_id,
            org_id=node.org_id,
            blockchain_id=node.blockchain_id,
            blockchain_name=node.blockchain.name,
            node_type=node.node_type,
            version=node.version,
            allow_ips=list(node.allow_ips or []),
            deny_ips=list(node.deny_ips or []),
        )

    def apply_outcome(self, command: Command) -> None:
        if command.node_id is None or command.exit_code is None:
            return
        status = next_status(command.kind, command.exit_code)
        if status is None:
            return
        with store_errors():
            node = self.db.get(Node, command.node_id)
        if node is None:
            return
        if node.status != status:
            log.info(f"Node {node.id}: {node.status} -> {status} after {command.kind.value}")
            node.status = status
            self.db.add(node)
