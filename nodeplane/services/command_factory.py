from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy.orm import Session

from nodeplane.errors import HostUnreachable, InvalidKindForScope, InvalidPayload, NotFound
from nodeplane.models.command import CommandKind
from nodeplane.services.command_store import CommandDraft, get_host, validate_draft
from nodeplane.services.nodes import NodeDirectory, NodePointer


def parse_kind(value: str | CommandKind, field: str = "kind") -> CommandKind:
    if isinstance(value, CommandKind):
        return value
    try:
        return CommandKind(value)
    except ValueError as e:
        raise InvalidPayload(field, f"Unknown command kind: {value!r}") from e


def node_payload(kind: CommandKind, node: NodePointer) -> dict[str, Any]:
    """Kind-specific payload, read from the node as it is right now."""
    if kind == CommandKind.NODE_CREATE:
        return {
            "name": node.name,
            "blockchain": node.blockchain_name,
            "blockchain_id": str(node.blockchain_id),
            "node_type": node.node_type,
            "version": node.version or "latest",
        }
    if kind == CommandKind.NODE_UPGRADE:
        # Target version is pinned now, not when the agent acks.
        return {
            "blockchain": node.blockchain_name,
            "node_type": node.node_type,
            "version": node.version,
        }
    if kind == CommandKind.NODE_UPDATE:
        return {"allow_ips": list(node.allow_ips), "deny_ips": list(node.deny_ips)}
    return {}


def for_node(
    db: Session, nodes: NodeDirectory, node_id: uuid.UUID, kind: CommandKind
) -> CommandDraft:
    node = nodes.by_id(node_id)
    if node.host_id is None or get_host(db, node.host_id) is None:
        raise HostUnreachable(f"Node {node.id} has no reachable host")

    if kind.node_scoped:
        draft = CommandDraft(
            host_id=node.host_id,
            kind=kind,
            node_id=node.id,
            payload=node_payload(kind, node),
        )
    else:
        # Host-scoped kinds addressed through a node go to that node's host.
        draft = CommandDraft(host_id=node.host_id, kind=kind)
    validate_draft(draft)
    return draft


def for_host(db: Session, host_id: uuid.UUID, kind: CommandKind) -> CommandDraft:
    if kind.node_scoped:
        raise InvalidKindForScope("kind", f"{kind.value} needs a node")
    if get_host(db, host_id) is None:
        raise NotFound(f"Host {host_id} not found")
    draft = CommandDraft(host_id=host_id, kind=kind)
    validate_draft(draft)
    return draft
