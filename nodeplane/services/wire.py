from __future__ import annotations

from typing import Any

from nodeplane.clock import epoch_millis
from nodeplane.models.command import Command
from nodeplane.models.node_log import NodeLog


def command_summary(command: Command) -> dict[str, Any]:
    return {
        "id": str(command.id),
        "host_id": str(command.host_id),
        "node_id": str(command.node_id) if command.node_id else None,
        "kind": command.kind.value,
        "created_at": epoch_millis(command.created_at),
        "payload": dict(command.payload or {}),
        "exit_code": command.exit_code.value if command.exit_code else None,
        "exit_message": command.exit_message,
        "retry_hint_seconds": command.retry_hint_seconds,
        "acked_at": epoch_millis(command.acked_at),
    }


def node_log_to_dict(entry: NodeLog) -> dict[str, Any]:
    return {
        "id": str(entry.id),
        "host_id": str(entry.host_id),
        "node_id": str(entry.node_id),
        "event": entry.event.value,
        "blockchain_name": entry.blockchain_name,
        "node_type": entry.node_type,
        "version": entry.version,
        "message": entry.message,
        "created_at": epoch_millis(entry.created_at),
    }
