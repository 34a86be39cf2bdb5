"""Side effects of a command reaching its terminal ack.

Runs inside the ack transaction. A node that has disappeared since the
command was queued is not an error here: the ack must still go through, so
the missing node is logged and the node-log write is skipped.
"""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from nodeplane.clock import Clock
from nodeplane.errors import NodeNotFound
from nodeplane.models.command import Command, CommandKind, ExitCode
from nodeplane.models.node_log import NodeLog, NodeLogEvent
from nodeplane.services import command_store
from nodeplane.services.command_store import NodeLogDraft
from nodeplane.services.nodes import NodeDirectory, NodePointer
from nodeplane.services.notifier import Outbox, host_commands_topic, node_commands_topic
from nodeplane.services.wire import command_summary

log = logging.getLogger(__name__)


def log_event_for(command: Command) -> NodeLogEvent | None:
    if command.kind == CommandKind.NODE_CREATE:
        if command.exit_code == ExitCode.OK:
            return NodeLogEvent.SUCCEEDED
        return NodeLogEvent.FAILED
    if command.kind == CommandKind.NODE_DELETE and command.exit_code == ExitCode.OK:
        return NodeLogEvent.CANCELED
    return None


def node_log_draft(
    node: NodePointer, event: NodeLogEvent, message: str | None = None
) -> NodeLogDraft:
    return NodeLogDraft(
        host_id=node.host_id,  # type: ignore[arg-type]
        node_id=node.id,
        event=event,
        blockchain_name=node.blockchain_name,
        node_type=node.node_type,
        version=node.version or "latest",
        message=message,
    )


def dispatch(
    db: Session,
    command: Command,
    nodes: NodeDirectory,
    clock: Clock,
    outbox: Outbox | None = None,
) -> NodeLog | None:
    if outbox is not None:
        message = {"event": "command_acked", "command": command_summary(command)}
        outbox.queue(host_commands_topic(command.host_id), message)
        if command.node_id is not None:
            outbox.queue(node_commands_topic(command.node_id), message)

    event = log_event_for(command)
    if event is None:
        return None

    try:
        node = nodes.by_id(command.node_id)
    except NodeNotFound:
        log.warning(
            f"Node {command.node_id} is gone; skipping {event.value} log for command {command.id}"
        )
        return None

    message = command.exit_message if event == NodeLogEvent.FAILED else None
    draft = node_log_draft(node, event, message)
    # The node may have moved since; log against the host that ran the command.
    draft.host_id = command.host_id
    return command_store.append_log(db, draft, clock)
